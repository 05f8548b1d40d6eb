"""CLI for confsplice's own settings.

Usage:
    confsplice config list                         Sections, fields, defaults, env vars
    confsplice config get <section.key>            Print effective value
    confsplice config set [--global] <key> <value> Write an override
    confsplice config reset [--global] <key>       Remove an override
    confsplice config show                         Effective config and its sources
    confsplice config edit [--global]              Open config.toml in $EDITOR
"""

from __future__ import annotations

import argparse
import dataclasses
import os
import subprocess
import sys
from pathlib import Path

import confsplice.config


def _ensure_registry() -> None:
    import confsplice.merge.config  # noqa: F401


def _scope(global_flag: bool) -> str:
    return "global" if global_flag else "local"


def _split_key(key: str) -> tuple[str, str] | None:
    section, _, field = key.partition(".")
    if section and field:
        return section, field
    print(f"Invalid key format: {key!r} (expected section.key)", file=sys.stderr)
    return None


def _env_var(section: str, field: str) -> str:
    return f"{confsplice.config.ENV_PREFIX}{section}_{field}".upper()


def _template() -> str:
    """Commented-out defaults for every section, for a fresh config.toml."""
    lines = ["# confsplice configuration", "# See: confsplice config list"]
    for name, cls in sorted(confsplice.config.list_sections().items()):
        lines += ["", f"# [{name}]"]
        for f in dataclasses.fields(cls):
            lines.append(f"# {f.name} = {f.default!r}")
    return "\n".join(lines) + "\n"


def cmd_list() -> int:
    _ensure_registry()
    for name, cls in sorted(confsplice.config.list_sections().items()):
        print(f"[{name}]")
        for f in dataclasses.fields(cls):
            type_name = f.type if isinstance(f.type, str) else f.type.__name__
            print(
                f"  {f.name}: {type_name} = {f.default!r}"
                f"  (env: {_env_var(name, f.name)})"
            )
        print()
    return 0


def cmd_get(key: str, root: Path) -> int:
    _ensure_registry()
    parts = _split_key(key)
    if parts is None:
        return 1
    try:
        print(confsplice.config.get_effective(*parts, root))
    except KeyError as exc:
        print(exc.args[0], file=sys.stderr)
        return 1
    return 0


def cmd_set(key: str, value: str, *, global_flag: bool, root: Path) -> int:
    """Persist an override, coercing *value* to the field's type."""
    _ensure_registry()
    parts = _split_key(key)
    if parts is None:
        return 1
    scope = _scope(global_flag)
    try:
        path = confsplice.config.set_value(*parts, value, scope=scope, root=root)
    except KeyError as exc:
        print(exc.args[0], file=sys.stderr)
        return 1
    except ValueError as exc:
        print(f"Invalid value for {key}: {exc}", file=sys.stderr)
        return 1
    print(f"Set {key} = {value} ({scope}: {path})")
    return 0


def cmd_reset(key: str, *, global_flag: bool, root: Path) -> int:
    _ensure_registry()
    parts = _split_key(key)
    if parts is None:
        return 1
    scope = _scope(global_flag)
    if confsplice.config.reset_value(*parts, scope=scope, root=root):
        print(f"Reset {key} ({scope})")
    else:
        print(f"No {scope} override for {key}")
    return 0


def cmd_show(root: Path) -> int:
    """Print the files consulted, then every effective value."""
    _ensure_registry()
    for label, path in (
        ("global", confsplice.config._global_path()),
        ("local", confsplice.config._local_path(root)),
    ):
        state = "" if path.exists() else " (not present)"
        print(f"# {label}: {path}{state}")
    print()
    for name in sorted(confsplice.config.list_sections()):
        instance = confsplice.config.load(name, root)
        print(f"[{name}]")
        for f in dataclasses.fields(instance):
            print(f"  {f.name} = {getattr(instance, f.name)!r}")
        print()
    return 0


def cmd_edit(*, global_flag: bool, root: Path) -> int:
    """Open the scope's config.toml in $EDITOR, seeding it if missing."""
    _ensure_registry()
    if global_flag:
        path = confsplice.config._global_path()
    else:
        path = confsplice.config._local_path(root)
    if not path.exists():
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(_template())
    return subprocess.call([os.environ.get("EDITOR", "vi"), str(path)])


def main(argv: list[str] | None = None) -> int:
    """Entry point for ``confsplice config``."""
    parser = argparse.ArgumentParser(
        prog="confsplice config",
        description="Inspect and change confsplice settings.",
    )
    sub = parser.add_subparsers(dest="subcmd")

    sub.add_parser("list", help="Sections, fields, defaults, env vars")
    p_get = sub.add_parser("get", help="Print effective value")
    p_get.add_argument("key", help="section.key")
    p_set = sub.add_parser("set", help="Write an override")
    p_set.add_argument("key", help="section.key")
    p_set.add_argument("value")
    p_reset = sub.add_parser("reset", help="Remove an override")
    p_reset.add_argument("key", help="section.key")
    p_show = sub.add_parser("show", help="Effective config and its sources")
    p_edit = sub.add_parser("edit", help="Open config.toml in $EDITOR")

    for p in (p_set, p_reset, p_edit):
        p.add_argument(
            "--global", dest="global_flag", action="store_true",
            help="Use ~/.config/confsplice/config.toml",
        )
    for p in (p_get, p_set, p_reset, p_show, p_edit):
        p.add_argument(
            "--path", type=Path, default=None,
            help="Project root (default: enclosing git repo or cwd)",
        )

    args = parser.parse_args(argv)
    if args.subcmd is None:
        parser.print_help()
        return 1

    root = confsplice.config._find_root(getattr(args, "path", None))
    if args.subcmd == "list":
        return cmd_list()
    elif args.subcmd == "get":
        return cmd_get(args.key, root)
    elif args.subcmd == "set":
        return cmd_set(args.key, args.value, global_flag=args.global_flag, root=root)
    elif args.subcmd == "reset":
        return cmd_reset(args.key, global_flag=args.global_flag, root=root)
    elif args.subcmd == "show":
        return cmd_show(root)
    elif args.subcmd == "edit":
        return cmd_edit(global_flag=args.global_flag, root=root)
    parser.print_help()
    return 1
