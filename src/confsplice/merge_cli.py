"""CLI for merging into JSON configuration files.

Usage:
    confsplice merge apply <path> KEY=VALUE... [--json KEY=JSON]...
    confsplice merge entries <path> --from FILE [--identity F] [--container K]
    confsplice merge backups <path>            List retained backups
    confsplice merge restore <path> [--backup FILE]
    confsplice merge discard <backup-file>     Delete a retained backup

``apply`` and ``entries`` accept ``--backup-dir``, ``--codec`` and
``--dry-run``.
"""

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path

import confsplice.merge.codec
import confsplice.merge.errors
import confsplice.merge.merger
import confsplice.merge.updates


def _print_result(result: confsplice.merge.merger.MergeResult) -> int:
    """Report a merge result; return the exit code."""
    for warning in result.warnings:
        print(f"Warning: {warning}", file=sys.stderr)

    if result.error is not None:
        print(f"Error: {result.error}", file=sys.stderr)
        if result.instructions:
            print(result.instructions)
        return 1

    if result.dry_run:
        print(f"[dry-run] {result.path} would become:")
        print(result.preview, end="")
        return 0

    state = "Updated" if result.changed else "Unchanged"
    print(f"{state} {result.path}")
    if result.backup is not None:
        print(f"  backup: {result.backup.path}")
    if result.quarantine_path is not None:
        print(f"  invalid content kept at: {result.quarantine_path}")
    return 0


def _merger(
    backup_dir: Path | None, codec: str | None
) -> confsplice.merge.merger.ConfigMerger:
    return confsplice.merge.merger.ConfigMerger(codec=codec, backup_dir=backup_dir)


def cmd_apply(
    path: Path,
    assignments: list[str],
    json_assignments: list[str],
    *,
    managed_prefixes: list[str],
    backup_dir: Path | None = None,
    codec: str | None = None,
    dry_run: bool = False,
) -> int:
    """Merge KEY=VALUE assignments into the object at *path*."""
    try:
        updates = [
            confsplice.merge.updates.parse_assignment(a) for a in assignments
        ]
        updates += [
            confsplice.merge.updates.parse_assignment(a, as_json=True)
            for a in json_assignments
        ]
        managed = None
        if managed_prefixes:
            managed = confsplice.merge.updates.prefix_predicate(managed_prefixes)
        merger = _merger(backup_dir, codec)
        result = merger.merge(path, updates, managed=managed, dry_run=dry_run)
    except ValueError as exc:
        print(str(exc), file=sys.stderr)
        return 1
    return _print_result(result)


def _read_entries(source: str) -> list:
    """Load new entries from a JSON file, or stdin for ``-``."""
    text = sys.stdin.read() if source == "-" else Path(source).read_text()
    try:
        data = confsplice.merge.codec.parse_strict(text)
    except ValueError as exc:
        reason = exc.msg if isinstance(exc, json.JSONDecodeError) else exc
        raise ValueError(f"{source}: not valid JSON ({reason})") from exc
    if isinstance(data, dict):
        return [data]
    if not isinstance(data, list):
        raise ValueError(f"{source}: expected a JSON array of entries")
    return data


def cmd_entries(
    path: Path,
    source: str,
    *,
    identity: str = "key",
    container: str | None = None,
    backup_dir: Path | None = None,
    codec: str | None = None,
    dry_run: bool = False,
) -> int:
    """Replace matching list entries in *path* with those read from *source*."""
    try:
        entries = _read_entries(source)
        merger = _merger(backup_dir, codec)
        result = merger.merge_entries(
            path,
            entries,
            identity=identity,
            container=container,
            dry_run=dry_run,
        )
    except (OSError, ValueError) as exc:
        print(str(exc), file=sys.stderr)
        return 1
    return _print_result(result)


def cmd_backups(path: Path, *, backup_dir: Path | None = None) -> int:
    """List retained backups of *path*, oldest first."""
    backups = _merger(backup_dir, None).backups(path)
    if not backups:
        print(f"No backups of {path}.")
        return 0
    for backup in backups:
        print(f"{backup.created_at:%Y-%m-%d %H:%M:%S}  {backup.path}")
    return 0


def cmd_restore(
    path: Path,
    *,
    backup: Path | None = None,
    backup_dir: Path | None = None,
) -> int:
    """Restore *path* from a backup (latest by default)."""
    try:
        restored = _merger(backup_dir, None).restore(path, backup)
    except confsplice.merge.errors.MergeError as exc:
        print(str(exc), file=sys.stderr)
        return 1
    print(f"Restored {path} from {restored.path}")
    return 0


def cmd_discard(backup: Path) -> int:
    """Delete a retained backup file; anything else is refused."""
    try:
        _merger(None, None).discard(backup)
    except (confsplice.merge.errors.MergeError, OSError) as exc:
        print(f"Cannot discard {backup}: {exc}", file=sys.stderr)
        return 1
    print(f"Discarded {backup}")
    return 0


def _add_write_args(parser: argparse.ArgumentParser) -> None:
    """Add args shared by the writing subcommands."""
    parser.add_argument("path", type=Path, help="JSON file to update")
    parser.add_argument(
        "--backup-dir",
        type=Path,
        default=None,
        help="Directory for backups (default: next to the file)",
    )
    parser.add_argument(
        "--codec",
        choices=sorted(confsplice.merge.codec.CODECS),
        default=None,
        help="Parser for existing content (default: merge.codec config)",
    )
    parser.add_argument("--dry-run", action="store_true", help="Preview only")


def main(argv: list[str] | None = None) -> int:
    """Entry point for ``confsplice merge``."""
    parser = argparse.ArgumentParser(
        prog="confsplice merge",
        description="Safely merge settings into JSON configuration files.",
    )
    sub = parser.add_subparsers(dest="subcmd")

    p_apply = sub.add_parser("apply", help="Set top-level keys")
    _add_write_args(p_apply)
    p_apply.add_argument(
        "assignments", nargs="*", metavar="KEY=VALUE",
        help="true/false and numbers are typed; anything else is a string",
    )
    p_apply.add_argument(
        "--json", dest="json_assignments", action="append", default=[],
        metavar="KEY=JSON", help="Set a key to a parsed JSON value",
    )
    p_apply.add_argument(
        "--managed-prefix", dest="managed_prefixes", action="append", default=[],
        metavar="PREFIX", help="Drop existing keys with this prefix not being set",
    )

    p_entries = sub.add_parser("entries", help="Replace list entries by identity")
    _add_write_args(p_entries)
    p_entries.add_argument(
        "--from", dest="source", required=True,
        help="JSON file with the new entries ('-' for stdin)",
    )
    p_entries.add_argument(
        "--identity", default="key", help="Field identifying an entry (default: key)"
    )
    p_entries.add_argument(
        "--container", default=None,
        help="Top-level key holding the list (default: the document root)",
    )

    p_backups = sub.add_parser("backups", help="List retained backups")
    p_backups.add_argument("path", type=Path)
    p_backups.add_argument("--backup-dir", type=Path, default=None)

    p_restore = sub.add_parser("restore", help="Restore from a backup")
    p_restore.add_argument("path", type=Path)
    p_restore.add_argument(
        "--backup", type=Path, default=None, help="Backup file (default: latest)"
    )
    p_restore.add_argument("--backup-dir", type=Path, default=None)

    p_discard = sub.add_parser("discard", help="Delete a retained backup")
    p_discard.add_argument("backup", type=Path)

    args = parser.parse_args(argv)

    if args.subcmd is None:
        parser.print_help()
        return 1

    if args.subcmd == "apply":
        return cmd_apply(
            args.path,
            args.assignments,
            args.json_assignments,
            managed_prefixes=args.managed_prefixes,
            backup_dir=args.backup_dir,
            codec=args.codec,
            dry_run=args.dry_run,
        )
    elif args.subcmd == "entries":
        return cmd_entries(
            args.path,
            args.source,
            identity=args.identity,
            container=args.container,
            backup_dir=args.backup_dir,
            codec=args.codec,
            dry_run=args.dry_run,
        )
    elif args.subcmd == "backups":
        return cmd_backups(args.path, backup_dir=args.backup_dir)
    elif args.subcmd == "restore":
        return cmd_restore(
            args.path, backup=args.backup, backup_dir=args.backup_dir
        )
    elif args.subcmd == "discard":
        return cmd_discard(args.backup)
    else:
        parser.print_help()
        return 1
