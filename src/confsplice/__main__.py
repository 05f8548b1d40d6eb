"""confsplice CLI: safe edits to JSON configuration files.

Usage:
    confsplice merge apply <path> KEY=VALUE...   Set top-level keys
    confsplice merge entries <path> --from FILE  Replace list entries by identity
    confsplice merge backups <path>              List retained backups
    confsplice merge restore <path>              Restore the latest backup
    confsplice merge discard <backup-file>       Delete a retained backup
    confsplice config <cmd>                      Configuration (get/set/list/show)

Options:
    -v, --verbose    Log progress to stderr (overrides merge.log_level)
"""

from __future__ import annotations

import logging
import sys

import confsplice.config


def _configure_logging(verbose: bool) -> None:
    """Configure the root logger once, from the flag or ``merge.log_level``."""
    if verbose:
        level = logging.INFO
    else:
        import confsplice.merge.config  # noqa: F401

        name = str(confsplice.config.load("merge").log_level).upper()
        level = logging.getLevelName(name)
        if not isinstance(level, int):
            level = logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )


def _cmd_merge(args: list[str]) -> int:
    """Merge into JSON configuration files."""
    import confsplice.merge_cli

    return confsplice.merge_cli.main(args)


def _cmd_config(args: list[str]) -> int:
    """Configuration."""
    import confsplice.config_cli

    return confsplice.config_cli.main(args)


def main() -> None:
    args = sys.argv[1:]
    verbose = False
    for flag in ("-v", "--verbose"):
        while flag in args:
            args.remove(flag)
            verbose = True

    if not args:
        print(__doc__)
        sys.exit(1)

    _configure_logging(verbose)

    cmd = args[0]
    rest = args[1:]

    if cmd == "merge":
        sys.exit(_cmd_merge(rest))
    elif cmd == "config":
        sys.exit(_cmd_config(rest))
    else:
        print(__doc__)
        sys.exit(1)


if __name__ == "__main__":
    main()
