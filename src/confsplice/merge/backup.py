"""Timestamped backups of configuration files.

A backup of ``settings.json`` taken at 2026-01-02 03:04:05 is stored as
``settings.json.backup-20260102030405`` next to the file, or in an
explicit backup directory. Backups are created exclusively: an existing
backup is never overwritten.
"""

from __future__ import annotations

import dataclasses
import datetime
import logging
import os
import pathlib

import confsplice.merge.atomic
import confsplice.merge.errors

logger = logging.getLogger("confsplice.merge.backup")

DEFAULT_TAG = "backup"
DEFAULT_TIMESTAMP_FORMAT = "%Y%m%d%H%M%S"


@dataclasses.dataclass(frozen=True)
class Backup:
    path: pathlib.Path
    target: pathlib.Path
    created_at: datetime.datetime


def backup_prefix(target: pathlib.Path, tag: str = DEFAULT_TAG) -> str:
    return f"{target.name}.{tag}-"


def parse_backup_name(
    path: pathlib.Path,
    tag: str = DEFAULT_TAG,
    timestamp_format: str = DEFAULT_TIMESTAMP_FORMAT,
) -> tuple[str, datetime.datetime] | None:
    """Split ``<name>.<tag>-<stamp>`` into the target name and timestamp.

    Returns ``None`` when *path* is not named like a backup.
    """
    name, sep, stamp = path.name.rpartition(f".{tag}-")
    if not sep or not name:
        return None
    try:
        return name, datetime.datetime.strptime(stamp, timestamp_format)
    except ValueError:
        return None


def create_backup(
    target: pathlib.Path,
    *,
    now: datetime.datetime,
    backup_dir: pathlib.Path | None = None,
    tag: str = DEFAULT_TAG,
    timestamp_format: str = DEFAULT_TIMESTAMP_FORMAT,
) -> Backup:
    """Snapshot the current bytes of *target*.

    Raises ``BackupCollision`` if a backup with the same name exists and
    ``TargetUnavailable`` if the snapshot cannot be read or written.
    """
    directory = backup_dir if backup_dir is not None else target.parent
    stamp = now.strftime(timestamp_format)
    backup_path = directory / f"{backup_prefix(target, tag)}{stamp}"

    try:
        directory.mkdir(parents=True, exist_ok=True)
        content = target.read_bytes()
    except OSError as exc:
        raise confsplice.merge.errors.TargetUnavailable(
            target, f"cannot prepare backup in {directory}: {exc}"
        ) from exc

    try:
        fh = open(backup_path, "xb")
    except FileExistsError:
        raise confsplice.merge.errors.BackupCollision(target, backup_path) from None
    except OSError as exc:
        raise confsplice.merge.errors.TargetUnavailable(
            target, f"cannot create backup {backup_path}: {exc}"
        ) from exc

    try:
        with fh:
            fh.write(content)
            fh.flush()
            os.fsync(fh.fileno())
    except OSError as exc:
        backup_path.unlink(missing_ok=True)
        raise confsplice.merge.errors.TargetUnavailable(
            target, f"cannot write backup {backup_path}: {exc}"
        ) from exc

    logger.info("Backed up %s to %s", target, backup_path)
    return Backup(
        path=backup_path,
        target=target,
        created_at=now.replace(microsecond=0),
    )


def list_backups(
    target: pathlib.Path,
    *,
    backup_dir: pathlib.Path | None = None,
    tag: str = DEFAULT_TAG,
    timestamp_format: str = DEFAULT_TIMESTAMP_FORMAT,
) -> list[Backup]:
    """Return the backups of *target*, oldest first.

    Files whose suffix does not parse as a timestamp are ignored.
    """
    directory = backup_dir if backup_dir is not None else target.parent
    if not directory.is_dir():
        return []

    prefix = backup_prefix(target, tag)
    found: list[Backup] = []
    for candidate in directory.iterdir():
        if not candidate.name.startswith(prefix) or not candidate.is_file():
            continue
        parsed = parse_backup_name(candidate, tag, timestamp_format)
        if parsed is None or parsed[0] != target.name:
            continue
        found.append(Backup(path=candidate, target=target, created_at=parsed[1]))

    found.sort(key=lambda b: (b.created_at, b.path.name))
    return found


def restore_backup(backup: Backup) -> None:
    """Atomically put the backup's bytes back at its target.

    Raises ``RestoreFailed`` if the backup cannot be read or the target
    cannot be written.
    """
    try:
        content = backup.path.read_bytes()
        backup.target.parent.mkdir(parents=True, exist_ok=True)
        confsplice.merge.atomic.write_bytes(backup.target, content)
    except OSError as exc:
        raise confsplice.merge.errors.RestoreFailed(
            backup.target, backup.path, exc
        ) from exc
    logger.info("Restored %s from %s", backup.target, backup.path)


def discard_backup(
    backup: Backup | pathlib.Path,
    *,
    tag: str = DEFAULT_TAG,
    timestamp_format: str = DEFAULT_TIMESTAMP_FORMAT,
) -> None:
    """Delete a retained backup file.

    Raises ``BackupNotFound`` unless *backup* is an existing file named
    ``<name>.<tag>-<timestamp>``.
    """
    path = backup.path if isinstance(backup, Backup) else pathlib.Path(backup)
    if parse_backup_name(path, tag, timestamp_format) is None:
        raise confsplice.merge.errors.BackupNotFound(
            path, f"not a backup file (expected <name>.{tag}-<timestamp>)"
        )
    if not path.is_file():
        raise confsplice.merge.errors.BackupNotFound(path, "backup does not exist")
    path.unlink()
    logger.info("Discarded backup %s", path)
