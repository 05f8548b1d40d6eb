"""Error taxonomy for config merges.

Every error carries the path of the file it concerns so the caller can
locate it. ``merge()`` returns these inside a ``MergeResult`` rather than
raising them.
"""

from __future__ import annotations

import pathlib


class MergeError(Exception):
    """Base class for all merge failures."""

    fatal = True

    def __init__(self, path: pathlib.Path, message: str) -> None:
        self.path = path
        self.message = message
        super().__init__(f"{path}: {message}")


class DependencyMissing(MergeError):
    """The configured JSON codec cannot be imported."""

    def __init__(self, path: pathlib.Path, codec: str) -> None:
        self.codec = codec
        super().__init__(
            path, f"JSON codec {codec!r} is not installed; no changes were made"
        )


class TargetUnavailable(MergeError):
    """The target (or its parent directory) cannot be created or read."""


class InvalidExistingContent(MergeError):
    """Existing content was not usable and has been quarantined."""

    fatal = False

    def __init__(
        self,
        path: pathlib.Path,
        quarantine_path: pathlib.Path,
        reason: str,
    ) -> None:
        self.quarantine_path = quarantine_path
        self.reason = reason
        super().__init__(
            path, f"invalid content ({reason}) moved to {quarantine_path}"
        )


class BackupCollision(MergeError):
    """A backup with the same timestamped name already exists."""

    def __init__(self, path: pathlib.Path, backup_path: pathlib.Path) -> None:
        self.backup_path = backup_path
        super().__init__(path, f"backup already exists: {backup_path}")


class BackupNotFound(MergeError):
    """No backup is available to restore."""


class WriteFailed(MergeError):
    """Writing or replacing the target failed; the file was restored."""


class WriteVerificationFailed(MergeError):
    """The written file did not parse back; the file was restored."""


class RestoreFailed(MergeError):
    """Rolling back from the backup failed."""

    def __init__(
        self,
        path: pathlib.Path,
        backup_path: pathlib.Path,
        cause: BaseException,
    ) -> None:
        self.backup_path = backup_path
        super().__init__(
            path,
            f"restore from {backup_path} failed ({cause}); "
            "copy the backup over the file manually",
        )
