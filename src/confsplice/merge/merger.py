"""Apply updates to JSON configuration files, all or nothing.

One run:
1. Initialize a missing file with an empty document.
2. Parse the existing file; quarantine it if it is unusable.
3. Take an exclusive, timestamped backup.
4. Compute the merged document.
5. Replace the file atomically.
6. Parse the result back; restore the backup if it does not parse.

Failures are returned in a ``MergeResult`` instead of raised. Once a
backup exists, any failure (including an interrupt) restores it, or
removes the file again if this run created it, before control returns
to the caller. The file on disk is always strict JSON: NaN and Infinity
are rejected on the way in and treated as invalid content on the way out.
"""

from __future__ import annotations

import copy
import dataclasses
import datetime
import logging
import os
import pathlib
from typing import TYPE_CHECKING, Any

import confsplice.config
import confsplice.merge.atomic
import confsplice.merge.backup
import confsplice.merge.codec
import confsplice.merge.document
import confsplice.merge.errors
import confsplice.merge.updates

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable, Mapping
    from types import ModuleType

    from confsplice.merge.updates import KeyPredicate

logger = logging.getLogger("confsplice.merge.merger")


def _merge_cfg(root: pathlib.Path | None = None):
    import confsplice.merge.config  # noqa: F401

    return confsplice.config.load("merge", root)


@dataclasses.dataclass
class MergeResult:
    path: pathlib.Path
    error: confsplice.merge.errors.MergeError | None = None
    warnings: list[confsplice.merge.errors.MergeError] = dataclasses.field(
        default_factory=list
    )
    backup: confsplice.merge.backup.Backup | None = None
    quarantine_path: pathlib.Path | None = None
    instructions: str | None = None
    preview: str | None = None
    dry_run: bool = False
    changed: bool = False

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclasses.dataclass
class _Plan:
    """What one run needs to know about the document shape."""

    empty: Any
    shape_error: Callable[[Any], str | None]
    transform: Callable[[Any], Any]
    instructions: Callable[[], str]


def _expect_object(document: Any) -> str | None:
    if isinstance(document, dict):
        return None
    shape = confsplice.merge.document.describe_shape(document)
    return f"expected a JSON object, found {shape}"


class ConfigMerger:
    """Merge updates into JSON files with backup and rollback.

    Arguments left as ``None`` fall back to the ``[merge]`` config
    section. *backup_dir* defaults to each file's own directory; *clock*
    returns the time used to name backups and quarantine files.
    """

    def __init__(
        self,
        *,
        codec: str | None = None,
        indent: int | None = None,
        backup_dir: pathlib.Path | None = None,
        clock: Callable[[], datetime.datetime] | None = None,
        root: pathlib.Path | None = None,
    ) -> None:
        cfg = _merge_cfg(root)
        self.codec_name = codec or cfg.codec
        self.indent = cfg.indent if indent is None else indent
        self.trailing_newline = cfg.trailing_newline
        self.backup_tag = cfg.backup_tag
        self.timestamp_format = cfg.timestamp_format
        self.quarantine_suffix = cfg.quarantine_suffix
        if backup_dir is not None:
            backup_dir = pathlib.Path(backup_dir)
        self.backup_dir = backup_dir
        self._clock = clock or datetime.datetime.now

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------

    def merge(
        self,
        path: str | os.PathLike[str],
        updates: Mapping[str, Any] | Iterable[tuple[str, Any]],
        *,
        managed: KeyPredicate | None = None,
        dry_run: bool = False,
    ) -> MergeResult:
        """Apply *updates* to the top-level keys of the object at *path*.

        Existing keys matched by *managed* and not in *updates* are
        removed. Raises ``ValueError`` for an empty or malformed update
        set; every other failure is returned in the result.
        """
        path = pathlib.Path(path)
        pairs = confsplice.merge.updates.normalize(updates)
        self._check_serializable(dict(pairs))

        plan = _Plan(
            empty={},
            shape_error=_expect_object,
            transform=lambda doc: confsplice.merge.document.apply_updates(
                doc, pairs, managed
            ),
            instructions=lambda: confsplice.merge.updates.render_instructions(
                path, pairs
            ),
        )
        return self._run(path, plan, dry_run=dry_run)

    def merge_entries(
        self,
        path: str | os.PathLike[str],
        entries: list[dict[str, Any]],
        *,
        identity: str = "key",
        container: str | None = None,
        dry_run: bool = False,
    ) -> MergeResult:
        """Replace entries of a JSON list by *identity*, then append *entries*.

        The list is the document root, or ``document[container]`` when
        *container* is given (other top-level keys are kept).
        """
        path = pathlib.Path(path)
        new = confsplice.merge.document.check_entries(entries, identity)
        self._check_serializable(new)

        def apply(items: list[Any]) -> list[Any]:
            return confsplice.merge.document.apply_entries(items, new, identity)

        if container is None:
            plan = _Plan(
                empty=[],
                shape_error=lambda doc: _expect_list(doc, None),
                transform=apply,
                instructions=lambda: _render_entries(path, new, None),
            )
        else:
            def transform(doc: dict[str, Any]) -> dict[str, Any]:
                merged = dict(doc)
                merged[container] = apply(doc.get(container, []))
                return merged

            plan = _Plan(
                empty={},
                shape_error=lambda doc: _expect_list(doc, container),
                transform=transform,
                instructions=lambda: _render_entries(path, new, container),
            )
        return self._run(path, plan, dry_run=dry_run)

    def backups(
        self, path: str | os.PathLike[str]
    ) -> list[confsplice.merge.backup.Backup]:
        """Return the retained backups of *path*, oldest first."""
        return confsplice.merge.backup.list_backups(
            pathlib.Path(path),
            backup_dir=self.backup_dir,
            tag=self.backup_tag,
            timestamp_format=self.timestamp_format,
        )

    def restore(
        self,
        path: str | os.PathLike[str],
        backup_path: pathlib.Path | None = None,
    ) -> confsplice.merge.backup.Backup:
        """Put a backup (the latest one by default) back at *path*.

        Raises ``BackupNotFound`` or ``RestoreFailed``.
        """
        path = pathlib.Path(path)
        if backup_path is not None:
            if not backup_path.is_file():
                raise confsplice.merge.errors.BackupNotFound(
                    path, f"backup {backup_path} does not exist"
                )
            parsed = confsplice.merge.backup.parse_backup_name(
                backup_path, self.backup_tag, self.timestamp_format
            )
            if parsed is not None:
                created_at = parsed[1]
            else:
                # copied or renamed by hand; the name carries no stamp
                created_at = datetime.datetime.fromtimestamp(
                    backup_path.stat().st_mtime
                ).replace(microsecond=0)
            chosen = confsplice.merge.backup.Backup(
                path=backup_path, target=path, created_at=created_at
            )
        else:
            available = self.backups(path)
            if not available:
                raise confsplice.merge.errors.BackupNotFound(
                    path, "no backups found"
                )
            chosen = available[-1]
        confsplice.merge.backup.restore_backup(chosen)
        return chosen

    def discard(self, backup_path: str | os.PathLike[str]) -> None:
        """Delete a retained backup; refuses files not named like one."""
        confsplice.merge.backup.discard_backup(
            pathlib.Path(backup_path),
            tag=self.backup_tag,
            timestamp_format=self.timestamp_format,
        )

    # ------------------------------------------------------------------
    # Pipeline
    # ------------------------------------------------------------------

    def _run(
        self, path: pathlib.Path, plan: _Plan, *, dry_run: bool
    ) -> MergeResult:
        result = MergeResult(path=path, dry_run=dry_run)

        try:
            codec = confsplice.merge.codec.load_codec(self.codec_name, path)
        except confsplice.merge.errors.DependencyMissing as exc:
            logger.warning("%s", exc)
            result.error = exc
            result.instructions = plan.instructions()
            return result

        now = self._clock()
        existed = path.exists()
        try:
            if not dry_run:
                self._preflight_backup(path, now)
            document = self._load(path, codec, plan, result, now, dry_run=dry_run)
        except confsplice.merge.errors.MergeError as exc:
            logger.warning("Merge aborted: %s", exc)
            result.error = exc
            return result

        text = self._serialize(plan.transform(document))
        if dry_run:
            result.preview = text
            return result

        try:
            before = path.read_bytes()
            backup = confsplice.merge.backup.create_backup(
                path,
                now=now,
                backup_dir=self.backup_dir,
                tag=self.backup_tag,
                timestamp_format=self.timestamp_format,
            )
        except OSError as exc:
            result.error = confsplice.merge.errors.TargetUnavailable(
                path, f"cannot read: {exc}"
            )
            return result
        except confsplice.merge.errors.MergeError as exc:
            logger.warning("Merge aborted: %s", exc)
            result.error = exc
            return result
        result.backup = backup

        committed = False
        try:
            self._write(path, text)
            self._verify(path, plan)
            committed = True
        except confsplice.merge.errors.MergeError as exc:
            logger.error("Merge failed, restoring %s: %s", path, exc)
            logger.debug("Merge failure detail", exc_info=True)
            result.error = exc
        finally:
            if not committed:
                self._rollback(backup, result, existed=existed)
        if result.error is not None:
            return result

        result.changed = text.encode("utf-8") != before
        logger.info("Updated %s (backup: %s)", path, backup.path)
        return result

    def _preflight_backup(self, path: pathlib.Path, now: datetime.datetime) -> None:
        """Fail before touching anything if this second's backup exists."""
        directory = self.backup_dir if self.backup_dir is not None else path.parent
        stamp = now.strftime(self.timestamp_format)
        prefix = confsplice.merge.backup.backup_prefix(path, self.backup_tag)
        planned = directory / f"{prefix}{stamp}"
        if planned.exists():
            raise confsplice.merge.errors.BackupCollision(path, planned)

    def _load(
        self,
        path: pathlib.Path,
        codec: ModuleType,
        plan: _Plan,
        result: MergeResult,
        now: datetime.datetime,
        *,
        dry_run: bool,
    ) -> Any:
        """Return the current document, initializing or quarantining the file."""
        if not path.exists():
            if not dry_run:
                try:
                    path.parent.mkdir(parents=True, exist_ok=True)
                except OSError as exc:
                    raise confsplice.merge.errors.TargetUnavailable(
                        path, f"cannot create directory {path.parent}: {exc}"
                    ) from exc
                self._initialize(path, plan.empty)
                logger.info("Initialized %s", path)
            return copy.deepcopy(plan.empty)

        try:
            raw = path.read_bytes()
        except OSError as exc:
            raise confsplice.merge.errors.TargetUnavailable(
                path, f"cannot read: {exc}"
            ) from exc

        try:
            text = raw.decode("utf-8-sig")
            if not text.strip():
                return copy.deepcopy(plan.empty)
            document = confsplice.merge.codec.parse(codec, text)
            reason = plan.shape_error(document)
            if reason is None:
                reason = confsplice.merge.codec.non_finite_reason(document)
        except ValueError as exc:
            # UnicodeDecodeError and JSONDecodeError are both ValueErrors
            logger.debug("Cannot parse %s", path, exc_info=True)
            reason = f"not valid {self.codec_name}: {exc}"

        if reason is None:
            return document

        if dry_run:
            quarantine_path = self._quarantine_path(path, now)
        else:
            quarantine_path = self._quarantine(path, raw, now, plan.empty)
        warning = confsplice.merge.errors.InvalidExistingContent(
            path, quarantine_path, reason
        )
        logger.warning("%s", warning)
        result.warnings.append(warning)
        result.quarantine_path = quarantine_path
        return copy.deepcopy(plan.empty)

    def _quarantine_path(
        self, path: pathlib.Path, now: datetime.datetime
    ) -> pathlib.Path:
        suffix = self.quarantine_suffix
        candidate = path.with_name(f"{path.name}{suffix}")
        if candidate.exists():
            stamp = now.strftime(self.timestamp_format)
            candidate = path.with_name(f"{path.name}.{stamp}{suffix}")
        return candidate

    def _quarantine(
        self,
        path: pathlib.Path,
        raw: bytes,
        now: datetime.datetime,
        empty: Any,
    ) -> pathlib.Path:
        """Copy the unusable bytes aside and start over from *empty*.

        The file itself is rewritten in place, so a symlinked *path*
        keeps pointing at the same file.
        """
        quarantine_path = self._quarantine_path(path, now)
        try:
            with open(quarantine_path, "xb") as fh:
                fh.write(raw)
        except FileExistsError:
            raise confsplice.merge.errors.BackupCollision(
                path, quarantine_path
            ) from None
        except OSError as exc:
            raise confsplice.merge.errors.TargetUnavailable(
                path, f"cannot copy invalid file to {quarantine_path}: {exc}"
            ) from exc
        self._initialize(path, empty)
        return quarantine_path

    def _initialize(self, path: pathlib.Path, empty: Any) -> None:
        try:
            confsplice.merge.atomic.write_text(path, self._serialize(empty))
        except OSError as exc:
            raise confsplice.merge.errors.TargetUnavailable(
                path, f"cannot initialize: {exc}"
            ) from exc

    def _serialize(self, document: Any) -> str:
        return confsplice.merge.codec.dumps(
            document, indent=self.indent, trailing_newline=self.trailing_newline
        )

    def _check_serializable(self, value: Any) -> None:
        try:
            self._serialize(value)
        except (TypeError, ValueError) as exc:
            raise ValueError(f"updates must be JSON-serializable: {exc}") from exc

    def _write(self, path: pathlib.Path, text: str) -> None:
        try:
            confsplice.merge.atomic.write_text(path, text)
        except OSError as exc:
            raise confsplice.merge.errors.WriteFailed(
                path, f"write failed: {exc}"
            ) from exc

    def _verify(self, path: pathlib.Path, plan: _Plan) -> None:
        try:
            written = confsplice.merge.codec.parse_strict(
                path.read_text(encoding="utf-8")
            )
            reason = plan.shape_error(written)
        except (OSError, ValueError) as exc:
            reason = str(exc)
        if reason is not None:
            raise confsplice.merge.errors.WriteVerificationFailed(
                path, f"written file does not parse back ({reason})"
            )

    def _rollback(
        self,
        backup: confsplice.merge.backup.Backup,
        result: MergeResult,
        *,
        existed: bool,
    ) -> None:
        """Return the file to its state before this run.

        A file this run created is removed again, together with its
        backup of the initial empty document.
        """
        try:
            if existed:
                confsplice.merge.backup.restore_backup(backup)
            else:
                self._remove_created(backup)
                result.backup = None
        except confsplice.merge.errors.RestoreFailed as exc:
            logger.error("%s", exc)
            exc.__cause__ = result.error
            result.error = exc

    def _remove_created(self, backup: confsplice.merge.backup.Backup) -> None:
        target = backup.target.resolve()
        try:
            target.unlink(missing_ok=True)
            backup.path.unlink(missing_ok=True)
        except OSError as exc:
            raise confsplice.merge.errors.RestoreFailed(
                backup.target, backup.path, exc
            ) from exc
        logger.info("Removed %s created by the failed run", backup.target)


def _expect_list(document: Any, container: str | None) -> str | None:
    if container is None:
        if isinstance(document, list):
            return None
        shape = confsplice.merge.document.describe_shape(document)
        return f"expected a JSON array, found {shape}"
    reason = _expect_object(document)
    if reason is not None:
        return reason
    value = document.get(container, [])
    if isinstance(value, list):
        return None
    shape = confsplice.merge.document.describe_shape(value)
    return f"expected {container!r} to be a JSON array, found {shape}"


def _render_entries(
    path: pathlib.Path, entries: list[dict[str, Any]], container: str | None
) -> str:
    if container is not None:
        return confsplice.merge.updates.render_instructions(
            path, [(container, entries)]
        )
    body = confsplice.merge.codec.dumps(entries, indent=2, trailing_newline=False)
    return f"Please add the following entries manually to '{path}':\n{body}"


def merge(
    path: str | os.PathLike[str],
    updates: Mapping[str, Any] | Iterable[tuple[str, Any]],
    *,
    managed: KeyPredicate | None = None,
    backup_dir: pathlib.Path | None = None,
    dry_run: bool = False,
) -> MergeResult:
    """Module-level shortcut for ``ConfigMerger().merge(...)``."""
    merger = ConfigMerger(backup_dir=backup_dir)
    return merger.merge(path, updates, managed=managed, dry_run=dry_run)


def merge_entries(
    path: str | os.PathLike[str],
    entries: list[dict[str, Any]],
    *,
    identity: str = "key",
    container: str | None = None,
    backup_dir: pathlib.Path | None = None,
    dry_run: bool = False,
) -> MergeResult:
    """Module-level shortcut for ``ConfigMerger().merge_entries(...)``."""
    merger = ConfigMerger(backup_dir=backup_dir)
    return merger.merge_entries(
        path, entries, identity=identity, container=container, dry_run=dry_run
    )
