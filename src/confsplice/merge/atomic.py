"""Atomic file replacement.

Content is written to a temporary file in the target's directory, flushed
to disk, then swapped in with ``os.replace``. Readers see either the old
file or the new one, never a partial write.
"""

from __future__ import annotations

import contextlib
import os
import pathlib
import stat
import tempfile
from typing import IO, TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Generator

# mkstemp creates 0600 files
NEW_FILE_MODE = 0o644


@contextlib.contextmanager
def temporary_file(
    directory: pathlib.Path, prefix: str
) -> Generator[tuple[IO[bytes], pathlib.Path], None, None]:
    """Yield an open temporary file in *directory* and its path.

    The file is closed on exit and deleted unless the caller moved it
    away.
    """
    fd, name = tempfile.mkstemp(dir=directory, prefix=prefix, suffix=".tmp")
    tmp_path = pathlib.Path(name)
    try:
        with os.fdopen(fd, "wb") as fh:
            yield fh, tmp_path
    finally:
        tmp_path.unlink(missing_ok=True)


def write_bytes(path: pathlib.Path, data: bytes) -> None:
    """Atomically replace *path* with *data*, keeping its permission bits.

    A symlinked *path* stays a symlink: the file it points to is replaced.
    """
    path = pathlib.Path(path).resolve()
    try:
        mode = stat.S_IMODE(path.stat().st_mode)
    except FileNotFoundError:
        mode = NEW_FILE_MODE
    with temporary_file(path.parent, prefix=f".{path.name}.") as (fh, tmp_path):
        fh.write(data)
        fh.flush()
        os.fsync(fh.fileno())
        fh.close()
        os.chmod(tmp_path, mode)
        os.replace(tmp_path, path)


def write_text(path: pathlib.Path, text: str) -> None:
    """Atomically replace *path* with UTF-8 encoded *text*."""
    write_bytes(path, text.encode("utf-8"))
