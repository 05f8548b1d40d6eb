"""Tests for confsplice.merge.atomic."""

from __future__ import annotations

import os
import pathlib
import stat

import pytest

import confsplice.merge.atomic


def _leftovers(directory: pathlib.Path) -> list[str]:
    return sorted(p.name for p in directory.iterdir() if p.name.endswith(".tmp"))


class TestWriteBytes:
    def test_creates_file(self, tmp_path: pathlib.Path) -> None:
        path = tmp_path / "a.json"
        confsplice.merge.atomic.write_bytes(path, b"{}\n")
        assert path.read_bytes() == b"{}\n"
        assert _leftovers(tmp_path) == []

    def test_new_file_mode(self, tmp_path: pathlib.Path) -> None:
        path = tmp_path / "a.json"
        confsplice.merge.atomic.write_bytes(path, b"{}")
        mode = stat.S_IMODE(path.stat().st_mode)
        assert mode == confsplice.merge.atomic.NEW_FILE_MODE

    def test_keeps_existing_mode(self, tmp_path: pathlib.Path) -> None:
        path = tmp_path / "a.json"
        path.write_text("{}")
        os.chmod(path, 0o600)
        confsplice.merge.atomic.write_bytes(path, b'{"a": 1}')
        assert stat.S_IMODE(path.stat().st_mode) == 0o600
        assert path.read_bytes() == b'{"a": 1}'

    def test_failed_replace_keeps_original(
        self, tmp_path: pathlib.Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        path = tmp_path / "a.json"
        path.write_text("original")

        def _fail(src, dst):
            raise OSError("cross-device link")

        monkeypatch.setattr(confsplice.merge.atomic.os, "replace", _fail)
        with pytest.raises(OSError, match="cross-device"):
            confsplice.merge.atomic.write_bytes(path, b"new")

        assert path.read_text() == "original"
        assert _leftovers(tmp_path) == []

    def test_symlink_is_kept(self, tmp_path: pathlib.Path) -> None:
        real = tmp_path / "dotfiles" / "settings.json"
        real.parent.mkdir()
        real.write_text("{}")
        link = tmp_path / "settings.json"
        link.symlink_to(real)

        confsplice.merge.atomic.write_bytes(link, b'{"a": 1}')

        assert link.is_symlink()
        assert real.read_bytes() == b'{"a": 1}'
        assert _leftovers(real.parent) == []


class TestWriteText:
    def test_utf8(self, tmp_path: pathlib.Path) -> None:
        path = tmp_path / "a.json"
        confsplice.merge.atomic.write_text(path, '{"name": "café"}')
        assert path.read_bytes() == '{"name": "café"}'.encode("utf-8")


class TestTemporaryFile:
    def test_removed_on_error(self, tmp_path: pathlib.Path) -> None:
        with pytest.raises(RuntimeError):
            with confsplice.merge.atomic.temporary_file(tmp_path, "x.") as (fh, p):
                fh.write(b"partial")
                assert p.exists()
                raise RuntimeError("boom")
        assert list(tmp_path.iterdir()) == []
