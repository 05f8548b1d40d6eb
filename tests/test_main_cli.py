"""Tests for the top-level dispatcher in confsplice.__main__."""

from __future__ import annotations

import json
import logging
import pathlib
import sys

import pytest

import confsplice.__main__ as cli


def _run(monkeypatch: pytest.MonkeyPatch, *argv: str) -> int:
    monkeypatch.setattr(sys, "argv", ["confsplice", *argv])
    with pytest.raises(SystemExit) as excinfo:
        cli.main()
    return excinfo.value.code


def test_no_args_prints_usage(
    monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
) -> None:
    assert _run(monkeypatch) == 1
    assert "Usage:" in capsys.readouterr().out


def test_unknown_command_prints_usage(
    monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
) -> None:
    assert _run(monkeypatch, "frobnicate") == 1
    assert "confsplice merge apply" in capsys.readouterr().out


def test_merge_dispatch(
    tmp_path: pathlib.Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    path = tmp_path / "settings.json"
    assert _run(monkeypatch, "merge", "apply", str(path), "a=1") == 0
    assert json.loads(path.read_text()) == {"a": 1}


def test_verbose_flag_is_stripped(
    tmp_path: pathlib.Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    levels: list[int] = []
    monkeypatch.setattr(
        cli.logging, "basicConfig", lambda **kw: levels.append(kw["level"])
    )
    path = tmp_path / "settings.json"

    assert _run(monkeypatch, "-v", "merge", "apply", str(path), "a=1") == 0

    assert levels == [logging.INFO]
    assert path.exists()


def test_log_level_from_config(
    tmp_path: pathlib.Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    levels: list[int] = []
    monkeypatch.setattr(
        cli.logging, "basicConfig", lambda **kw: levels.append(kw["level"])
    )
    monkeypatch.setenv("CONFSPLICE_MERGE_LOG_LEVEL", "debug")

    assert _run(monkeypatch, "config", "list") == 0

    assert levels == [logging.DEBUG]


def test_bad_log_level_falls_back_to_warning(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    levels: list[int] = []
    monkeypatch.setattr(
        cli.logging, "basicConfig", lambda **kw: levels.append(kw["level"])
    )
    monkeypatch.setenv("CONFSPLICE_MERGE_LOG_LEVEL", "chatty")

    assert _run(monkeypatch, "config", "list") == 0

    assert levels == [logging.WARNING]
