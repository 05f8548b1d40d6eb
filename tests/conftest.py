"""Shared test fixtures for confsplice tests."""

from __future__ import annotations

import datetime
import json
import os
import pathlib

import pytest

import confsplice.config
import confsplice.merge.merger

START = datetime.datetime(2026, 1, 2, 3, 4, 5)


class StepClock:
    """Returns START, then one second later on every call."""

    def __init__(self, start: datetime.datetime = START) -> None:
        self.current = start

    def __call__(self) -> datetime.datetime:
        now = self.current
        self.current += datetime.timedelta(seconds=1)
        return now


@pytest.fixture(autouse=True)
def isolated_config(
    tmp_path: pathlib.Path, monkeypatch: pytest.MonkeyPatch
) -> pathlib.Path:
    """Keep user-wide and project config files out of every test."""
    global_toml = tmp_path / "global_config" / "config.toml"
    monkeypatch.setattr(confsplice.config, "_global_path", lambda: global_toml)
    for var in list(os.environ):
        if var.startswith(confsplice.config.ENV_PREFIX):
            monkeypatch.delenv(var)
    monkeypatch.chdir(tmp_path)
    return global_toml


@pytest.fixture
def clock() -> StepClock:
    return StepClock()


@pytest.fixture
def merger(tmp_path: pathlib.Path, clock: StepClock):
    return confsplice.merge.merger.ConfigMerger(clock=clock, root=tmp_path)


@pytest.fixture
def settings_file(tmp_path: pathlib.Path):
    """Factory for creating a .vscode/settings.json file."""

    def _create(settings: dict | list | None = None, raw: str | None = None):
        vscode_dir = tmp_path / ".vscode"
        vscode_dir.mkdir(parents=True, exist_ok=True)
        path = vscode_dir / "settings.json"
        if raw is not None:
            path.write_text(raw)
        else:
            path.write_text(json.dumps({} if settings is None else settings, indent=2))
        return path

    return _create
