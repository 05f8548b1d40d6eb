"""Configuration for the JSON merge pipeline."""

from __future__ import annotations

import dataclasses

import confsplice.config


@confsplice.config.configurable("merge")
@dataclasses.dataclass
class MergeConfig:
    # Parser used for existing content: "json" or "json5"
    codec: str = "json"

    # Output formatting
    indent: int = 2
    trailing_newline: bool = True

    # Backup naming: <name>.<backup_tag>-<timestamp>
    backup_tag: str = "backup"
    timestamp_format: str = "%Y%m%d%H%M%S"

    quarantine_suffix: str = ".invalid"

    log_level: str = "WARNING"
