"""Layered settings for confsplice itself, persisted as TOML.

Sections are dataclasses registered with ``@configurable(name)``.
``load(name)`` builds an instance from four layers, later ones winning:

    dataclass defaults
    ~/.config/confsplice/config.toml      (global)
    <root>/.confsplice/config.toml        (local; root is the git repo or cwd)
    CONFSPLICE_<SECTION>_<KEY> env vars   (per process)

Override files are rewritten atomically, the same way merged JSON files
are.
"""

from __future__ import annotations

import dataclasses
import logging
import os
import pathlib
import tomllib
from typing import Any, TypeVar

T = TypeVar("T")

logger = logging.getLogger("confsplice.config")

ENV_PREFIX = "CONFSPLICE_"

_REGISTRY: dict[str, type] = {}
_TRUE = ("true", "1", "yes", "on")
_FALSE = ("false", "0", "no", "off")


def configurable(section: str):
    """Register the decorated dataclass as config section *section*."""

    def decorator(cls: type[T]) -> type[T]:
        if not dataclasses.is_dataclass(cls):
            raise TypeError(f"{cls.__name__} must be a dataclass")
        _REGISTRY[section] = cls
        return cls

    return decorator


def _section_cls(section: str) -> type:
    try:
        return _REGISTRY[section]
    except KeyError:
        raise KeyError(f"Unknown config section: {section}") from None


def _fields(cls: type) -> dict[str, dataclasses.Field]:
    return {f.name: f for f in dataclasses.fields(cls)}


# ---------------------------------------------------------------------------
# Locations
# ---------------------------------------------------------------------------

def _global_path() -> pathlib.Path:
    return pathlib.Path.home() / ".config" / "confsplice" / "config.toml"


def _local_path(root: pathlib.Path) -> pathlib.Path:
    return root / ".confsplice" / "config.toml"


def _scope_path(scope: str, root: pathlib.Path | None) -> pathlib.Path:
    if scope == "global":
        return _global_path()
    if scope == "local":
        return _local_path(_find_root(root))
    raise ValueError(f"Unknown scope {scope!r} (expected 'local' or 'global')")


def find_repo_root(cwd: pathlib.Path) -> pathlib.Path | None:
    """Return the nearest directory at or above *cwd* holding ``.git``."""
    current = cwd.resolve()
    for candidate in (current, *current.parents):
        if (candidate / ".git").exists():
            return candidate
    return None


def _find_root(root: pathlib.Path | None = None) -> pathlib.Path:
    if root is not None:
        return root
    cwd = pathlib.Path.cwd()
    return find_repo_root(cwd) or cwd


# ---------------------------------------------------------------------------
# TOML files
# ---------------------------------------------------------------------------

def _load_toml(path: pathlib.Path) -> dict[str, Any]:
    try:
        text = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return {}
    except OSError as exc:
        logger.warning("Ignoring unreadable config %s: %s", path, exc)
        return {}
    try:
        return tomllib.loads(text)
    except tomllib.TOMLDecodeError as exc:
        logger.warning("Ignoring malformed config %s: %s", path, exc)
        return {}


def _write_toml(path: pathlib.Path, data: dict[str, Any]) -> None:
    import tomli_w

    import confsplice.merge.atomic

    path.parent.mkdir(parents=True, exist_ok=True)
    confsplice.merge.atomic.write_text(path, tomli_w.dumps(data))


# ---------------------------------------------------------------------------
# Values
# ---------------------------------------------------------------------------

def _field_type(cls: type, field_name: str) -> type:
    """Resolve the annotation of *field_name* to int/float/bool/str."""
    field = _fields(cls).get(field_name)
    if field is None:
        raise KeyError(field_name)
    annotation = field.type
    if isinstance(annotation, str):
        return {"int": int, "float": float, "bool": bool}.get(annotation, str)
    return annotation


def _coerce(value: str, target_type: type) -> Any:
    """Convert a string from the CLI or environment to *target_type*.

    Raises ``ValueError`` when the text does not fit the type.
    """
    if target_type is bool:
        lowered = value.strip().lower()
        if lowered in _TRUE:
            return True
        if lowered in _FALSE:
            return False
        raise ValueError(f"Expected a boolean, got {value!r}")
    if target_type is int:
        return int(value)
    if target_type is float:
        return float(value)
    return value


def _env_overrides(section: str, cls: type) -> dict[str, Any]:
    overrides: dict[str, Any] = {}
    for name in _fields(cls):
        var = f"{ENV_PREFIX}{section}_{name}".upper()
        raw = os.environ.get(var)
        if raw is None:
            continue
        try:
            overrides[name] = _coerce(raw, _field_type(cls, name))
        except ValueError as exc:
            logger.warning("Ignoring %s: %s", var, exc)
    return overrides


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def list_sections() -> dict[str, type]:
    return dict(_REGISTRY)


def load(section: str, root: pathlib.Path | None = None) -> Any:
    """Return the effective config for *section* as a dataclass instance."""
    cls = _section_cls(section)
    root = _find_root(root)
    valid = _fields(cls)

    merged: dict[str, Any] = {}
    for path in (_global_path(), _local_path(root)):
        layer = _load_toml(path).get(section, {})
        unknown = sorted(set(layer) - set(valid))
        if unknown:
            logger.debug("Unknown keys in [%s] of %s: %s", section, path, unknown)
        merged.update((k, v) for k, v in layer.items() if k in valid)
    merged.update(_env_overrides(section, cls))
    return cls(**merged)


def get_effective(
    section: str,
    key: str,
    root: pathlib.Path | None = None,
) -> Any:
    instance = load(section, root)
    if key not in _fields(type(instance)):
        raise KeyError(f"Unknown key: {section}.{key}")
    return getattr(instance, key)


def set_value(
    section: str,
    key: str,
    value: Any,
    *,
    scope: str = "local",
    root: pathlib.Path | None = None,
) -> pathlib.Path:
    """Persist an override for ``section.key``; returns the file written.

    String values are coerced to the field's type first.
    """
    cls = _section_cls(section)
    if key not in _fields(cls):
        raise KeyError(f"Unknown key: {section}.{key}")
    if isinstance(value, str):
        value = _coerce(value, _field_type(cls, key))

    path = _scope_path(scope, root)
    data = _load_toml(path)
    data.setdefault(section, {})[key] = value
    _write_toml(path, data)
    logger.info("Set %s.%s in %s", section, key, path)
    return path


def reset_value(
    section: str,
    key: str,
    *,
    scope: str = "local",
    root: pathlib.Path | None = None,
) -> bool:
    """Drop the override for ``section.key``; returns whether one existed."""
    path = _scope_path(scope, root)
    data = _load_toml(path)
    table = data.get(section, {})
    if key not in table:
        return False
    del table[key]
    if not table:
        del data[section]
    _write_toml(path, data)
    logger.info("Reset %s.%s in %s", section, key, path)
    return True
