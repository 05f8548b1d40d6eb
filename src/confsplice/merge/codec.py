"""JSON codecs used to read and write configuration files.

Reading goes through the configured codec so comment-tolerant formats
(``json5``) can be parsed. Writing always produces strict JSON, which
every supported codec can read back.
"""

from __future__ import annotations

import importlib
import json
import pathlib
from typing import TYPE_CHECKING, Any

import confsplice.merge.errors

if TYPE_CHECKING:
    from types import ModuleType

# codec name -> importable module providing ``loads``
CODECS = {
    "json": "json",
    "json5": "json5",
}


def load_codec(name: str, path: pathlib.Path) -> ModuleType:
    """Import the module backing codec *name*.

    Raises ``DependencyMissing`` if it is not installed, and
    ``ValueError`` for an unknown codec name.
    """
    module_name = CODECS.get(name)
    if module_name is None:
        raise ValueError(
            f"Unknown codec {name!r} (expected one of: {', '.join(CODECS)})"
        )
    try:
        return importlib.import_module(module_name)
    except ImportError:
        raise confsplice.merge.errors.DependencyMissing(path, name) from None


def _reject_constant(name: str) -> Any:
    raise ValueError(f"{name} is not valid JSON")


def parse(codec: ModuleType, text: str) -> Any:
    """Parse *text*; raises ``ValueError`` on malformed input.

    The ``json`` codec rejects ``NaN`` and ``Infinity``, which the
    standard library accepts by default.
    """
    if codec is json:
        return json.loads(text, parse_constant=_reject_constant)
    return codec.loads(text)


def parse_strict(text: str) -> Any:
    """Parse *text* as strict JSON, whatever codec read the original."""
    return parse(json, text)


def non_finite_reason(document: Any) -> str | None:
    """Return why *document* cannot be written as strict JSON, or ``None``."""
    try:
        json.dumps(document, allow_nan=False)
    except ValueError:
        return "contains NaN or Infinity"
    return None


def dumps(document: Any, *, indent: int = 2, trailing_newline: bool = True) -> str:
    """Serialize *document* deterministically as strict JSON.

    Raises ``ValueError`` for NaN or infinite floats.
    """
    text = json.dumps(document, indent=indent, ensure_ascii=False, allow_nan=False)
    if trailing_newline:
        text += "\n"
    return text
