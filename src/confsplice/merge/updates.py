"""Update sets: normalization, CLI value coercion, manual instructions."""

from __future__ import annotations

import collections.abc
import json
import pathlib
import re
from typing import Any

import confsplice.merge.codec

_NUMBER_RE = re.compile(r"^[0-9]+(\.[0-9]+)?$")

UpdateSet = list[tuple[str, Any]]
KeyPredicate = collections.abc.Callable[[str], bool]


def normalize(
    updates: collections.abc.Mapping[str, Any]
    | collections.abc.Iterable[tuple[str, Any]],
) -> UpdateSet:
    """Return *updates* as a list of ``(key, value)`` pairs.

    A repeated key keeps its first position and its last value.
    Raises ``ValueError`` if the set is empty or a key is not a string.
    """
    if isinstance(updates, collections.abc.Mapping):
        pairs = list(updates.items())
    else:
        pairs = list(updates)
    if not pairs:
        raise ValueError("update set must not be empty")

    merged: dict[str, Any] = {}
    for key, value in pairs:
        if not isinstance(key, str):
            raise ValueError(f"update keys must be strings, got {key!r}")
        merged[key] = value
    return list(merged.items())


def prefix_predicate(prefixes: collections.abc.Iterable[str]) -> KeyPredicate:
    """Return a predicate matching keys that start with any of *prefixes*."""
    owned = tuple(prefixes)
    return lambda key: key.startswith(owned)


def coerce_value(raw: str, as_json: bool = False) -> Any:
    """Turn a CLI string into a JSON value.

    ``true``/``false`` become booleans and plain decimal numbers become
    int or float; anything else stays a string. With *as_json* the text
    must be a JSON document.
    """
    if as_json:
        try:
            return confsplice.merge.codec.parse_strict(raw)
        except ValueError as exc:
            reason = exc.msg if isinstance(exc, json.JSONDecodeError) else exc
            raise ValueError(f"not valid JSON: {raw!r} ({reason})") from exc
    if raw in ("true", "false"):
        return raw == "true"
    match = _NUMBER_RE.match(raw)
    if match:
        return float(raw) if match.group(1) else int(raw)
    return raw


def parse_assignment(text: str, as_json: bool = False) -> tuple[str, Any]:
    """Split ``key=value`` on the first ``=`` and coerce the value."""
    key, sep, raw = text.partition("=")
    if not sep or not key:
        raise ValueError(f"Invalid assignment: {text!r} (expected key=value)")
    return key, coerce_value(raw, as_json=as_json)


def render_instructions(path: pathlib.Path, updates: UpdateSet) -> str:
    """Render *updates* as lines to add to *path* by hand."""
    lines = [f"Please add the following manually to '{path}':"]
    for key, value in updates:
        rendered = json.dumps(value, indent=2, ensure_ascii=False)
        rendered = rendered.replace("\n", "\n  ")
        lines.append(f"  {json.dumps(key)}: {rendered}")
    return "\n".join(lines)
