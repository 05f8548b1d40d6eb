"""Pure document transforms. No file I/O; callers handle persistence."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from confsplice.merge.updates import KeyPredicate, UpdateSet


def apply_updates(
    base: dict[str, Any],
    updates: UpdateSet,
    managed: KeyPredicate | None = None,
) -> dict[str, Any]:
    """Return a new document with *updates* applied to *base*.

    Keys present in *updates* are replaced in place. Keys matched by
    *managed* but absent from *updates* are dropped, so a tool can retire
    keys it owns. Every other key is kept as is. Values replace whole
    (no recursive merge of nested objects).
    """
    incoming = dict(updates)
    merged: dict[str, Any] = {}
    for key, value in base.items():
        if key in incoming:
            merged[key] = incoming.pop(key)
        elif managed is not None and managed(key):
            continue
        else:
            merged[key] = value
    merged.update(incoming)
    return merged


def entry_identity(entry: Any, identity: str) -> Any:
    """Return the identity value of a list entry, or ``None``."""
    if isinstance(entry, dict):
        return entry.get(identity)
    return None


def apply_entries(
    base: list[Any],
    entries: list[dict[str, Any]],
    identity: str,
) -> list[Any]:
    """Drop entries of *base* sharing an identity with *entries*, then append.

    Entries without the identity field (and non-object entries) are
    never dropped.
    """
    replaced = [entry[identity] for entry in entries]
    kept = []
    for entry in base:
        current = entry_identity(entry, identity)
        if current is None or current not in replaced:
            kept.append(entry)
    return kept + list(entries)


def check_entries(entries: list[Any], identity: str) -> list[dict[str, Any]]:
    """Validate new entries; each must be an object carrying *identity*."""
    if not entries:
        raise ValueError("entry list must not be empty")
    for entry in entries:
        if not isinstance(entry, dict) or identity not in entry:
            raise ValueError(
                f"every entry must be an object with a {identity!r} field, "
                f"got {entry!r}"
            )
    return list(entries)


def describe_shape(document: Any) -> str:
    """Return the JSON type name of *document* for messages."""
    if isinstance(document, dict):
        return "object"
    if isinstance(document, list):
        return "array"
    if isinstance(document, str):
        return "string"
    if isinstance(document, bool):
        return "boolean"
    if document is None:
        return "null"
    return "number"
