"""Tests for confsplice.merge.document: pure transforms."""

from __future__ import annotations

import pytest

import confsplice.merge.document


class TestApplyUpdates:
    def test_replaces_in_place_and_appends(self) -> None:
        base = {"a": 1, "b": 2, "c": 3}
        merged = confsplice.merge.document.apply_updates(base, [("b", 20), ("d", 4)])
        assert list(merged.items()) == [("a", 1), ("b", 20), ("c", 3), ("d", 4)]

    def test_does_not_mutate_base(self) -> None:
        base = {"a": 1}
        confsplice.merge.document.apply_updates(base, [("a", 2)])
        assert base == {"a": 1}

    def test_managed_keys_dropped_unless_updated(self) -> None:
        base = {"own.a": 1, "own.b": 2, "other": 3}
        merged = confsplice.merge.document.apply_updates(
            base, [("own.b", 5)], managed=lambda k: k.startswith("own.")
        )
        assert merged == {"own.b": 5, "other": 3}

    def test_nested_values_replace_whole(self) -> None:
        base = {"x": {"keep": True, "old": 1}}
        merged = confsplice.merge.document.apply_updates(base, [("x", {"new": 2})])
        assert merged == {"x": {"new": 2}}

    def test_idempotent(self) -> None:
        updates = [("a", [1, 2]), ("b", None)]
        once = confsplice.merge.document.apply_updates({"z": 0}, updates)
        twice = confsplice.merge.document.apply_updates(once, updates)
        assert list(twice.items()) == list(once.items())


class TestApplyEntries:
    def test_replaces_matching_and_appends(self) -> None:
        base = [{"key": "a", "v": 1}, {"key": "b", "v": 1}, {"key": "c", "v": 1}]
        merged = confsplice.merge.document.apply_entries(
            base, [{"key": "b", "v": 2}, {"key": "d", "v": 2}], "key"
        )
        assert merged == [
            {"key": "a", "v": 1},
            {"key": "c", "v": 1},
            {"key": "b", "v": 2},
            {"key": "d", "v": 2},
        ]

    def test_keeps_entries_without_identity(self) -> None:
        base = ["loose", {"when": "x"}, {"key": "a"}]
        merged = confsplice.merge.document.apply_entries(base, [{"key": "a"}], "key")
        assert merged == ["loose", {"when": "x"}, {"key": "a"}]

    def test_unhashable_identity(self) -> None:
        base = [{"id": ["x", 1]}, {"id": ["y"]}]
        merged = confsplice.merge.document.apply_entries(
            base, [{"id": ["x", 1], "n": 1}], "id"
        )
        assert merged == [{"id": ["y"]}, {"id": ["x", 1], "n": 1}]


class TestCheckEntries:
    def test_accepts_valid(self) -> None:
        entries = [{"label": "Build"}]
        assert confsplice.merge.document.check_entries(entries, "label") == entries

    def test_rejects_empty(self) -> None:
        with pytest.raises(ValueError, match="must not be empty"):
            confsplice.merge.document.check_entries([], "key")

    @pytest.mark.parametrize("entry", [{"command": "x"}, "cmd+b", None])
    def test_rejects_entry_without_identity(self, entry: object) -> None:
        with pytest.raises(ValueError, match="'key' field"):
            confsplice.merge.document.check_entries([entry], "key")


@pytest.mark.parametrize(
    ("document", "shape"),
    [
        ({}, "object"),
        ([], "array"),
        ("s", "string"),
        (True, "boolean"),
        (None, "null"),
        (1.5, "number"),
    ],
)
def test_describe_shape(document: object, shape: str) -> None:
    assert confsplice.merge.document.describe_shape(document) == shape
