"""Tests for confsplice.merge.updates."""

from __future__ import annotations

import pathlib

import pytest

import confsplice.merge.updates


class TestNormalize:
    def test_mapping_keeps_order(self) -> None:
        pairs = confsplice.merge.updates.normalize({"b": 1, "a": 2})
        assert pairs == [("b", 1), ("a", 2)]

    def test_pairs_accepted(self) -> None:
        pairs = confsplice.merge.updates.normalize(iter([("x", True)]))
        assert pairs == [("x", True)]

    def test_repeated_key_keeps_last_value(self) -> None:
        pairs = confsplice.merge.updates.normalize([("a", 1), ("b", 2), ("a", 3)])
        assert pairs == [("a", 3), ("b", 2)]

    def test_empty_rejected(self) -> None:
        with pytest.raises(ValueError, match="must not be empty"):
            confsplice.merge.updates.normalize([])

    def test_non_string_key_rejected(self) -> None:
        with pytest.raises(ValueError, match="must be strings"):
            confsplice.merge.updates.normalize({1: "x"})


class TestPrefixPredicate:
    def test_matches_any_prefix(self) -> None:
        owned = confsplice.merge.updates.prefix_predicate(["sweetpad.", "swift."])
        assert owned("sweetpad.build.x")
        assert owned("swift.path")
        assert not owned("editor.tabSize")


class TestCoerceValue:
    @pytest.mark.parametrize(
        ("raw", "expected"),
        [
            ("true", True),
            ("false", False),
            ("42", 42),
            ("3.5", 3.5),
            ("True", "True"),
            ("-1", "-1"),
            ("1e3", "1e3"),
            ("", ""),
            ("App.xcworkspace", "App.xcworkspace"),
        ],
    )
    def test_guessing(self, raw: str, expected: object) -> None:
        value = confsplice.merge.updates.coerce_value(raw)
        assert value == expected
        assert type(value) is type(expected)

    def test_as_json(self) -> None:
        value = confsplice.merge.updates.coerce_value('["-a", 2]', as_json=True)
        assert value == ["-a", 2]

    def test_as_json_invalid(self) -> None:
        with pytest.raises(ValueError, match="not valid JSON"):
            confsplice.merge.updates.coerce_value("{nope", as_json=True)

    @pytest.mark.parametrize("raw", ["NaN", "Infinity", '[1, -Infinity]'])
    def test_as_json_rejects_non_finite(self, raw: str) -> None:
        with pytest.raises(ValueError, match="not valid JSON"):
            confsplice.merge.updates.coerce_value(raw, as_json=True)


class TestParseAssignment:
    def test_splits_on_first_equals(self) -> None:
        key, value = confsplice.merge.updates.parse_assignment("env=A=B")
        assert (key, value) == ("env", "A=B")

    def test_empty_value_is_empty_string(self) -> None:
        assert confsplice.merge.updates.parse_assignment("k=") == ("k", "")

    @pytest.mark.parametrize("text", ["novalue", "=1"])
    def test_rejects_bad_format(self, text: str) -> None:
        with pytest.raises(ValueError, match="Invalid assignment"):
            confsplice.merge.updates.parse_assignment(text)


class TestRenderInstructions:
    def test_renders_each_key(self) -> None:
        text = confsplice.merge.updates.render_instructions(
            pathlib.Path("/tmp/settings.json"),
            [("a.b", True), ("files.exclude", {"x": 1})],
        )
        lines = text.splitlines()
        assert lines[0] == "Please add the following manually to '/tmp/settings.json':"
        assert lines[1] == '  "a.b": true'
        assert lines[2] == '  "files.exclude": {'
        assert lines[3] == '    "x": 1'
        assert lines[4] == "  }"
