"""Tests for the declarative condition evaluator."""

from __future__ import annotations

from typing import Any

import pytest

from litestar_automation.core.conditions import (
    MAX_DEPTH,
    InvalidCondition,
    decode_condition,
    evaluate,
    is_valid_expression,
    resolve_path,
)

DATA: dict[str, Any] = {
    "triggerData": {
        "status": "Done",
        "storyPoints": 5,
        "estimate": "8",
        "labels": ["bug", "ui"],
        "title": "Fix login button",
        "assignee": {"id": "u-1", "teams": [{"name": "core"}]},
        "blocked": False,
        "description": "",
    },
    "variables": {"threshold": 3},
}


@pytest.mark.unit
class TestResolvePath:
    """Tests for dotted path lookup."""

    def test_nested_mapping(self) -> None:
        assert resolve_path(DATA, "triggerData.assignee.id") == "u-1"

    def test_list_index(self) -> None:
        assert resolve_path(DATA, "triggerData.assignee.teams.0.name") == "core"

    def test_missing_returns_default(self) -> None:
        assert resolve_path(DATA, "triggerData.unknown.deep") is None
        assert resolve_path(DATA, "triggerData.unknown", "n/a") == "n/a"

    def test_out_of_range_index(self) -> None:
        assert resolve_path(DATA, "triggerData.labels.9") is None

    def test_empty_path_returns_root(self) -> None:
        assert resolve_path(DATA, "") is DATA


@pytest.mark.unit
class TestEvaluate:
    """Tests for evaluate()."""

    @pytest.mark.parametrize(
        ("expr", "expected"),
        [
            ({"==": [{"var": "triggerData.status"}, "Done"]}, True),
            ({"!=": [{"var": "triggerData.status"}, "Done"]}, False),
            ({"==": [{"var": "triggerData.estimate"}, 8]}, True),
            ({"===": [{"var": "triggerData.estimate"}, 8]}, False),
            ({"!==": [{"var": "triggerData.estimate"}, 8]}, True),
            ({">": [{"var": "triggerData.storyPoints"}, {"var": "variables.threshold"}]}, True),
            ({">=": [{"var": "triggerData.storyPoints"}, 5]}, True),
            ({"<": [{"var": "triggerData.estimate"}, 10]}, True),
            ({"<=": [{"var": "triggerData.storyPoints"}, 4]}, False),
            ({"<": [1, {"var": "triggerData.storyPoints"}, 10]}, True),
            ({"<=": [6, {"var": "triggerData.storyPoints"}, 10]}, False),
            ({"in": ["login", {"var": "triggerData.title"}]}, True),
            ({"in": ["bug", {"var": "triggerData.labels"}]}, True),
            ({"in": ["perf", {"var": "triggerData.labels"}]}, False),
            ({"in": [5, {"var": "triggerData.storyPoints"}]}, True),
            ({"in": ["8", 18.0]}, True),
            ({"in": [True, 1]}, False),
            ({"!": [{"var": "triggerData.description"}]}, True),
            ({"!!": [{"var": "triggerData.labels"}]}, True),
            ({"!": {"var": "triggerData.blocked"}}, True),
        ],
    )
    def test_operators(self, expr: dict[str, Any], expected: bool) -> None:
        assert evaluate(expr, DATA) is expected

    def test_and_or(self) -> None:
        expr = {
            "or": [
                {"and": [{"==": [{"var": "triggerData.status"}, "Open"]}, True]},
                {"in": ["ui", {"var": "triggerData.labels"}]},
            ]
        }
        assert evaluate(expr, DATA) is True
        assert evaluate({"and": [True, {"var": "triggerData.blocked"}]}, DATA) is False

    def test_var_default(self) -> None:
        assert evaluate({"==": [{"var": ["triggerData.missing", "x"]}, "x"]}, DATA) is True

    def test_missing_var_is_none(self) -> None:
        assert evaluate({"==": [{"var": "triggerData.missing"}, None]}, DATA) is True

    def test_incomparable_operands_are_false(self) -> None:
        assert evaluate({">": [{"var": "triggerData.labels"}, 1]}, DATA) is False
        assert evaluate({"<": [None, 1]}, DATA) is False

    def test_string_comparison(self) -> None:
        assert evaluate({"<": ["apple", "banana"]}, {}) is True

    def test_booleans_never_equal_numbers(self) -> None:
        assert evaluate({"==": [True, 1]}, {}) is False

    def test_literals_follow_truthiness(self) -> None:
        assert evaluate(True, {}) is True
        assert evaluate(0, {}) is False
        assert evaluate([], {}) is False

    def test_legacy_string_decoded(self) -> None:
        assert evaluate('{"==": [{"var": "triggerData.status"}, "Done"]}', DATA) is True

    @pytest.mark.parametrize(
        "expr",
        [
            "triggerData.status === 'Done'",
            "__import__('os').system('echo pwned')",
            '"just a string"',
            {"eval": ["1 + 1"]},
            {"==": [1, 1], "!=": [1, 2]},
            {"==": [1]},
            {"!": [1, 2]},
            {"var": [{"unknown": []}]},
            InvalidCondition("broken"),
        ],
    )
    def test_malformed_input_is_false(self, expr: Any) -> None:
        assert evaluate(expr, DATA) is False

    def test_deep_nesting_is_false(self) -> None:
        expr: Any = True
        for _ in range(MAX_DEPTH + 5):
            expr = {"!!": [expr]}
        assert evaluate(expr, {}) is False

    def test_none_data(self) -> None:
        assert evaluate({"==": [{"var": "a"}, None]}, None) is True

    @pytest.mark.parametrize("operator", ["==", ">", "<", "!="])
    def test_oversized_integer_is_not_a_number(self, operator: str) -> None:
        huge = int("9" * 400)

        assert evaluate({operator: [{"var": "x"}, huge]}, {"x": "1"}) is (operator == "!=")

    def test_oversized_integer_in_legacy_string(self) -> None:
        assert evaluate('{">": [{"var": "x"}, ' + "9" * 400 + "]}", {"x": 1}) is False

    def test_deeply_nested_legacy_string_is_false(self) -> None:
        assert evaluate("[" * 100_000 + "]" * 100_000, {}) is False


@pytest.mark.unit
class TestIsValidExpression:
    """Tests for structural validation."""

    def test_valid_tree(self) -> None:
        assert is_valid_expression({"and": [{"==": [{"var": "a"}, 1]}, {"!": [{"var": "b"}]}]})

    def test_literal(self) -> None:
        assert is_valid_expression(True)

    def test_unknown_operator(self) -> None:
        assert not is_valid_expression({"exec": ["print(1)"]})

    def test_wrong_arity(self) -> None:
        assert not is_valid_expression({"<": [1, 2, 3, 4]})

    def test_string_must_decode(self) -> None:
        assert is_valid_expression('{"==": [1, 1]}')
        assert not is_valid_expression("a == b")

    def test_invalid_marker(self) -> None:
        assert not is_valid_expression(InvalidCondition("a == b"))

    def test_unsupported_literal(self) -> None:
        assert not is_valid_expression({"==": [object(), 1]})

    def test_deeply_nested_string(self) -> None:
        assert not is_valid_expression("[" * 100_000 + "]" * 100_000)


@pytest.mark.unit
class TestDecodeCondition:
    """Tests for legacy condition decoding."""

    def test_tree_passes_through(self) -> None:
        tree = {"==": [1, 1]}
        assert decode_condition(tree) == tree

    def test_json_string(self) -> None:
        assert decode_condition(' {"!!": [{"var": "x"}]} ') == {"!!": [{"var": "x"}]}

    @pytest.mark.parametrize("value", ["", "   ", "x > 1", '"quoted"', '{"nope": [1]}'])
    def test_rejected(self, value: str) -> None:
        assert decode_condition(value) is None

    def test_deeply_nested_string_is_rejected(self) -> None:
        assert decode_condition('{"!!": ' + "[" * 100_000 + "]" * 100_000 + "}") is None
