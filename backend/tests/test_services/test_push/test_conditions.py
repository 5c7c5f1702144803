"""
Tests for document condition evaluation.
"""

import pytest

from herald.services.push.conditions import ConditionEvaluator, matches, strict_equals
from herald.services.push.models import Condition


def cond(operator, key, value=None):
    return Condition(type=operator, key=key, value=value)


@pytest.fixture
def evaluator():
    return ConditionEvaluator()


@pytest.fixture
def document():
    return {
        "age": 30,
        "name": "alice",
        "verified": True,
        "tags": ["vip", "beta"],
        "count": 0,
        "nickname": None,
        "address": {"city": "Oslo"},
    }


class TestEqualityOperators:
    """equals / notEquals."""

    def test_equals(self, evaluator, document):
        assert evaluator.evaluate(document, cond("equals", "age", 30))
        assert not evaluator.evaluate(document, cond("equals", "age", 31))

    def test_equals_is_type_strict(self, evaluator, document):
        assert not evaluator.evaluate(document, cond("equals", "verified", 1))
        assert not evaluator.evaluate(document, cond("equals", "age", "30"))

    def test_not_equals(self, evaluator, document):
        assert evaluator.evaluate(document, cond("notEquals", "name", "bob"))
        assert not evaluator.evaluate(document, cond("notEquals", "name", "alice"))

    def test_nested_path(self, evaluator, document):
        assert evaluator.evaluate(document, cond("equals", "address.city", "Oslo"))

    def test_strict_equals_recurses(self):
        assert strict_equals({"a": [1, True]}, {"a": [1, True]})
        assert not strict_equals({"a": [1, True]}, {"a": [1, 1]})


class TestOrderingOperators:
    """lessThan / lessOrEqual / greaterThan / greaterOrEqual."""

    @pytest.mark.parametrize("operator,value,expected", [
        ("lessThan", 31, True),
        ("lessThan", 30, False),
        ("lessOrEqual", 30, True),
        ("greaterThan", 18, True),
        ("greaterThan", 30, False),
        ("greaterOrEqual", 30.0, True),
    ])
    def test_numbers(self, evaluator, document, operator, value, expected):
        assert evaluator.evaluate(document, cond(operator, "age", value)) is expected

    def test_strings(self, evaluator, document):
        assert evaluator.evaluate(document, cond("greaterThan", "name", "aaron"))

    def test_mixed_types_never_match(self, evaluator, document):
        assert not evaluator.evaluate(document, cond("greaterThan", "name", 1))
        assert not evaluator.evaluate(document, cond("lessThan", "age", "99"))
        assert not evaluator.evaluate(document, cond("greaterThan", "verified", 0))

    def test_absent_field_never_matches(self, evaluator, document):
        assert not evaluator.evaluate(document, cond("lessThan", "missing", 10))


class TestArrayOperators:
    """arrayContains / arrayContainsAny."""

    def test_array_contains(self, evaluator, document):
        assert evaluator.evaluate(document, cond("arrayContains", "tags", "vip"))
        assert not evaluator.evaluate(document, cond("arrayContains", "tags", "alpha"))

    def test_array_contains_on_non_list(self, evaluator, document):
        assert not evaluator.evaluate(document, cond("arrayContains", "name", "a"))

    def test_array_contains_any(self, evaluator, document):
        assert evaluator.evaluate(document, cond("arrayContainsAny", "tags", ["alpha", "beta"]))
        assert not evaluator.evaluate(document, cond("arrayContainsAny", "tags", ["alpha"]))


class TestMembershipOperators:
    """in / notIn."""

    def test_in(self, evaluator, document):
        assert evaluator.evaluate(document, cond("in", "name", ["alice", "bob"]))
        assert not evaluator.evaluate(document, cond("in", "name", ["bob"]))

    def test_not_in(self, evaluator, document):
        assert evaluator.evaluate(document, cond("notIn", "name", ["bob"]))
        assert not evaluator.evaluate(document, cond("notIn", "name", ["alice"]))

    def test_not_in_absent_field_matches(self, evaluator, document):
        assert evaluator.evaluate(document, cond("notIn", "missing", ["x"]))


class TestNullOperators:
    """isNull / isNotNull."""

    def test_is_null(self, evaluator, document):
        assert evaluator.evaluate(document, cond("isNull", "nickname"))
        assert evaluator.evaluate(document, cond("isNull", "missing"))

    def test_falsy_values_are_not_null(self, evaluator, document):
        assert not evaluator.evaluate(document, cond("isNull", "count"))
        assert evaluator.evaluate(document, cond("isNotNull", "count"))
        assert evaluator.evaluate({"flag": False}, cond("isNotNull", "flag"))


class TestMatches:
    """AND combination of conditions."""

    def test_empty_conditions_match(self, evaluator, document):
        assert evaluator.matches(document, [])
        assert evaluator.matches(document, None)

    def test_all_conditions_must_hold(self, evaluator, document):
        conditions = [cond("equals", "verified", True), cond("greaterThan", "age", 40)]

        assert not evaluator.matches(document, conditions)
        assert evaluator.matches(document, conditions[:1])

    def test_none_document_is_empty(self):
        assert matches(None, [cond("isNull", "anything")])
        assert not matches(None, [cond("equals", "a", 1)])

    def test_condition_without_operator_holds_on_plain_data(self, evaluator, document):
        condition = Condition(key="account", value={"type": "equals", "key": "plan", "value": "pro"})

        assert evaluator.matches(document, [condition])
