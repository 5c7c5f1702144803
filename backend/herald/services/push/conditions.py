"""
Condition evaluation for key/value documents.

Conditions are AND-combined. Each one reads its field through the
FieldAccessor and applies its operator:

- equals / notEquals: type-strict equality (``True`` never equals ``1``)
- lessThan / lessOrEqual / greaterThan / greaterOrEqual: native ordering when
  both sides are numbers or both are strings; other pairs never match
- arrayContains: field is a list containing the value
- arrayContainsAny: field is a list sharing at least one item with the value
- in / notIn: field value is (not) a member of the supplied list
- isNull / isNotNull: field is (not) None or absent; falsy values are not null
"""

import logging
import operator
from numbers import Real
from typing import Any, Callable, Dict, Iterable, Mapping, Optional

from herald.services.push.fields import FieldAccessor, field_accessor
from herald.services.push.models import Condition, ConditionOperator

logger = logging.getLogger(__name__)


def _is_number(value: Any) -> bool:
    return isinstance(value, Real) and not isinstance(value, bool)


def strict_equals(left: Any, right: Any) -> bool:
    """Equality that keeps bools apart from numbers, recursing into lists and maps."""
    if isinstance(left, bool) or isinstance(right, bool):
        return isinstance(left, bool) and isinstance(right, bool) and left == right
    if isinstance(left, (list, tuple)) and isinstance(right, (list, tuple)):
        return len(left) == len(right) and all(
            strict_equals(a, b) for a, b in zip(left, right)
        )
    if isinstance(left, Mapping) and isinstance(right, Mapping):
        return left.keys() == right.keys() and all(
            strict_equals(left[k], right[k]) for k in left
        )
    return left == right


def contains(items: Iterable[Any], value: Any) -> bool:
    """Membership test using strict_equals."""
    return any(strict_equals(item, value) for item in items)


def _orderable(left: Any, right: Any) -> bool:
    if _is_number(left) and _is_number(right):
        return True
    return isinstance(left, str) and isinstance(right, str)


def _ordering(compare: Callable[[Any, Any], bool]) -> Callable[[Any, Any], bool]:
    def check(source: Any, value: Any) -> bool:
        if not _orderable(source, value):
            return False
        return compare(source, value)
    return check


def _array_contains(source: Any, value: Any) -> bool:
    return isinstance(source, (list, tuple)) and contains(source, value)


def _array_contains_any(source: Any, value: Any) -> bool:
    if not isinstance(source, (list, tuple)):
        return False
    return any(contains(source, candidate) for candidate in value)


_CHECKS: Dict[ConditionOperator, Callable[[Any, Any], bool]] = {
    ConditionOperator.EQUALS: strict_equals,
    ConditionOperator.NOT_EQUALS: lambda source, value: not strict_equals(source, value),
    ConditionOperator.LESS_THAN: _ordering(operator.lt),
    ConditionOperator.LESS_OR_EQUAL: _ordering(operator.le),
    ConditionOperator.GREATER_THAN: _ordering(operator.gt),
    ConditionOperator.GREATER_OR_EQUAL: _ordering(operator.ge),
    ConditionOperator.ARRAY_CONTAINS: _array_contains,
    ConditionOperator.ARRAY_CONTAINS_ANY: _array_contains_any,
    ConditionOperator.IN: lambda source, value: contains(value, source),
    ConditionOperator.NOT_IN: lambda source, value: not contains(value, source),
    ConditionOperator.IS_NULL: lambda source, _: source is None,
    ConditionOperator.IS_NOT_NULL: lambda source, _: source is not None,
}


def log_unmet(condition: Condition) -> None:
    logger.debug(
        "Condition not met",
        extra={
            "operator": condition.operator.value if condition.operator else None,
            "field_path": condition.field_path,
        }
    )


class ConditionEvaluator:
    """
    Evaluates condition lists against documents.

    Usage:
        evaluator = ConditionEvaluator()
        evaluator.matches({"age": 30}, [Condition(type="greaterThan", key="age", value=18)])
    """

    def __init__(self, accessor: Optional[FieldAccessor] = None):
        self._accessor = accessor or field_accessor

    def evaluate(self, document: Mapping[str, Any], condition: Condition) -> bool:
        """
        Evaluate one condition against plain data.

        A condition without an operator only constrains a referenced
        document; on plain data it always holds.
        """
        if condition.operator is None:
            return True
        source = self._accessor.get(document, condition.field_path)
        return _CHECKS[condition.operator](source, condition.value)

    def matches(
        self,
        document: Optional[Mapping[str, Any]],
        conditions: Optional[Iterable[Condition]],
    ) -> bool:
        """
        Check whether every condition holds for the document.

        Args:
            document: Document data (None is treated as an empty document)
            conditions: Conditions to apply; None or empty matches everything

        Returns:
            True if all conditions hold, False at the first one that fails
        """
        if not conditions:
            return True

        data = document or {}
        for condition in conditions:
            if not self.evaluate(data, condition):
                log_unmet(condition)
                return False
        return True


def matches(document: Optional[Mapping[str, Any]], conditions: Optional[Iterable[Condition]]) -> bool:
    """Module-level shortcut for ConditionEvaluator().matches."""
    return _default_evaluator.matches(document, conditions)


_default_evaluator = ConditionEvaluator()
