"""
Condition evaluation for step gating (when / skipIf / skipIfNot).
"""
from typing import Any, Dict, Optional, Union

from quoteflow.utils.paths import get_by_path
from quoteflow.utils.schema import BaseStep, WhenCondition


ConditionLike = Union[None, str, Dict[str, Any], WhenCondition]


def is_empty(value: Any) -> bool:
    return value is None or value == "" or (isinstance(value, (list, tuple)) and len(value) == 0)


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _strict_equal(a: Any, b: Any) -> bool:
    # True == 1 in Python; conditions must not treat them as equal
    if isinstance(a, bool) or isinstance(b, bool):
        return type(a) is type(b) and a == b
    return a == b


def _contains(candidates, value) -> bool:
    return any(_strict_equal(value, c) for c in candidates or [])


def as_tree(condition: ConditionLike) -> Optional[Dict[str, Any]]:
    if condition is None:
        return None
    if isinstance(condition, WhenCondition):
        return condition.as_tree()
    if isinstance(condition, str):
        return {"field": condition}
    return condition


def evaluate(condition: ConditionLike, data: Any) -> bool:
    """
    Evaluate a condition tree against applicant data.

    Leaf predicates are checked in a fixed order; the first one present
    decides: isEmpty, oneOf, notOneOf, equals, notEquals, greaterThan,
    lessThan. A leaf with none of them tests the value's truthiness.
    """
    tree = as_tree(condition)
    if not tree:
        return True

    if "and" in tree:
        return all(evaluate(c, data) for c in tree["and"] or [])
    if "or" in tree:
        return any(evaluate(c, data) for c in tree["or"] or [])

    path = tree.get("field")
    if not path:
        return True
    value = get_by_path(data, path)

    if "isEmpty" in tree:
        return is_empty(value) == bool(tree["isEmpty"])
    if "oneOf" in tree:
        return _contains(tree["oneOf"], value)
    if "notOneOf" in tree:
        return not _contains(tree["notOneOf"], value)
    if "equals" in tree:
        return _strict_equal(value, tree["equals"])
    if "notEquals" in tree:
        return not _strict_equal(value, tree["notEquals"])
    if "greaterThan" in tree:
        return _is_number(value) and value > tree["greaterThan"]
    if "lessThan" in tree:
        return _is_number(value) and value < tree["lessThan"]
    return bool(value)


def skip_reason(step: BaseStep, data: Any) -> Optional[str]:
    """Return why a step should be skipped ('skipIfNot', 'skipIf', 'when') or None."""
    skip_if_not = step.skip_if_not
    if skip_if_not:
        if isinstance(skip_if_not, str):
            value = get_by_path(data, skip_if_not)
            if is_empty(value) or value is False:
                return "skipIfNot"
        elif not evaluate(skip_if_not, data):
            return "skipIfNot"

    skip_if = step.skip_if
    if skip_if:
        if isinstance(skip_if, str):
            value = get_by_path(data, skip_if)
            if not is_empty(value) and value is not False:
                return "skipIf"
        elif evaluate(skip_if, data):
            return "skipIf"

    if step.when is not None and not evaluate(step.when, data):
        return "when"
    return None
