"""
Unit tests for condition evaluation and step skip decisions.
"""
import pytest

from quoteflow.resolvers.condition import evaluate, is_empty, skip_reason
from quoteflow.utils.schema import WhenCondition, parse_step


DATA = {
    "subscriber": {"status": "TNS", "age": 42, "married": True, "children": 0},
    "spouse": {"birthDate": "1982-01-01"},
    "children": [],
    "empty": "",
    "flag": False,
}

CONDITIONS = [
    {"field": "subscriber.status", "equals": "TNS"},
    {"field": "subscriber.status", "equals": "SALARIE"},
    {"field": "spouse", "isEmpty": False},
    {"field": "children", "isEmpty": True},
    {"field": "subscriber.age", "greaterThan": 40},
    {"field": "subscriber.age", "lessThan": 18},
    {"field": "subscriber.status", "oneOf": ["TNS", "EXPLOITANT"]},
    {"field": "subscriber.status", "notOneOf": ["TNS"]},
    {"field": "flag"},
]


@pytest.mark.parametrize("condition", CONDITIONS)
def test_singleton_and_or_identity(condition):
    assert evaluate({"and": [condition]}, DATA) == evaluate(condition, DATA)
    assert evaluate({"or": [condition]}, DATA) == evaluate(condition, DATA)


def test_absent_condition_is_true():
    assert evaluate(None, DATA) == True
    assert evaluate({}, DATA) == True


def test_leaf_predicates():
    assert evaluate({"field": "subscriber.status", "notEquals": "SALARIE"}, DATA)
    assert evaluate({"field": "subscriber.age", "greaterThan": 40}, DATA)
    assert not evaluate({"field": "subscriber.age", "lessThan": 40}, DATA)
    assert evaluate({"field": "empty", "isEmpty": True}, DATA)
    assert evaluate({"field": "missing", "isEmpty": True}, DATA)


def test_predicate_precedence():
    # isEmpty wins over equals when both are present
    assert evaluate({"field": "spouse", "isEmpty": False, "equals": "nope"}, DATA)
    # oneOf wins over equals
    assert evaluate({"field": "subscriber.status", "oneOf": ["TNS"], "equals": "X"}, DATA)


def test_numeric_predicates_reject_non_numbers():
    assert not evaluate({"field": "subscriber.status", "greaterThan": 0}, DATA)
    assert not evaluate({"field": "subscriber.married", "greaterThan": 0}, DATA)
    assert not evaluate({"field": "missing", "lessThan": 100}, DATA)


def test_equality_is_strict_about_booleans():
    assert not evaluate({"field": "subscriber.married", "equals": 1}, DATA)
    assert evaluate({"field": "subscriber.married", "equals": True}, DATA)
    assert not evaluate({"field": "subscriber.children", "equals": False}, DATA)


def test_nested_branches():
    condition = {"and": [
        {"field": "subscriber.status", "equals": "TNS"},
        {"or": [{"field": "subscriber.age", "lessThan": 30}, {"field": "spouse", "isEmpty": False}]},
    ]}
    assert evaluate(condition, DATA)
    assert evaluate(WhenCondition.model_validate(condition), DATA)


def test_string_condition_is_a_path():
    assert evaluate("spouse", DATA)
    assert not evaluate("flag", DATA)


def test_is_empty():
    assert is_empty(None) and is_empty("") and is_empty([]) and is_empty(())
    assert not is_empty(0)
    assert not is_empty(False)
    assert not is_empty("x")


def _step(**extra):
    return parse_step({"type": "comment", "text": "x", **extra})


def test_skip_if_not_string_form():
    assert skip_reason(_step(skipIfNot="spouse"), {}) == "skipIfNot"
    assert skip_reason(_step(skipIfNot="flag"), DATA) == "skipIfNot"
    assert skip_reason(_step(skipIfNot="children"), DATA) == "skipIfNot"
    assert skip_reason(_step(skipIfNot="spouse"), DATA) is None


def test_skip_if_forms():
    assert skip_reason(_step(skipIf="spouse"), DATA) == "skipIf"
    assert skip_reason(_step(skipIf="flag"), DATA) is None
    assert skip_reason(_step(skipIf={"field": "subscriber.status", "equals": "TNS"}), DATA) == "skipIf"
    assert skip_reason(_step(skipIf={"field": "subscriber.status", "equals": "X"}), DATA) is None


def test_when_form():
    assert skip_reason(_step(when={"field": "subscriber.age", "lessThan": 18}), DATA) == "when"
    assert skip_reason(_step(when={"field": "subscriber.age", "greaterThan": 18}), DATA) is None


def test_skip_order():
    step = _step(skipIfNot="missing", skipIf="spouse", when={"field": "flag"})
    assert skip_reason(step, DATA) == "skipIfNot"
    step = _step(skipIf="spouse", when={"field": "flag"})
    assert skip_reason(step, DATA) == "skipIf"
