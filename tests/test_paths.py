"""
Unit tests for path lookup and template expansion.
"""
import pytest

from quoteflow.utils.paths import ResolveContext, get_by_path, resolve_template, set_by_path, split_path, stringify


LEAD = {
    "subscriber": {"lastName": "Durand", "birthDate": "1980-04-02", "children": 2},
    "children": [{"birthDate": "2010-01-01"}, {"birthDate": "2014-06-30"}],
    "spouse": None,
}


def test_split_path():
    assert split_path("children[1].birthDate") == ["children", "1", "birthDate"]
    assert split_path("children.1.birthDate") == ["children", "1", "birthDate"]
    assert split_path("a['b'].c") == ["a", "b", "c"]


def test_get_by_path_nested_and_indexed():
    assert get_by_path(LEAD, "subscriber.lastName") == "Durand"
    assert get_by_path(LEAD, "children[1].birthDate") == "2014-06-30"
    assert get_by_path(LEAD, "children.0.birthDate") == "2010-01-01"


def test_get_by_path_missing_never_raises():
    assert get_by_path(LEAD, "subscriber.missing.deeper") is None
    assert get_by_path(LEAD, "children[5].birthDate") is None
    assert get_by_path(LEAD, "children.x") is None
    assert get_by_path(LEAD, "subscriber.lastName.length") is None
    assert get_by_path(None, "a") is None
    assert get_by_path(LEAD, "") is None
    assert get_by_path(LEAD, None) is None


@pytest.mark.parametrize("path, value", [
    ("a", 1),
    ("a.b.c", "x"),
    ("items[2].name", "third"),
    ("items.0", {"k": "v"}),
    ("deep.list[0][1]", False),
])
def test_set_then_get_round_trip(path, value):
    obj = set_by_path({}, path, value)
    assert get_by_path(obj, path) == value


def test_set_by_path_creates_lists_for_numeric_segments():
    obj = set_by_path({}, "children[1].birthDate", "2014-06-30")
    assert obj == {"children": [None, {"birthDate": "2014-06-30"}]}


def test_set_by_path_keeps_existing_siblings():
    obj = {"subscriber": {"lastName": "Durand"}}
    set_by_path(obj, "subscriber.firstName", "Marie")
    assert obj["subscriber"] == {"lastName": "Durand", "firstName": "Marie"}


def test_set_by_path_rejects_empty_path():
    with pytest.raises(ValueError):
        set_by_path({}, "", 1)


def test_stringify():
    assert stringify(None) == ""
    assert stringify(True) == "true"
    assert stringify(False) == "false"
    assert stringify(3.0) == "3"
    assert stringify(2.5) == "2.5"
    assert stringify("abc") == "abc"


def test_resolve_template_namespaces():
    ctx = ResolveContext(lead=LEAD, credentials={"username": "agent@example.com"}, env={"BASE_URL": "https://quote.test"})
    assert resolve_template("{env.BASE_URL}/login", ctx) == "https://quote.test/login"
    assert resolve_template("{credentials.username}", ctx) == "agent@example.com"
    assert resolve_template("Hello { lead.subscriber.lastName }", ctx) == "Hello Durand"
    assert resolve_template("{lead.subscriber.children} kids", ctx) == "2 kids"


def test_resolve_template_unresolved_tokens():
    ctx = ResolveContext(lead=LEAD, credentials={}, env={})
    # missing lead values become empty, other namespaces stay verbatim
    assert resolve_template("[{lead.spouse.birthDate}]", ctx) == "[]"
    assert resolve_template("{credentials.password}", ctx) == "{credentials.password}"
    assert resolve_template("{env.NOPE}", ctx) == "{env.NOPE}"
    assert resolve_template("{other.thing}", ctx) == "{other.thing}"


def test_resolve_template_non_string_passthrough():
    ctx = ResolveContext(lead=LEAD)
    assert resolve_template(42, ctx) == 42
    assert resolve_template(None, ctx) is None
