"""
Unit tests for catalog field resolution and dynamic indexes.
"""
import pytest

from quoteflow.selector.fields import (
    extract_dynamic_index,
    resolve,
    resolve_field_def,
    selector_of,
    with_dynamic_index,
)
from quoteflow.utils.errors import FieldNotFoundError, SelectorMissingError
from quoteflow.utils.schema import FieldSelectorDefinition, parse_step


def _step(**extra):
    return parse_step({"type": "fill-field", **extra})


def test_domain_field_then_key(catalog):
    assert resolve_field_def(_step(domainField="subscriber.lastName"), catalog).key == "nom"
    assert resolve_field_def(_step(field="email"), catalog).domain_key == "subscriber.email"
    # unknown domainField falls back to field
    assert resolve_field_def(_step(domainField="nope", field="email"), catalog).key == "email"


def test_missing_field_suggests_close_keys(catalog):
    with pytest.raises(FieldNotFoundError) as excinfo:
        resolve_field_def(_step(domainField="subscriber.lastNam"), catalog)
    assert "subscriber.lastName" in excinfo.value.suggestions
    assert "did you mean" in str(excinfo.value)


def test_extract_dynamic_index():
    assert extract_dynamic_index(_step(field="x", leadKey="children[2].birthDate")) == 2
    assert extract_dynamic_index(_step(field="x", leadKey="children.1.birthDate")) == 1
    assert extract_dynamic_index(_step(field="x", leadKey="children.3")) == 3
    assert extract_dynamic_index(_step(field="x", value="{lead.children[4].birthDate}")) == 4
    assert extract_dynamic_index(_step(field="x", leadKey="subscriber.birthDate")) is None


def test_dynamic_index_with_index_base():
    """Index 0 with indexBase 1 targets the first rendered row."""
    field_def = FieldSelectorDefinition.model_validate(
        {"key": "child", "selector": "#child-{i}", "dynamicIndex": {"indexBase": 1}})
    assert with_dynamic_index(field_def, 0).selector == "#child-1"
    # the catalog definition itself is untouched
    assert field_def.selector == "#child-{i}"


def test_dynamic_index_applies_to_options():
    field_def = FieldSelectorDefinition.model_validate({
        "key": "child_regime",
        "selector": "#regime-{i}",
        "dynamicIndex": True,
        "options": {
            "open_selector": "#regime-{i} .open",
            "option_selector_template": "#regime-{i} option[value='{value}']",
            "items": [{"value": "A", "option_selector": "#regime-{i} li.a"}],
        },
    })
    indexed = with_dynamic_index(field_def, 2)
    assert indexed.options.open_selector == "#regime-2 .open"
    assert indexed.options.option_selector_template == "#regime-2 option[value='{value}']"
    assert indexed.options.items[0].option_selector == "#regime-2 li.a"
    assert field_def.options.items[0].option_selector == "#regime-{i} li.a"


def test_callable_selector():
    field_def = FieldSelectorDefinition(key="c", selector=lambda i: f"#row{i} input",
                                        dynamic_index={"index_base": 1})
    assert with_dynamic_index(field_def, 1).selector == "#row2 input"
    assert selector_of(field_def) == "#row1 input"


def test_resolve_applies_index_only_to_dynamic_fields(catalog):
    assert resolve(_step(domainField="children.birthDate", leadKey="children[1].birthDate"), catalog).selector == "#child-2"
    assert resolve(_step(domainField="subscriber.lastName", leadKey="names[3]"), catalog).selector == "#nom"


def test_selector_missing(catalog):
    madelin = resolve_field_def(_step(field="madelin"), catalog)
    with pytest.raises(SelectorMissingError):
        selector_of(madelin)
