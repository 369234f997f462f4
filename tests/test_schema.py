"""
Unit tests for flow, step and catalog models.
"""
import pytest
from pydantic import ValidationError

from quoteflow.utils.schema import (
    FieldCatalog,
    FieldSelectorDefinition,
    FillFieldStep,
    Flow,
    NavigateStep,
    ProgressEvent,
    RunOptions,
    StepResult,
    parse_step,
)


def test_camel_case_step_names_are_normalized():
    flow = Flow.model_validate({
        "slug": "demo_login",
        "platform": "demo",
        "steps": [
            {"type": "goto", "url": "https://quote.test"},
            {"type": "fillField", "domainField": "subscriber.lastName", "leadKey": "subscriber.lastName"},
            {"type": "waitForNetworkIdle"},
            {"type": "clickField", "field": "submit", "timeout_ms": 5000},
        ],
    })
    assert [s.type for s in flow.steps] == ["navigate", "fill-field", "wait-for-network-idle", "click-field"]
    assert isinstance(flow.steps[0], NavigateStep)
    assert isinstance(flow.steps[1], FillFieldStep)
    assert flow.steps[1].lead_key == "subscriber.lastName"
    assert flow.steps[3].timeout == 5000
    assert flow.name == "demo_login"


def test_unknown_step_type_rejected():
    with pytest.raises(ValidationError):
        parse_step({"type": "dance", "field": "x"})


def test_field_step_requires_a_field_reference():
    with pytest.raises(ValidationError):
        parse_step({"type": "fill-field", "value": "x"})


def test_enter_frame_requires_locator():
    with pytest.raises(ValidationError):
        parse_step({"type": "enter-frame"})
    assert parse_step({"type": "enterFrame", "urlContains": "quote"}).url_contains == "quote"


def test_flow_is_frozen():
    flow = Flow.model_validate({"slug": "s", "platform": "p", "steps": []})
    with pytest.raises(ValidationError):
        flow.slug = "other"


def test_step_defaults():
    typed = parse_step({"type": "typeField", "field": "nom", "text": "abc"})
    assert typed.value == "abc"
    assert typed.delay_ms == 50 and typed.clear and typed.blur
    assert parse_step({"type": "select-field", "field": "x", "postDelay_ms": 50}).post_delay_ms == 50
    assert parse_step({"type": "sleep", "timeout_ms": 300}).duration_ms == 300
    assert parse_step({"type": "pressKey"}).key == "Escape"
    consent = parse_step({"type": "acceptConsent", "selector": "#ok"})
    assert consent.retries == 3 and "#axeptio_overlay" in consent.overlay_selectors


def test_catalog_from_mapping():
    catalog = FieldCatalog.model_validate({
        "platform": "demo",
        "subscriber.lastName": "#nom",
        "subscriber.regime": {"selector": "#regime", "valueMap": {"*": "x"}},
    })
    by_key = {f.domain_key: f for f in catalog.fields}
    assert by_key["subscriber.lastName"].selector == "#nom"
    assert by_key["subscriber.regime"].value_map == {"*": "x"}
    assert catalog.platform == "demo"


def test_catalog_accepts_python_definitions():
    catalog = FieldCatalog(fields={"children.birthDate": FieldSelectorDefinition(
        selector=lambda i: f"#child-{i}", dynamic_index=True)})
    field_def = catalog.fields[0]
    assert field_def.domain_key == "children.birthDate"
    assert field_def.selector(3) == "#child-3"


def test_legacy_metadata_layout_is_lifted():
    field_def = FieldSelectorDefinition.model_validate({
        "key": "madelin",
        "selector": "#madelin-{i}",
        "metadata": {"dynamicIndex": True, "toggle": {"click_selector": "#t", "state_on_selector": "#t.on"}},
        "options": [{"value": "oui", "selector": "#oui"}],
    })
    assert field_def.dynamic_index is not None and field_def.dynamic_index.placeholder == "{i}"
    assert field_def.toggle.click_selector == "#t"
    assert field_def.options.items[0].option_selector == "#oui"


def test_dynamic_index_requires_parameterized_selector():
    with pytest.raises(ValidationError):
        FieldSelectorDefinition.model_validate({"key": "c", "selector": "#child", "dynamicIndex": True})


def test_run_options_legacy_modes():
    assert RunOptions(mode="dev_private").mode == "visible"
    assert RunOptions(mode="prod").mode == "headless"
    assert RunOptions.model_validate({"keepOpen": True, "outRoot": "/tmp/x"}).keep_open


def test_outputs_serialize_camel_case():
    event = ProgressEvent(type="fill-field", status="success", step_index=2, total_steps=5)
    data = event.to_json_dict()
    assert data["stepIndex"] == 2 and data["totalSteps"] == 5
    assert "screenshotPath" not in data

    result = StepResult(index=0, type="wait-for-field", ok=False, error="boom", error_type="DriverTimeoutError")
    assert result.to_json_dict()["errorType"] == "DriverTimeoutError"
