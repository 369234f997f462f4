"""
Dry-run helpers: describe, explain and validate a flow without a browser.
"""
from typing import Any, Dict, List, Mapping, Optional

from quoteflow.resolvers import value as values
from quoteflow.resolvers.condition import skip_reason
from quoteflow.selector import fields
from quoteflow.utils.errors import FlowError
from quoteflow.utils.paths import ResolveContext, resolve_template
from quoteflow.utils.schema import BaseStep, FieldCatalog, Flow


def describe_step(step: BaseStep) -> str:
    """Short human-readable description used in progress messages."""
    name = getattr(step, "field_name", None)
    kind = step.type
    if kind == "navigate":
        return f"Go to {step.url}"
    if kind == "fill-field":
        return f"Fill {name}"
    if kind == "type-field":
        return f"Type into {name}"
    if kind == "select-field":
        return f"Select {name}"
    if kind == "toggle-field":
        return f"Toggle {name}" + (f" -> {step.state}" if step.state else "")
    if kind == "click-field":
        return f"Click {name}"
    if kind == "wait-for-field":
        return f"Wait for {name}"
    if kind == "wait-for-network-idle":
        return "Wait for network idle"
    if kind == "press-key":
        return f"Press {step.key}" + (f" on {name}" if name else "")
    if kind == "scroll-into-view":
        return f"Scroll to {name}"
    if kind == "accept-consent":
        return "Accept consent"
    if kind == "sleep":
        return f"Pause {step.duration_ms}ms"
    if kind == "enter-frame":
        return f"Enter frame {step.selector or 'url~' + (step.url_contains or '')}"
    if kind == "exit-frame":
        return "Exit frame"
    if kind == "comment":
        return step.text or "Comment"
    return kind


_FIELD_STEPS = {
    "wait-for-field", "fill-field", "type-field", "select-field",
    "toggle-field", "click-field", "scroll-into-view",
}


def _has_field(step: BaseStep) -> bool:
    return step.type in _FIELD_STEPS or (step.type == "press-key" and bool(step.field_name))


def explain_flow(flow: Flow, catalog: FieldCatalog, lead: Optional[Dict[str, Any]] = None,
                 credentials: Optional[Dict[str, Any]] = None,
                 env: Optional[Mapping[str, str]] = None) -> List[Dict[str, Any]]:
    """
    Resolve every step as the runner would, without touching a browser.

    Each entry carries the step description, the skip decision, the
    resolved field and selector, and the raw and mapped value. Resolution
    errors are reported per step instead of raised.
    """
    ctx = ResolveContext(lead=lead or {}, credentials=credentials or {}, env=env if env is not None else {})
    report = []
    for index, step in enumerate(flow.steps):
        entry: Dict[str, Any] = {
            "index": index,
            "type": step.type,
            "description": describe_step(step),
            "skip": skip_reason(step, ctx.lead),
        }
        if step.type == "navigate":
            entry["url"] = resolve_template(step.url, ctx)
        if _has_field(step):
            try:
                field_def = fields.resolve(step, catalog)
                entry["field"] = field_def.name
                entry["selector"] = fields.selector_of(field_def) if field_def.selector else None
                entry["rawValue"] = values.resolve(step, ctx)
                entry["value"] = values.resolve_with_mapping(
                    step, ctx, field_def, templates=getattr(step, "templates", True))
            except (FlowError, ValueError) as e:
                entry["error"] = str(e)
        report.append(entry)
    return report


def validate_flow(flow: Flow, catalog: FieldCatalog) -> List[str]:
    """Problems that would fail the run regardless of the lead data."""
    problems = []
    for index, step in enumerate(flow.steps):
        if not _has_field(step):
            continue
        try:
            field_def = fields.resolve(step, catalog)
        except FlowError as e:
            problems.append(f"Step {index + 1} ({step.type}): {e}")
            continue
        has_options = field_def.options is not None and (
            field_def.options.open_selector or field_def.options.items)
        has_toggle = field_def.toggle is not None and field_def.toggle.click_selector
        if not field_def.selector and not has_options and not has_toggle:
            problems.append(f"Step {index + 1} ({step.type}): field {field_def.name} has no selector")
    return problems
