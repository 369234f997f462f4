"""
Step value resolution: literal value or lead lookup, then templates,
value maps and adapters.
"""
from typing import Any, Optional

from quoteflow.resolvers.adapters import apply_adapter
from quoteflow.utils.paths import ResolveContext, get_by_path, has_template, resolve_template, stringify
from quoteflow.utils.schema import BaseStep, FieldSelectorDefinition


def resolve(step: BaseStep, ctx: ResolveContext) -> Any:
    """step.value if defined, else the lead value at step.lead_key, else None."""
    if step.value is not None:
        return step.value
    if step.lead_key:
        return get_by_path(ctx.lead, step.lead_key)
    return None


def apply_value_map(value: Any, value_map: Optional[dict]) -> Any:
    if value is None or not value_map:
        return value
    key = stringify(value)
    if key in value_map:
        return value_map[key]
    if "*" in value_map:
        return value_map["*"]
    if "__default" in value_map:
        return value_map["__default"]
    return value


def resolve_with_mapping(step: BaseStep, ctx: ResolveContext,
                         field_def: Optional[FieldSelectorDefinition] = None,
                         templates: bool = True) -> Any:
    value = resolve(step, ctx)
    if templates and has_template(value):
        value = resolve_template(value, ctx)
    if field_def is None:
        return value
    value = apply_value_map(value, field_def.value_map)
    return apply_adapter(field_def.adapter, value)
