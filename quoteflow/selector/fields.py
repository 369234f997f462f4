"""
Field resolution: map a step's field reference to a catalog selector
definition and apply dynamic indexes for repeated elements.
"""
import re
from typing import List, Optional

from Levenshtein import distance as levenshtein_distance

from quoteflow.utils.errors import FieldNotFoundError, SelectorMissingError
from quoteflow.utils.schema import BaseStep, FieldCatalog, FieldOptions, FieldSelectorDefinition


_LEAD_KEY_BRACKET = re.compile(r"\[(\d+)\]")
_LEAD_KEY_DOT = re.compile(r"\.(\d+)(?:\.|$)")
_VALUE_TEMPLATE_INDEX = re.compile(r"\{\s*lead\.[^}]*\[(\d+)\]")


def suggest_keys(catalog: FieldCatalog, key: str, limit: int = 3) -> List[str]:
    """Closest catalog keys by Levenshtein distance, for error messages."""
    threshold = max(2, len(key) // 4)
    scored = []
    for definition in catalog.fields:
        for candidate in {definition.domain_key, definition.key}:
            if not candidate:
                continue
            dist = levenshtein_distance(key.lower(), candidate.lower())
            if dist <= threshold:
                scored.append((dist, candidate))
    seen = []
    for _, candidate in sorted(scored):
        if candidate not in seen:
            seen.append(candidate)
    return seen[:limit]


def resolve_field_def(step: BaseStep, catalog: FieldCatalog) -> FieldSelectorDefinition:
    """
    Find the definition a step refers to.

    domainField is matched against domain keys first; field is then matched
    against catalog keys.
    """
    domain_field = getattr(step, "domain_field", None)
    field = getattr(step, "field", None)

    if domain_field:
        for definition in catalog.fields:
            if definition.domain_key == domain_field:
                return definition
    if field:
        for definition in catalog.fields:
            if definition.key == field:
                return definition

    missing = domain_field or field or "<none>"
    raise FieldNotFoundError(missing, suggest_keys(catalog, missing))


def extract_dynamic_index(step: BaseStep) -> Optional[int]:
    lead_key = step.lead_key if isinstance(step.lead_key, str) else ""

    match = _LEAD_KEY_BRACKET.search(lead_key) or _LEAD_KEY_DOT.search(lead_key)
    if match:
        return int(match.group(1))

    if isinstance(step.value, str):
        match = _VALUE_TEMPLATE_INDEX.search(step.value)
        if match:
            return int(match.group(1))
    return None


def with_dynamic_index(field_def: FieldSelectorDefinition, i: int) -> FieldSelectorDefinition:
    """Copy of field_def with its index placeholder replaced by i + indexBase."""
    if field_def.dynamic_index is None:
        return field_def.model_copy(deep=True)

    placeholder = field_def.dynamic_index.placeholder
    actual = i + field_def.dynamic_index.index_base

    def apply(selector):
        if selector is None:
            return None
        if callable(selector):
            return selector(actual)
        return selector.replace(placeholder, str(actual))

    update = {"selector": apply(field_def.selector)}
    if field_def.options is not None:
        options = field_def.options
        items = [item.model_copy(update={"option_selector": apply(item.option_selector)})
                 for item in options.items]
        update["options"] = FieldOptions(
            open_selector=apply(options.open_selector),
            option_selector_template=apply(options.option_selector_template),
            items=items,
        )
    return field_def.model_copy(update=update, deep=True)


def resolve(step: BaseStep, catalog: FieldCatalog) -> FieldSelectorDefinition:
    field_def = resolve_field_def(step, catalog)
    index = extract_dynamic_index(step)
    if index is not None and field_def.dynamic_index is not None:
        field_def = with_dynamic_index(field_def, index)
    return field_def


def selector_of(field_def: FieldSelectorDefinition) -> str:
    """The usable selector string, calling a callable selector with the index base."""
    selector = field_def.selector
    if callable(selector):
        base = field_def.dynamic_index.index_base if field_def.dynamic_index else 0
        selector = selector(base)
    if not selector:
        raise SelectorMissingError(f"Field {field_def.name} has no selector")
    return selector
