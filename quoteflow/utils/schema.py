"""
Data schemas for quoteflow flow execution.

Flows, steps and field catalogs are loaded from JSON written with the
recorder camelCase keys (leadKey, domainField, skipIfNot, timeout_ms, ...).
Attributes are snake_case; run outputs (manifest, progress events) are
serialized back to camelCase.
"""
from datetime import datetime, timezone
from typing import Annotated, Any, Callable, Dict, List, Literal, Optional, Union

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    TypeAdapter,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel


def _alias(*names: str) -> AliasChoices:
    return AliasChoices(*names)


def utc_now() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


# ---------------------------------------------------------------------------
# Conditions
# ---------------------------------------------------------------------------

class WhenCondition(BaseModel):
    """Recursive boolean expression over applicant data."""
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    field: Optional[str] = None
    is_empty: Optional[bool] = Field(None, alias="isEmpty")
    equals: Any = None
    not_equals: Any = Field(None, alias="notEquals")
    one_of: Optional[List[Any]] = Field(None, alias="oneOf")
    not_one_of: Optional[List[Any]] = Field(None, alias="notOneOf")
    greater_than: Optional[float] = Field(None, alias="greaterThan")
    less_than: Optional[float] = Field(None, alias="lessThan")
    and_: Optional[List["WhenCondition"]] = Field(None, alias="and")
    or_: Optional[List["WhenCondition"]] = Field(None, alias="or")

    def as_tree(self) -> Dict[str, Any]:
        """Plain dict form keeping only the keys that were actually given."""
        return self.model_dump(by_alias=True, exclude_unset=True)


WhenCondition.model_rebuild()

Condition = Union[str, WhenCondition]


# ---------------------------------------------------------------------------
# Steps
# ---------------------------------------------------------------------------

STEP_TYPE_ALIASES = {
    "goto": "navigate",
    "waitField": "wait-for-field",
    "waitForField": "wait-for-field",
    "waitForNetworkIdle": "wait-for-network-idle",
    "fill": "fill-field",
    "fillField": "fill-field",
    "type": "type-field",
    "typeField": "type-field",
    "select": "select-field",
    "selectField": "select-field",
    "toggle": "toggle-field",
    "toggleField": "toggle-field",
    "click": "click-field",
    "clickField": "click-field",
    "enterFrame": "enter-frame",
    "exitFrame": "exit-frame",
    "pressKey": "press-key",
    "scrollIntoView": "scroll-into-view",
    "acceptConsent": "accept-consent",
}

DEFAULT_CONSENT_OVERLAYS = ["#axeptio_overlay", "#axeptio_widget", "[id^='axeptio']"]


def normalize_step_type(step: Any) -> Any:
    """Map recorder camelCase step types onto the canonical kebab-case ones."""
    if isinstance(step, dict) and step.get("type") in STEP_TYPE_ALIASES:
        return {**step, "type": STEP_TYPE_ALIASES[step["type"]]}
    return step


class BaseStep(BaseModel):
    """Attributes shared by every step kind."""
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    type: str
    label: Optional[str] = None
    optional: bool = False
    timeout: Optional[int] = Field(None, validation_alias=_alias("timeout", "timeout_ms", "timeoutMs"))
    when: Optional[Condition] = None
    skip_if: Optional[Condition] = Field(None, validation_alias=_alias("skip_if", "skipIf"))
    skip_if_not: Optional[Condition] = Field(None, validation_alias=_alias("skip_if_not", "skipIfNot"))
    value: Any = None
    lead_key: Optional[str] = Field(None, validation_alias=_alias("lead_key", "leadKey"))

    @property
    def display_name(self) -> str:
        return self.label or self.type


class FieldStep(BaseStep):
    """A step that targets a catalog field."""
    field: Optional[str] = None
    domain_field: Optional[str] = Field(None, validation_alias=_alias("domain_field", "domainField"))

    @model_validator(mode="after")
    def require_field_reference(self):
        if not self.field and not self.domain_field:
            raise ValueError(f"{self.type} step requires 'field' or 'domainField'")
        return self

    @property
    def field_name(self) -> str:
        return self.domain_field or self.field or "unknown"


class NavigateStep(BaseStep):
    type: Literal["navigate"]
    url: str
    wait_until: Literal["commit", "domcontentloaded", "load", "networkidle"] = Field(
        "domcontentloaded", validation_alias=_alias("wait_until", "waitUntil"))


class WaitForNetworkIdleStep(BaseStep):
    type: Literal["wait-for-network-idle"]


class WaitForFieldStep(FieldStep):
    type: Literal["wait-for-field"]
    state: Literal["attached", "detached", "visible", "hidden"] = "attached"


class FillFieldStep(FieldStep):
    type: Literal["fill-field"]
    templates: bool = True


class TypeFieldStep(FieldStep):
    type: Literal["type-field"]
    value: Any = Field(None, validation_alias=_alias("value", "text"))
    delay_ms: int = Field(50, validation_alias=_alias("delay_ms", "delayMs"))
    clear: bool = True
    press_enter: bool = Field(False, validation_alias=_alias("press_enter", "pressEnter"))
    press_escape: bool = Field(False, validation_alias=_alias("press_escape", "pressEscape"))
    blur: bool = True


class SelectFieldStep(FieldStep):
    type: Literal["select-field"]
    post_delay_ms: int = Field(200, validation_alias=_alias("post_delay_ms", "postDelay_ms", "postDelayMs"))


class ToggleFieldStep(FieldStep):
    type: Literal["toggle-field"]
    state: Optional[Literal["on", "off"]] = None


class ClickFieldStep(FieldStep):
    type: Literal["click-field"]


class ScrollIntoViewStep(FieldStep):
    type: Literal["scroll-into-view"]


class EnterFrameStep(BaseStep):
    type: Literal["enter-frame"]
    selector: Optional[str] = None
    url_contains: Optional[str] = Field(None, validation_alias=_alias("url_contains", "urlContains"))

    @model_validator(mode="after")
    def require_locator(self):
        if not self.selector and not self.url_contains:
            raise ValueError("enter-frame requires 'selector' or 'urlContains'")
        return self


class ExitFrameStep(BaseStep):
    type: Literal["exit-frame"]


class SleepStep(BaseStep):
    type: Literal["sleep"]
    ms: Optional[int] = Field(None, validation_alias=_alias("ms", "duration_ms", "durationMs"))

    @property
    def duration_ms(self) -> int:
        if self.ms is not None:
            return self.ms
        return self.timeout or 0


class PressKeyStep(BaseStep):
    type: Literal["press-key"]
    key: str = Field("Escape", validation_alias=_alias("key", "code"))
    field: Optional[str] = None
    domain_field: Optional[str] = Field(None, validation_alias=_alias("domain_field", "domainField"))

    @property
    def field_name(self) -> Optional[str]:
        return self.domain_field or self.field


class AcceptConsentStep(BaseStep):
    type: Literal["accept-consent"]
    selector: str
    retries: int = Field(3, ge=1)
    force: bool = False
    overlay_selectors: List[str] = Field(
        default_factory=lambda: list(DEFAULT_CONSENT_OVERLAYS),
        validation_alias=_alias("overlay_selectors", "overlaySelectors"))


class CommentStep(BaseStep):
    type: Literal["comment"]
    text: Optional[str] = Field(None, validation_alias=_alias("text", "message"))


Step = Annotated[
    Union[
        NavigateStep,
        WaitForNetworkIdleStep,
        WaitForFieldStep,
        FillFieldStep,
        TypeFieldStep,
        SelectFieldStep,
        ToggleFieldStep,
        ClickFieldStep,
        ScrollIntoViewStep,
        EnterFrameStep,
        ExitFrameStep,
        SleepStep,
        PressKeyStep,
        AcceptConsentStep,
        CommentStep,
    ],
    Field(discriminator="type"),
]

_step_adapter = TypeAdapter(Step)


def parse_step(data: Dict[str, Any]) -> BaseStep:
    """Validate one step dict (accepts recorder step type names)."""
    return _step_adapter.validate_python(normalize_step_type(data))


class Flow(BaseModel):
    """An ordered list of steps targeting one platform."""
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    slug: str
    platform: str
    name: str = ""
    description: Optional[str] = None
    trace: Literal["off", "on", "retain-on-failure"] = "off"
    steps: List[Step] = Field(default_factory=list)

    @model_validator(mode="before")
    @classmethod
    def normalize_steps(cls, data: Any) -> Any:
        if isinstance(data, dict):
            data = dict(data)
            data["steps"] = [normalize_step_type(s) for s in data.get("steps") or []]
            if not data.get("name"):
                data["name"] = data.get("slug", "")
        return data


# ---------------------------------------------------------------------------
# Field catalog
# ---------------------------------------------------------------------------

class DynamicIndex(BaseModel):
    """Index substitution settings for repeated elements (children, vehicles)."""
    model_config = ConfigDict(populate_by_name=True)

    placeholder: str = "{i}"
    index_base: int = Field(0, validation_alias=_alias("index_base", "indexBase"))


class ToggleSpec(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    click_selector: Optional[str] = Field(None, validation_alias=_alias("click_selector", "clickSelector"))
    state_on_selector: Optional[str] = Field(
        None, validation_alias=_alias("state_on_selector", "stateOnSelector"))


class OptionItem(BaseModel):
    """One enumerated option of a select or radio-group field."""
    model_config = ConfigDict(populate_by_name=True)

    value: Any = None
    label: Optional[str] = None
    option_selector: Optional[str] = Field(
        None, validation_alias=_alias("option_selector", "optionSelector", "selector"))


class FieldOptions(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    open_selector: Optional[str] = Field(None, validation_alias=_alias("open_selector", "openSelector"))
    option_selector_template: Optional[str] = Field(
        None, validation_alias=_alias("option_selector_template", "optionSelectorTemplate"))
    items: List[OptionItem] = Field(default_factory=list)


class FieldSelectorDefinition(BaseModel):
    """
    Platform selector definition for one domain field.

    selector may be a plain string or a callable taking the repetition index.
    adapter may be a callable or the name of a registered value adapter.
    """
    model_config = ConfigDict(populate_by_name=True, arbitrary_types_allowed=True)

    key: Optional[str] = None
    domain_key: Optional[str] = Field(None, validation_alias=_alias("domain_key", "domainKey"))
    type: Optional[str] = None
    label: Optional[str] = None
    selector: Optional[Union[str, Callable[[int], str]]] = None
    value_map: Optional[Dict[str, Any]] = Field(None, validation_alias=_alias("value_map", "valueMap"))
    adapter: Optional[Union[str, Callable[[Any], Any]]] = None
    dynamic_index: Optional[DynamicIndex] = Field(
        None, validation_alias=_alias("dynamic_index", "dynamicIndex"))
    options: Optional[FieldOptions] = None
    toggle: Optional[ToggleSpec] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)

    @model_validator(mode="before")
    @classmethod
    def lift_legacy_layout(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        data = dict(data)
        metadata = data.get("metadata") or {}
        for legacy, names in (("dynamicIndex", ("dynamicIndex", "dynamic_index")), ("toggle", ("toggle",))):
            if legacy in metadata and not any(name in data for name in names):
                data[names[0]] = metadata[legacy]
        for name in ("dynamicIndex", "dynamic_index"):
            if data.get(name) is True:
                data[name] = {}
            elif data.get(name) is False:
                data[name] = None
        if isinstance(data.get("options"), list):
            data["options"] = {"items": data["options"]}
        return data

    @model_validator(mode="after")
    def check_dynamic_selector(self):
        if self.dynamic_index is None or callable(self.selector):
            return self
        target = self.selector
        if target is None and self.options is not None:
            target = self.options.open_selector
        if target is not None and self.dynamic_index.placeholder not in target:
            raise ValueError(
                f"Field {self.name} has dynamicIndex but selector {target!r} "
                f"does not contain {self.dynamic_index.placeholder!r}")
        return self

    @property
    def name(self) -> str:
        return self.domain_key or self.key or "unknown"


class FieldCatalog(BaseModel):
    """All selector definitions for one platform."""
    model_config = ConfigDict(populate_by_name=True, arbitrary_types_allowed=True)

    platform: Optional[str] = None
    fields: List[FieldSelectorDefinition] = Field(default_factory=list)

    @model_validator(mode="before")
    @classmethod
    def accept_mapping(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        if "fields" not in data:
            data = {
                "platform": data.get("platform"),
                "fields": {k: v for k, v in data.items() if k != "platform"},
            }
        fields = data.get("fields")
        if isinstance(fields, dict):
            converted = []
            for domain_key, definition in fields.items():
                if isinstance(definition, str) or callable(definition):
                    definition = {"selector": definition}
                if isinstance(definition, FieldSelectorDefinition):
                    update = {}
                    if definition.domain_key is None:
                        update["domain_key"] = domain_key
                    if definition.key is None:
                        update["key"] = domain_key
                    converted.append(definition.model_copy(update=update))
                else:
                    definition = dict(definition)
                    if "domainKey" not in definition and "domain_key" not in definition:
                        definition["domainKey"] = domain_key
                    definition.setdefault("key", domain_key)
                    converted.append(definition)
            data = {**data, "fields": converted}
        return data


# ---------------------------------------------------------------------------
# Run options and outputs
# ---------------------------------------------------------------------------

class CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, alias_generator=to_camel)

    def to_json_dict(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class RunOptions(CamelModel):
    """Execution options supplied by the caller."""
    mode: Literal["headless", "visible"] = "headless"
    dom: Literal["none", "all", "steps", "errors"] = "errors"
    a11y: bool = False
    keep_open: bool = False
    out_root: str = "data/runs"
    chrome: Optional[str] = None
    video: bool = False
    slow_mo: Optional[int] = None
    default_timeout_ms: int = 15000

    @field_validator("mode", mode="before")
    @classmethod
    def legacy_modes(cls, value: Any) -> Any:
        if value in ("dev", "dev_private", "visible", "headed"):
            return "visible"
        if value in ("prod", "headless", None):
            return "headless"
        return value


class StepResult(CamelModel):
    """Execution result for a step."""
    index: int
    type: str
    label: Optional[str] = None
    ok: bool
    skipped: Optional[bool] = None
    reason: Optional[str] = None
    optional: Optional[bool] = None
    ms: int = 0
    error: Optional[str] = None
    error_type: Optional[str] = None
    screenshot: Optional[str] = None


class RunInfo(CamelModel):
    id: str
    slug: str
    platform: str
    started_at: str = Field(default_factory=utc_now)
    finished_at: Optional[str] = None
    mode: str = "headless"
    status: Literal["idle", "running", "success", "failed"] = "idle"
    chrome: Optional[str] = None


class RunManifest(CamelModel):
    """The run's final structured summary (index.json)."""
    run: RunInfo
    env: Dict[str, Any] = Field(default_factory=dict)
    options: Dict[str, Any] = Field(default_factory=dict)
    steps: List[StepResult] = Field(default_factory=list)
    artifacts: Dict[str, Optional[str]] = Field(default_factory=dict)


class ProgressEvent(CamelModel):
    """One line of the progress stream."""
    ts: str = Field(default_factory=utc_now)
    type: str
    status: Literal["start", "success", "error", "skipped"]
    step_index: Optional[int] = None
    total_steps: Optional[int] = None
    message: Optional[str] = None
    screenshot_path: Optional[str] = None
