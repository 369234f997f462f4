"""
Form-field step executors.

Each executor resolves its catalog field and value, then acts on the
current scope of the context stack (page or entered frame).
"""
import logging
from typing import Any

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from quoteflow.executor.context import ExecutionContext
from quoteflow.resolvers import value as values
from quoteflow.resolvers.condition import is_empty
from quoteflow.selector import fields
from quoteflow.utils.errors import MissingValueError, SelectorMissingError
from quoteflow.utils.paths import has_template, resolve_template, stringify
from quoteflow.utils.schema import FieldSelectorDefinition

logger = logging.getLogger(__name__)


FILL_SCRIPT = """
({selector, value}) => {
  const el = document.querySelector(selector);
  if (!el) return { success: false, error: 'Element not found' };
  const descriptor = Object.getOwnPropertyDescriptor(Object.getPrototypeOf(el), 'value');
  if (descriptor && descriptor.set) {
    descriptor.set.call(el, value);
  } else {
    el.value = value;
  }
  el.setAttribute('value', value);
  for (const name of ['input', 'change', 'blur']) {
    el.dispatchEvent(new Event(name, { bubbles: true }));
  }
  const jq = window.jQuery;
  if (typeof jq === 'function') {
    const $el = jq(el);
    if (typeof $el.datepicker === 'function') {
      try { $el.datepicker('hide'); } catch (e) {}
    }
    $el.trigger('input').trigger('change').trigger('keyup').trigger('blur');
  }
  return { success: true, value: el.value };
}
"""

FORCE_SELECT_SCRIPT = """
(opt) => {
  const select = opt.closest('select');
  if (!select) return false;
  for (const other of Array.from(select.options)) {
    other.selected = false;
    other.removeAttribute('selected');
  }
  select.value = opt.value;
  opt.selected = true;
  opt.setAttribute('selected', 'selected');
  select.dispatchEvent(new Event('input', { bubbles: true }));
  select.dispatchEvent(new Event('change', { bubbles: true }));
  return true;
}
"""


def _log_value(step, value: Any) -> str:
    name = step.field_name.lower()
    if "password" in name or (isinstance(step.value, str) and "credentials." in step.value):
        return "***"
    return stringify(value)


def require_value(step, value: Any, command: str) -> bool:
    """
    True when the step has a value to act on.

    An optional step with no value is skipped (False); a required one raises.
    """
    if not is_empty(value):
        return True
    if step.optional:
        logger.info("[%s] %s = SKIPPED (optional, missing value)", command, step.field_name)
        return False
    raise MissingValueError(
        f"Missing value for {step.field_name} (leadKey={step.lead_key or ''}, value={step.value or ''})")


def build_option_selector(template: str, value: str) -> str:
    return template.replace("{{value}}", value).replace("{value}", value)


async def wait_for_field(step, ctx: ExecutionContext) -> None:
    field_def = fields.resolve(step, ctx.catalog)
    selector = fields.selector_of(field_def)
    logger.info("[wait-for-field] %s (%s)", step.field_name, step.state)
    await ctx.scope.wait_for_selector(selector, state=step.state, timeout=ctx.timeout_for(step))


async def _type_into(locator, text: str, ctx: ExecutionContext, delay_ms: int = 50,
                     clear: bool = True, press_escape: bool = True, blur: bool = True,
                     press_enter: bool = False) -> None:
    await locator.click()
    await ctx.pause(200)
    if clear:
        await locator.clear()
    await locator.press_sequentially(text, delay=delay_ms)
    if press_enter:
        await locator.press("Enter")
    if press_escape:
        await ctx.pause(200)
        await locator.press("Escape")
    if blur:
        await locator.blur()


async def fill_field(step, ctx: ExecutionContext) -> None:
    field_def = fields.resolve(step, ctx.catalog)
    value = values.resolve_with_mapping(step, ctx.resolve, field_def, templates=step.templates)
    if not require_value(step, value, "fill-field"):
        return

    selector = fields.selector_of(field_def)
    text = stringify(value)
    logger.info("[fill-field] %s = %s", step.field_name, _log_value(step, value))

    try:
        result = await ctx.scope.evaluate(FILL_SCRIPT, {"selector": selector, "value": text})
        if isinstance(result, dict) and result.get("success"):
            return
        reason = result.get("error") if isinstance(result, dict) else result
        logger.info("[fill-field] %s direct assignment failed (%s), typing instead", step.field_name, reason)
    except PlaywrightError as e:
        logger.info("[fill-field] %s direct assignment raised (%s), typing instead", step.field_name, e)

    await _type_into(ctx.scope.locator(selector), text, ctx)


async def type_field(step, ctx: ExecutionContext) -> None:
    field_def = fields.resolve(step, ctx.catalog)
    value = values.resolve_with_mapping(step, ctx.resolve, field_def)
    if not require_value(step, value, "type-field"):
        return

    selector = fields.selector_of(field_def)
    logger.info("[type-field] %s = %s", step.field_name, _log_value(step, value))
    await _type_into(
        ctx.scope.locator(selector),
        stringify(value),
        ctx,
        delay_ms=step.delay_ms,
        clear=step.clear,
        press_escape=step.press_escape,
        blur=step.blur,
        press_enter=step.press_enter,
    )


def _match_item(field_def: FieldSelectorDefinition, value: Any):
    items = field_def.options.items if field_def.options else []
    wanted = stringify(value)
    for item in items:
        if stringify(item.value) == wanted:
            return item
    for item in items:
        if item.label is not None and item.label.lower() == wanted.lower():
            return item
    return None


async def select_field(step, ctx: ExecutionContext) -> None:
    field_def = fields.resolve(step, ctx.catalog)
    value = values.resolve_with_mapping(step, ctx.resolve, field_def)
    if not require_value(step, value, "select-field"):
        return

    scope = ctx.scope
    options = field_def.options
    open_selector = options.open_selector if options and options.open_selector else None
    if open_selector is None:
        open_selector = fields.selector_of(field_def)
    text = stringify(value)
    logger.info("[select-field] %s -> %s", step.field_name, text)

    if not options or not options.items:
        template = options.option_selector_template if options else None
        try:
            await scope.select_option(open_selector, text, timeout=ctx.timeout_for(step))
        except PlaywrightError as e:
            if not template:
                raise
            logger.info("[select-field] %s native select failed (%s), forcing option", step.field_name, e)
            try:
                await scope.click(open_selector)
            except PlaywrightError as click_error:
                logger.debug("[select-field] opening %s failed: %s", open_selector, click_error)
            await ctx.pause(150)
            handle = await scope.wait_for_selector(
                build_option_selector(template, text), state="attached", timeout=5000)
            await handle.evaluate(FORCE_SELECT_SCRIPT)
        await ctx.pause(step.post_delay_ms)
        return

    await scope.click(open_selector)
    await ctx.pause(300)
    item = _match_item(field_def, value)
    if item is None or not item.option_selector:
        raise SelectorMissingError(f"No option selector for {step.field_name}:{text}")
    await scope.wait_for_selector(item.option_selector, state="visible", timeout=5000)
    await scope.click(item.option_selector)
    await ctx.pause(step.post_delay_ms)


async def toggle_field(step, ctx: ExecutionContext) -> None:
    field_def = fields.resolve(step, ctx.catalog)
    if step.state is not None:
        want_on = step.state == "on"
    else:
        raw = values.resolve_with_mapping(step, ctx.resolve, field_def)
        want_on = bool(raw) and raw not in ("false", "0")

    scope = ctx.scope
    toggle = field_def.toggle
    if toggle is None or not toggle.click_selector or not toggle.state_on_selector:
        # plain checkbox
        selector = fields.selector_of(field_def)
        is_on = await scope.is_checked(selector)
        logger.info("[toggle-field] %s -> %s (checked=%s)", step.field_name, "on" if want_on else "off", is_on)
        if is_on != want_on:
            await scope.click(selector)
        return

    is_on = await scope.locator(toggle.state_on_selector).count() > 0
    logger.info("[toggle-field] %s -> %s (currently %s)", step.field_name,
                "on" if want_on else "off", "on" if is_on else "off")
    if is_on == want_on:
        return
    await scope.locator(toggle.click_selector).click(force=True)
    await ctx.pause(300)
    if want_on:
        await scope.wait_for_selector(toggle.state_on_selector, state="attached",
                                      timeout=ctx.timeout_for(step))


async def click_field(step, ctx: ExecutionContext) -> None:
    field_def = fields.resolve(step, ctx.catalog)
    scope = ctx.scope

    if field_def.type == "radio-group" and field_def.options and field_def.options.items:
        value = values.resolve(step, ctx.resolve)
        if has_template(value):
            value = resolve_template(value, ctx.resolve)
        if not require_value(step, value, "click-field"):
            return
        item = _match_item(field_def, value)
        if item is None or not item.option_selector:
            raise SelectorMissingError(f"No radio option for {step.field_name}:{stringify(value)}")
        logger.info("[click-field] (radio) %s = %s", step.field_name, stringify(value))
        await scope.click(item.option_selector)
        return

    selector = fields.selector_of(field_def)
    if step.optional:
        try:
            await scope.wait_for_selector(selector, state="attached", timeout=1000)
        except PlaywrightTimeoutError:
            logger.info("[click-field] %s = SKIPPED (optional, not found)", step.field_name)
            return
        await scope.click(selector)
        logger.info("[click-field] %s (optional, found)", step.field_name)
        return

    logger.info("[click-field] %s", step.field_name)
    await scope.click(selector, timeout=ctx.timeout_for(step))
