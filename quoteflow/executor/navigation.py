"""
Navigation, frame and page-level utility executors.
"""
import logging
import time

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from quoteflow.executor.context import ExecutionContext
from quoteflow.selector import fields
from quoteflow.utils.errors import FrameNotFoundError
from quoteflow.utils.paths import resolve_template

logger = logging.getLogger(__name__)

FRAME_POLL_MS = 200
CONSENT_TIMEOUT_MS = 5000

REMOVE_CONSENT_SCRIPT = """
({selector, overlays}) => {
  const btn = document.querySelector(selector);
  if (btn) btn.remove();
  let removed = 0;
  for (const sel of overlays) {
    document.querySelectorAll(sel).forEach((el) => { el.remove(); removed += 1; });
  }
  return removed;
}
"""


async def navigate(step, ctx: ExecutionContext) -> None:
    url = resolve_template(step.url, ctx.resolve)
    logger.info("[navigate] %s", url)
    # frames do not survive a top-level navigation
    ctx.stack.reset()
    await ctx.page.goto(url, wait_until=step.wait_until, timeout=ctx.timeout_for(step))


async def wait_for_network_idle(step, ctx: ExecutionContext) -> None:
    logger.info("[wait-for-network-idle]")
    await ctx.page.wait_for_load_state("networkidle", timeout=ctx.timeout_for(step))


async def enter_frame(step, ctx: ExecutionContext) -> None:
    page = ctx.page
    timeout = ctx.timeout_for(step)
    frame = None

    if step.selector:
        try:
            await page.wait_for_selector(step.selector, timeout=timeout)
        except PlaywrightTimeoutError as e:
            raise FrameNotFoundError(f"Frame element not found: {step.selector}") from e
        handle = await page.query_selector(step.selector)
        if handle is None:
            raise FrameNotFoundError(f"Frame element not found: {step.selector}")
        frame = await handle.content_frame()
        if frame is None:
            raise FrameNotFoundError(f"Element {step.selector} has no frame content")
    else:
        deadline = time.monotonic() + timeout / 1000
        while True:
            frame = next((f for f in page.frames if step.url_contains in (f.url or "")), None)
            if frame is not None or time.monotonic() >= deadline:
                break
            await ctx.pause(FRAME_POLL_MS)
        if frame is None:
            raise FrameNotFoundError(f"No frame with url containing {step.url_contains!r}")

    ctx.stack.push(frame)
    logger.info("[enter-frame] %s (depth %d)", step.selector or f"url~{step.url_contains}", ctx.stack.depth)


async def exit_frame(step, ctx: ExecutionContext) -> None:
    ctx.stack.pop()
    logger.info("[exit-frame] depth %d", ctx.stack.depth)


async def accept_consent(step, ctx: ExecutionContext) -> None:
    """
    Best-effort cookie banner dismissal.

    Retries the click up to step.retries times; with force=True the button
    and known overlay nodes are removed from the DOM once retries run out.
    Never raises.
    """
    scope = ctx.scope
    timeout = step.timeout or CONSENT_TIMEOUT_MS

    for attempt in range(1, step.retries + 1):
        try:
            if await scope.locator(step.selector).count() == 0:
                logger.info("[accept-consent] button not found (attempt %d/%d)", attempt, step.retries)
                if attempt == step.retries:
                    return
                await ctx.pause(500)
                continue

            await scope.wait_for_selector(step.selector, timeout=timeout)
            await scope.click(step.selector, force=True)
            await ctx.pause(1000)
            if await scope.locator(step.selector).count() == 0:
                logger.info("[accept-consent] dismissed (attempt %d/%d)", attempt, step.retries)
                return
            logger.info("[accept-consent] still visible after click (attempt %d/%d)", attempt, step.retries)
        except PlaywrightError as e:
            logger.info("[accept-consent] error (attempt %d/%d): %s", attempt, step.retries, e)

        if attempt == step.retries and step.force:
            try:
                removed = await scope.evaluate(
                    REMOVE_CONSENT_SCRIPT,
                    {"selector": step.selector, "overlays": step.overlay_selectors},
                )
                logger.info("[accept-consent] forced removal, %s overlay nodes removed", removed)
            except PlaywrightError as e:
                logger.warning("[accept-consent] forced removal failed: %s", e)

        if attempt < step.retries:
            await ctx.pause(500)

    logger.info("[accept-consent] done (best effort)")


async def press_key(step, ctx: ExecutionContext) -> None:
    if step.field_name:
        selector = fields.selector_of(fields.resolve(step, ctx.catalog))
        logger.info("[press-key] %s on %s", step.key, step.field_name)
        await ctx.scope.press(selector, step.key, timeout=ctx.timeout_for(step))
        return
    logger.info("[press-key] %s", step.key)
    await ctx.page.keyboard.press(step.key)


async def scroll_into_view(step, ctx: ExecutionContext) -> None:
    selector = fields.selector_of(fields.resolve(step, ctx.catalog))
    logger.info("[scroll-into-view] %s", step.field_name)
    await ctx.scope.locator(selector).scroll_into_view_if_needed(timeout=ctx.timeout_for(step))


async def sleep(step, ctx: ExecutionContext) -> None:
    logger.info("[sleep] %d ms", step.duration_ms)
    await ctx.pause(step.duration_ms)


async def comment(step, ctx: ExecutionContext) -> None:
    logger.info("[comment] %s", step.text or step.label or "")
