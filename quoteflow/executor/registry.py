"""
Step dispatch table.
"""
from contextlib import contextmanager
from typing import Awaitable, Callable, Dict

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from quoteflow.executor import forms, navigation
from quoteflow.executor.context import ExecutionContext
from quoteflow.utils.errors import DriverInteractionError, DriverTimeoutError, UnknownStepTypeError
from quoteflow.utils.schema import BaseStep


StepExecutor = Callable[[BaseStep, ExecutionContext], Awaitable[None]]

STEP_EXECUTORS: Dict[str, StepExecutor] = {
    "navigate": navigation.navigate,
    "wait-for-network-idle": navigation.wait_for_network_idle,
    "wait-for-field": forms.wait_for_field,
    "fill-field": forms.fill_field,
    "type-field": forms.type_field,
    "select-field": forms.select_field,
    "toggle-field": forms.toggle_field,
    "click-field": forms.click_field,
    "enter-frame": navigation.enter_frame,
    "exit-frame": navigation.exit_frame,
    "accept-consent": navigation.accept_consent,
    "press-key": navigation.press_key,
    "scroll-into-view": navigation.scroll_into_view,
    "sleep": navigation.sleep,
    "comment": navigation.comment,
}


@contextmanager
def driver_errors(step: BaseStep):
    """Translate Playwright errors into the engine's error types."""
    try:
        yield
    except PlaywrightTimeoutError as e:
        raise DriverTimeoutError(f"{step.type}: {e.message}") from e
    except PlaywrightError as e:
        raise DriverInteractionError(f"{step.type}: {e.message}") from e


async def execute_step(step: BaseStep, ctx: ExecutionContext) -> None:
    executor = STEP_EXECUTORS.get(step.type)
    if executor is None:
        raise UnknownStepTypeError(f"Unknown step type: {step.type}")
    with driver_errors(step):
        await executor(step, ctx)
