"""
Error taxonomy for flow execution.

Every step-level failure raised by a resolver or an executor derives from
FlowError so the runner can record it uniformly. RunError is the single
summary error surfaced to callers once a run has stopped.
"""
from typing import List, Optional


class FlowError(Exception):
    """Base class for all engine errors."""


class FieldNotFoundError(FlowError):
    """Catalog lookup miss for a step's field/domainField."""

    def __init__(self, key: str, suggestions: Optional[List[str]] = None):
        self.key = key
        self.suggestions = suggestions or []
        message = f"Field not found in catalog: {key}"
        if self.suggestions:
            message += f" (did you mean: {', '.join(self.suggestions)}?)"
        super().__init__(message)


class SelectorMissingError(FlowError):
    """Resolved field lacks a usable selector for the requested interaction."""


class FrameNotFoundError(FlowError):
    """enter-frame search exhausted its timeout."""


class MissingValueError(FlowError):
    """Required value is absent and the step is not optional."""


class DriverTimeoutError(FlowError):
    """A waited-for browser condition did not occur in time."""


class DriverInteractionError(FlowError):
    """The underlying browser call itself failed."""


class UnknownStepTypeError(FlowError):
    """No executor is registered for a step type."""


class RunError(FlowError):
    """
    Summary error for a failed run.

    Carries the run directory so callers can locate partial artifacts
    (manifest, screenshots, progress stream) even on failure.
    """

    def __init__(self, message: str, run_dir: Optional[str] = None,
                 step_index: Optional[int] = None, step_type: Optional[str] = None):
        super().__init__(message)
        self.run_dir = run_dir
        self.step_index = step_index
        self.step_type = step_type

    def __str__(self):
        base = super().__str__()
        if self.run_dir:
            return f"{base} [artifacts: {self.run_dir}]"
        return base
