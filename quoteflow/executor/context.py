"""
Execution context shared by step executors during one run.
"""
import asyncio
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, List, Optional

from quoteflow.utils.paths import ResolveContext
from quoteflow.utils.schema import FieldCatalog


class ContextStack:
    """
    Stack of browsing scopes: the page at index 0, then entered frames.

    The stack is never empty; popping at depth 1 leaves the page in place.
    """

    def __init__(self, root):
        self._scopes: List[Any] = [root]

    def current(self):
        return self._scopes[-1]

    def root(self):
        return self._scopes[0]

    def push(self, scope) -> None:
        self._scopes.append(scope)

    def pop(self) -> None:
        if len(self._scopes) > 1:
            self._scopes.pop()

    @property
    def depth(self) -> int:
        return len(self._scopes)

    def reset(self, root=None) -> None:
        """Drop all frames; optionally swap the root page (e.g. for a popup)."""
        self._scopes = [root if root is not None else self._scopes[0]]


async def real_pause(ms: float) -> None:
    await asyncio.sleep(max(ms, 0) / 1000)


@dataclass
class ExecutionContext:
    """What an executor needs besides the step itself."""
    stack: ContextStack
    resolve: ResolveContext
    catalog: FieldCatalog
    progress: Optional[Any] = None
    default_timeout_ms: int = 15000
    pause: Callable[[float], Awaitable[None]] = field(default=real_pause)

    @property
    def scope(self):
        return self.stack.current()

    @property
    def page(self):
        return self.stack.root()

    def timeout_for(self, step) -> int:
        return step.timeout if step.timeout is not None else self.default_timeout_ms
