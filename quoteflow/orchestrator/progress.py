"""
Append-only progress stream (progress.ndjson) with live listeners.
"""
import json
import logging
from pathlib import Path
from typing import Callable, List, Optional

from quoteflow.utils.schema import ProgressEvent

logger = logging.getLogger(__name__)

Listener = Callable[[ProgressEvent], None]


class ProgressSink:
    """One per run. Every event is written, logged and passed to listeners."""

    def __init__(self, path: Optional[Path] = None):
        self.path = Path(path) if path else None
        self.events: List[ProgressEvent] = []
        self._listeners: List[Listener] = []

    def add_listener(self, listener: Listener) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: Listener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def emit(self, type: str, status: str, **kwargs) -> ProgressEvent:
        event = ProgressEvent(type=type, status=status, **kwargs)
        self.events.append(event)

        if self.path is not None:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.path, "a", encoding="utf-8") as f:
                f.write(json.dumps(event.to_json_dict(), ensure_ascii=False) + "\n")

        level = logging.WARNING if status == "error" else logging.INFO
        if event.step_index is not None:
            logger.log(level, "[progress] step %d %s %s %s", event.step_index + 1, type, status, event.message or "")
        else:
            logger.log(level, "[progress] %s %s %s", type, status, event.message or "")

        for listener in list(self._listeners):
            listener(event)
        return event
