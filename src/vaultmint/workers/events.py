"""Worker lifecycle events.

Listeners are informational: a listener that raises is logged and the job
carries on unaffected.
"""

from collections import defaultdict
from typing import Any, Callable

import structlog

logger = structlog.get_logger(__name__)

EVENTS = ("ready", "completed", "failed", "progress", "stopped")

Listener = Callable[..., Any]


class JobEvents:
    """Registry of listeners keyed by event name."""

    def __init__(self):
        self._listeners: dict[str, list[Listener]] = defaultdict(list)

    def on(self, event: str, listener: Listener) -> None:
        """Register a listener called with keyword arguments for each event.

        Raises:
            ValueError: If event is not one of EVENTS
        """
        if event not in EVENTS:
            raise ValueError(f"Unknown event '{event}'. Expected one of {EVENTS}")
        self._listeners[event].append(listener)

    def emit(self, event: str, **data: Any) -> None:
        for listener in self._listeners.get(event, []):
            try:
                listener(**data)
            except Exception as e:
                logger.warning(
                    "worker.listener_failed",
                    event=event,
                    error_type=type(e).__name__,
                    error_message=str(e),
                )


def bind_worker_events(name: str, events: JobEvents) -> None:
    """Log every lifecycle event of a worker under its name."""
    events.on("ready", lambda **data: logger.info("worker.ready", worker=name, **data))
    events.on("completed", lambda **data: logger.info("job.completed", worker=name, **data))
    events.on("failed", lambda **data: logger.error("job.failed", worker=name, **data))
    events.on("progress", lambda **data: logger.info("job.progress", worker=name, **data))
    events.on("stopped", lambda **data: logger.info("worker.stopped", worker=name, **data))
