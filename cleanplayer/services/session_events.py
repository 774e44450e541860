"""In-process publish/subscribe hub for session-level events."""

from __future__ import annotations

import enum
import inspect
import logging
from collections import defaultdict
from typing import Any, Awaitable, Callable, Union

logger = logging.getLogger(__name__)

Handler = Callable[[Any], Union[None, Awaitable[None]]]


class SessionEvent(str, enum.Enum):
    RESET = "reset"
    NOTICE = "notice"


class SessionEventBus:
    """Deliver events to subscribers; handlers may be plain or async callables.

    A failing handler is logged and does not prevent delivery to the others.
    """

    def __init__(self) -> None:
        self._handlers: dict[SessionEvent, list[Handler]] = defaultdict(list)

    def subscribe(self, event: SessionEvent, handler: Handler) -> Callable[[], None]:
        """Register ``handler`` and return a callable that unsubscribes it."""
        self._handlers[event].append(handler)

        def _unsubscribe() -> None:
            if handler in self._handlers[event]:
                self._handlers[event].remove(handler)

        return _unsubscribe

    async def publish(self, event: SessionEvent, payload: Any = None) -> None:
        for handler in list(self._handlers[event]):
            try:
                result = handler(payload)
                if inspect.isawaitable(result):
                    await result
            except Exception:  # pylint: disable=broad-except
                logger.exception("Session event handler failed for %s", event.value)


__all__ = ["Handler", "SessionEvent", "SessionEventBus"]
