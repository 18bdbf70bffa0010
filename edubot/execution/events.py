"""
Publish-subscribe bus for run lifecycle events.
"""

import asyncio
from collections import defaultdict
from typing import Any, Callable, Dict, List, Optional, Union

from edubot.core.types import RunEvent, RunEventType
from edubot.monitoring.logger import get_logger

logger = get_logger(__name__)

ALL_EVENTS = "*"

EventHandler = Callable[[RunEvent], Any]


class EventBus:
    """
    Delivers run events to subscribed handlers.

    Handlers may be plain functions or coroutine functions. They run in
    subscription order; a failing handler is logged and does not stop the
    others or the run.
    """

    def __init__(self, history_limit: int = 1000) -> None:
        self._subscribers: Dict[str, List[EventHandler]] = defaultdict(list)
        self._history: List[RunEvent] = []
        self._history_limit = history_limit
        self._event_count: Dict[str, int] = defaultdict(int)

    @staticmethod
    def _key(event_type: Union[RunEventType, str]) -> str:
        return event_type.value if isinstance(event_type, RunEventType) else event_type

    def subscribe(self, event_type: Union[RunEventType, str], handler: EventHandler) -> None:
        """
        Subscribe to events of one type.

        Args:
            event_type: Event type, or ``"*"`` for every event
            handler: Callback receiving the event
        """
        self._subscribers[self._key(event_type)].append(handler)
        logger.debug(f"Subscription added for {self._key(event_type)}")

    def unsubscribe(self, event_type: Union[RunEventType, str], handler: EventHandler) -> None:
        handlers = self._subscribers[self._key(event_type)]
        if handler in handlers:
            handlers.remove(handler)
            logger.debug(f"Subscription removed for {self._key(event_type)}")

    async def publish(self, event: RunEvent) -> None:
        """Deliver an event to its subscribers."""
        key = self._key(event.event_type)
        self._add_to_history(event)
        self._event_count[key] += 1

        handlers = list(self._subscribers.get(key, [])) + list(
            self._subscribers.get(ALL_EVENTS, [])
        )
        for handler in handlers:
            try:
                result = handler(event)
                if asyncio.iscoroutine(result):
                    await result
            except Exception as e:
                logger.error(
                    f"Error in {key} event handler: {e}",
                    extra={"event_type": key},
                )

    def _add_to_history(self, event: RunEvent) -> None:
        self._history.append(event)
        if len(self._history) > self._history_limit:
            self._history = self._history[-self._history_limit:]

    def get_history(
        self,
        event_type: Optional[Union[RunEventType, str]] = None,
        limit: int = 100,
    ) -> List[RunEvent]:
        """Get published events, optionally filtered by type."""
        history = self._history
        if event_type is not None:
            key = self._key(event_type)
            history = [e for e in history if self._key(e.event_type) == key]
        return history[-limit:]

    def get_statistics(self) -> Dict[str, Any]:
        return {
            "total_events": sum(self._event_count.values()),
            "event_counts": dict(self._event_count),
            "history_size": len(self._history),
            "active_subscriptions": {
                event_type: len(handlers)
                for event_type, handlers in self._subscribers.items()
            },
        }

    def clear_history(self) -> None:
        self._history.clear()
