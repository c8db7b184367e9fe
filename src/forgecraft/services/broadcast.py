"""Publish/subscribe fan-out of queue events to every connected observer."""

from typing import Any, Callable

import structlog

logger = structlog.get_logger(__name__)

# Channels
QUEUE_STATUS = "queue:status"
QUEUE_DISK_FULL = "queue:disk_full"
GENERATION_PROGRESS = "generation:progress"
GENERATION_COMPLETE = "generation:complete"
GENERATION_FAILED = "generation:failed"

Listener = Callable[[str, Any], None]


class EventBroadcaster:
    """Delivers every published event to all subscribed listeners.

    Listeners are plain callables taking (channel, payload). A failing
    listener is logged and does not prevent delivery to the others.
    """

    def __init__(self) -> None:
        self._listeners: list[Listener] = []

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a listener.

        Returns:
            Function that unsubscribes the listener
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    def publish(self, channel: str, payload: Any) -> None:
        for listener in list(self._listeners):
            try:
                listener(channel, payload)
            except Exception as e:
                logger.error(
                    "broadcast.listener_failed",
                    channel=channel,
                    error_type=type(e).__name__,
                    error_message=str(e),
                )
