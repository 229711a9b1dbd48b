"""
In-process publish/subscribe for sync phase transitions.

Delivery is synchronous, in registration order, inside publish(). A failing
listener is logged and skipped; the rest still receive the event. There is
no buffering: a listener only sees events published after it subscribed.
"""
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List

logger = logging.getLogger(__name__)


class SyncState(str, Enum):
    """Pass state; also the `status` carried by every published event."""

    IDLE = "idle"
    SYNCING = "syncing"
    SUCCESS = "success"
    ERROR = "error"


@dataclass(frozen=True)
class SyncEvent:
    status: str
    data: Dict[str, Any] = field(default_factory=dict)

    @property
    def message(self) -> str:
        return self.data.get("message", "")


Listener = Callable[[SyncEvent], None]


class SyncEventBus:
    def __init__(self):
        self._listeners: List[Listener] = []

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a listener. Returns a function that unsubscribes it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def publish(self, status: str, data: Dict[str, Any] = None) -> SyncEvent:
        event = SyncEvent(status=status, data=dict(data or {}))
        # Copy so listeners may unsubscribe while being notified
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                logger.exception("Sync listener %r failed on %s", listener, status)
        return event

    def __len__(self) -> int:
        return len(self._listeners)
