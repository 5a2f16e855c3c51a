"""Notification events and the channel they are published on.

The adapter pushes status events to a channel owned by the caller. Publishing
never blocks: the channel is bounded and drops its oldest event when full, so
an unconsumed channel cannot stall an orchestration run.
"""

import logging
from collections import deque
from dataclasses import dataclass
from threading import Condition
from typing import Deque, List, Optional

from meshadapter.core.config import get_int

logger = logging.getLogger(__name__)

DEFAULT_MAX_EVENTS = 100

INFO = "info"
ERROR = "error"


@dataclass
class Event:
    """Status notification pushed to a NotificationChannel.

    Attributes:
        operation_id: Identifier of the operation the event belongs to
        summary: Short human-readable summary
        details: Longer text, often a serialized Response
        event_type: "info" or "error"
        error_code: Code of the AdapterError behind an error event (optional)
    """

    operation_id: str
    summary: str
    details: str = "None"
    event_type: str = INFO
    error_code: Optional[str] = None


class NotificationChannel:
    """Bounded, drop-oldest, thread-safe event queue.

    Example:
        >>> channel = NotificationChannel(max_events=2)
        >>> channel.publish(Event("op", "a"))
        >>> channel.publish(Event("op", "b"))
        >>> channel.publish(Event("op", "c"))
        >>> [e.summary for e in channel.drain()]
        ['b', 'c']
        >>> channel.dropped
        1
    """

    def __init__(self, max_events: Optional[int] = None):
        """Initialize the channel.

        Args:
            max_events: Capacity (default: notifications.max_events from config.json, or 100)
        """
        if max_events is None:
            max_events = get_int(["notifications", "max_events"], DEFAULT_MAX_EVENTS)
        if max_events < 1:
            raise ValueError("max_events must be at least 1")
        self.max_events = max_events
        self.dropped = 0
        self._events: Deque[Event] = deque()
        self._cond = Condition()

    def publish(self, event: Event) -> None:
        """Append an event, evicting the oldest one when the channel is full."""
        with self._cond:
            if len(self._events) >= self.max_events:
                evicted = self._events.popleft()
                self.dropped += 1
                logger.debug(f"Notification channel full, dropped event: {evicted.summary}")
            self._events.append(event)
            self._cond.notify()

    def get(self, timeout: Optional[float] = None) -> Optional[Event]:
        """Pop the oldest event, waiting up to ``timeout`` seconds.

        Returns:
            The event, or None if none arrived in time
        """
        with self._cond:
            if not self._cond.wait_for(lambda: bool(self._events), timeout):
                return None
            return self._events.popleft()

    def drain(self) -> List[Event]:
        """Pop and return every pending event, oldest first."""
        with self._cond:
            events = list(self._events)
            self._events.clear()
            return events

    def __len__(self) -> int:
        with self._cond:
            return len(self._events)
