"""Per-session event log for push or polling delivery of game transitions."""
import logging
import time
from collections import deque
from threading import Lock
from typing import Callable

from jossing import config

logger = logging.getLogger(__name__)

Subscriber = Callable[[str, dict], None]


class EventBus:
    """Bounded per-session queue of game events.

    Every event gets a per-session sequence number, so pollers can ask for
    everything after the last one they saw.
    """

    def __init__(self, max_events: int = config.MAX_EVENTS_PER_SESSION, clock=time.time):
        self.max_events = max_events
        self.clock = clock
        self._lock = Lock()
        self._queues: dict[str, deque] = {}
        self._seq: dict[str, int] = {}
        self._subscribers: list[Subscriber] = []

    def publish(self, session_id: str, event_type: str, data: dict) -> dict:
        with self._lock:
            if session_id not in self._queues:
                self._queues[session_id] = deque(maxlen=self.max_events)
                self._seq[session_id] = 0
            self._seq[session_id] += 1
            event = {
                'seq': self._seq[session_id],
                'type': event_type,
                'data': data,
                'timestamp': self.clock(),
            }
            self._queues[session_id].append(event)
            subscribers = list(self._subscribers)

        logger.debug(f"Event: {event_type} in session {session_id}")
        for callback in subscribers:
            try:
                callback(session_id, event)
            except Exception:
                logger.exception(f"Event subscriber failed on {event_type} for session {session_id}")
        return event

    def events_since(self, session_id: str, since: int = 0) -> list[dict]:
        with self._lock:
            return [e for e in self._queues.get(session_id, ()) if e['seq'] > since]

    def last_seq(self, session_id: str) -> int:
        with self._lock:
            return self._seq.get(session_id, 0)

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """Register a callback for every published event. Returns an unsubscribe function."""
        with self._lock:
            self._subscribers.append(callback)

        def unsubscribe():
            with self._lock:
                if callback in self._subscribers:
                    self._subscribers.remove(callback)

        return unsubscribe

    def clear(self, session_id: str):
        with self._lock:
            self._queues.pop(session_id, None)
            self._seq.pop(session_id, None)
