"""
EventBus — thread-safe, in-process fan-out of tool output events.

Every chunk the command runner reads is published here once.  Two
kinds of consumers:

- listeners — plain callables invoked synchronously on the publishing
  (reader) thread.  The CLI uses one to echo output live.
- subscribers — SSE clients.  Each gets its own bounded
  ``queue.Queue``; a client that can't keep up is dropped.

Nothing is retained: a subscriber only sees events published after it
connected.

Thread safety model
───────────────────
- ``_lock`` protects ``_seq``, ``_listeners`` and ``_subscribers``.
- Listeners are called outside the lock, on a snapshot of the list,
  so a listener may unsubscribe itself.
"""

from __future__ import annotations

import logging
import queue
import threading
from typing import Any, Callable, Generator

from wingetctl.core.models.stream import StreamEvent
from wingetctl.core.observability.sanitize import sanitize_for_log

logger = logging.getLogger(__name__)

Listener = Callable[[StreamEvent], None]


class EventBus:
    """Thread-safe pub/sub for StreamEvents.

    Parameters
    ----------
    subscriber_queue_size : int
        Maximum backlog per SSE client.  If a client can't consume
        fast enough, its queue fills and the subscriber is dropped.
    """

    def __init__(self, *, subscriber_queue_size: int = 500) -> None:
        self._lock = threading.Lock()
        self._seq: int = 0
        self._listeners: list[Listener] = []
        self._subscribers: list[queue.Queue[dict]] = []
        self._subscriber_queue_size = subscriber_queue_size

    # ── Properties ──────────────────────────────────────────────

    @property
    def seq(self) -> int:
        """Number of events published so far."""
        with self._lock:
            return self._seq

    @property
    def subscriber_count(self) -> int:
        """Number of active SSE subscribers."""
        with self._lock:
            return len(self._subscribers)

    # ── Listeners ───────────────────────────────────────────────

    def add_listener(self, listener: Listener) -> Callable[[], None]:
        """Register a callback; returns a function that removes it."""
        with self._lock:
            self._listeners.append(listener)

        def _remove() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return _remove

    # ── Publishing ──────────────────────────────────────────────

    def publish(self, event: StreamEvent) -> dict[str, Any]:
        """Deliver an event to every listener and subscriber.

        Returns
        -------
        dict
            The wire payload with ``seq`` assigned.
        """
        payload = event.to_payload()
        with self._lock:
            self._seq += 1
            payload["seq"] = self._seq
            listeners = list(self._listeners)

            dead: list[queue.Queue[dict]] = []
            for q in self._subscribers:
                try:
                    q.put_nowait(payload)
                except queue.Full:
                    dead.append(q)
            for q in dead:
                self._subscribers.remove(q)
                logger.info("Dropped unresponsive SSE subscriber (queue full)")

        for listener in listeners:
            try:
                listener(event)
            except Exception:
                logger.warning("stream listener failed", exc_info=True)

        logger.debug(
            "stream %s %s",
            event.stream,
            sanitize_for_log({"trackId": event.track_id, "action": event.action, "bytes": len(event.data)}),
        )
        return payload

    # ── Subscribing ─────────────────────────────────────────────

    def subscribe(
        self,
        *,
        heartbeat_interval: float = 30.0,
    ) -> Generator[dict, None, None]:
        """Yield event payloads for an SSE client.  Blocks between events.

        Yields a ``{"type": "sys:heartbeat"}`` dict after
        ``heartbeat_interval`` seconds without events.
        """
        q: queue.Queue[dict] = queue.Queue(maxsize=self._subscriber_queue_size)
        with self._lock:
            self._subscribers.append(q)
            count = len(self._subscribers)
        logger.info("SSE client connected (subscribers=%d)", count)

        try:
            while True:
                try:
                    yield q.get(timeout=heartbeat_interval)
                except queue.Empty:
                    yield {"type": "sys:heartbeat"}
        finally:
            with self._lock:
                if q in self._subscribers:
                    self._subscribers.remove(q)
                count = len(self._subscribers)
            logger.info("SSE client disconnected (subscribers=%d)", count)
