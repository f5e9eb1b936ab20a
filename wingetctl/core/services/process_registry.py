"""
Process registry — in-flight tool runs by tracking token.

Thread safety model
───────────────────
- ``_lock`` protects ``_handles`` and ``_cancelled``.
- The command runner is the only writer of a token's handle; the
  cancel path only writes the cancellation mark.
- ``request_cancel`` issues the termination and places the mark under
  the lock, and ``release`` unregisters and consumes the mark under the
  same lock.  A run therefore either sees its mark at exit or the
  cancel request sees no handle; a mark can never outlive its process
  and leak into a later run that reuses the token.
"""

from __future__ import annotations

import logging
import subprocess
import threading
from collections.abc import Callable

from wingetctl.core.errors import InvalidArgument

logger = logging.getLogger(__name__)

CANCELLED = "cancelled"
NOT_RUNNING = "not_running"
UNABLE_TO_TERMINATE = "unable_to_terminate"


class ProcessRegistry:
    """Tracks live child processes and pending cancellations."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._handles: dict[str, subprocess.Popen] = {}
        self._cancelled: set[str] = set()

    # ── Handles ─────────────────────────────────────────────────

    def register(self, track_id: str, handle: subprocess.Popen) -> None:
        """Bind a token to a live process.

        Raises:
            InvalidArgument: the token is already bound to a live run.
        """
        with self._lock:
            if track_id in self._handles:
                raise InvalidArgument(f"Tracking token already in use: {track_id}")
            self._handles[track_id] = handle
            self._cancelled.discard(track_id)
        logger.debug("registered %s (pid=%s)", track_id, getattr(handle, "pid", None))

    def unregister(self, track_id: str) -> None:
        with self._lock:
            self._handles.pop(track_id, None)

    def lookup(self, track_id: str) -> subprocess.Popen | None:
        with self._lock:
            return self._handles.get(track_id)

    def active(self) -> list[str]:
        """Tokens of all runs currently tracked."""
        with self._lock:
            return sorted(self._handles)

    # ── Cancellation marks ──────────────────────────────────────

    def mark_cancelled(self, track_id: str) -> bool:
        """Mark a registered token as cancelled.

        Returns False (and marks nothing) when the run already exited.
        """
        with self._lock:
            if track_id not in self._handles:
                return False
            self._cancelled.add(track_id)
            return True

    def consume_cancelled(self, track_id: str) -> bool:
        """Remove and report the token's cancellation mark."""
        with self._lock:
            if track_id in self._cancelled:
                self._cancelled.discard(track_id)
                return True
            return False

    # ── Atomic exit / cancel steps ──────────────────────────────

    def release(self, track_id: str) -> bool:
        """Unregister a finished run and consume its mark in one step.

        Returns True when the run had been cancelled.
        """
        with self._lock:
            self._handles.pop(track_id, None)
            if track_id in self._cancelled:
                self._cancelled.discard(track_id)
                return True
            return False

    def request_cancel(
        self,
        track_id: str,
        terminate: Callable[[subprocess.Popen], bool],
    ) -> str:
        """Terminate a registered run and mark it cancelled.

        ``terminate`` returns whether at least one termination mechanism
        was issued.  It runs under the registry lock and must not call
        back into the registry.

        Returns:
            ``CANCELLED``, ``NOT_RUNNING`` or ``UNABLE_TO_TERMINATE``.
        """
        with self._lock:
            handle = self._handles.get(track_id)
            if handle is None:
                return NOT_RUNNING
            if not terminate(handle):
                return UNABLE_TO_TERMINATE
            self._cancelled.add(track_id)
            return CANCELLED
