"""
Error taxonomy — every failure a winget operation can end in.

Outcomes reach callers as exceptions set on a run's future (or raised
directly for argument errors).  ``Cancelled`` is its own class so a UI
can show "cancelled" rather than "failed" without comparing strings.
"""

from __future__ import annotations


class WingetError(Exception):
    """Base class for all wingetctl operation errors."""


class InvalidArgument(WingetError):
    """Rejected before any process was spawned (bad id, empty token...)."""


class SpawnFailure(WingetError):
    """The tool executable could not be launched."""


class NonZeroExit(WingetError):
    """The tool ran and reported failure.

    The message is the captured output when there is any, otherwise a
    synthesized "exited with code X" line.
    """

    def __init__(self, message: str, *, exit_code: int | None, output: str = "") -> None:
        super().__init__(message)
        self.exit_code = exit_code
        self.output = output


class Cancelled(WingetError):
    """The run was terminated on request of its tracking token."""

    def __init__(self, track_id: str) -> None:
        super().__init__(f"Operation {track_id} was cancelled")
        self.track_id = track_id


class ParseFallback(WingetError):
    """Structured (JSON) list output could not be used.

    Recovered inside the facade by retrying in text mode; never surfaced.
    """
