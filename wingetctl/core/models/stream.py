"""
Stream and cancellation models — the runtime contract of a tool run.

OperationContext is what a caller attaches to a run.  StreamEvent is
what the runner emits for every chunk of output.  CancelResult is what
a cancel request answers.
"""

from __future__ import annotations

import time
from typing import Any, Literal

from pydantic import BaseModel, Field

Action = Literal["upgrade", "uninstall", "upgradeAll", "list"]
StreamName = Literal["stdout", "stderr"]


def _now_ms() -> int:
    """Current time in epoch milliseconds."""
    return int(time.time() * 1000)


class OperationContext(BaseModel):
    """Caller-side tags for a run.

    ``track_id`` makes the run cancellable; runs without one are
    neither registered nor cancellable.
    """

    action: Action | None = None
    id: str | None = None           # package identifier
    name: str | None = None         # display name
    track_id: str | None = None
    extra: dict[str, Any] = Field(default_factory=dict)

    def as_dict(self) -> dict[str, Any]:
        """Non-empty fields, in wire naming."""
        out: dict[str, Any] = {}
        if self.action:
            out["action"] = self.action
        if self.id:
            out["id"] = self.id
        if self.name:
            out["name"] = self.name
        if self.track_id:
            out["trackId"] = self.track_id
        out.update(self.extra)
        return out


class StreamEvent(BaseModel):
    """One chunk of tool output, emitted as soon as it is read."""

    data: str
    stream: StreamName
    args: list[str] = Field(default_factory=list)
    timestamp: int = Field(default_factory=_now_ms)
    action: Action | None = None
    id: str | None = None
    name: str | None = None
    track_id: str | None = None
    context: dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def for_chunk(
        cls,
        data: str,
        stream: StreamName,
        args: list[str],
        context: OperationContext,
    ) -> StreamEvent:
        return cls(
            data=data,
            stream=stream,
            args=list(args),
            action=context.action,
            id=context.id,
            name=context.name,
            track_id=context.track_id,
            context=context.as_dict(),
        )

    def to_payload(self) -> dict[str, Any]:
        """Wire form: camel-cased ``trackId``, ``context`` only when set."""
        payload: dict[str, Any] = {
            "data": self.data,
            "stream": self.stream,
            "args": self.args,
            "timestamp": self.timestamp,
            "action": self.action,
            "id": self.id,
            "name": self.name,
            "trackId": self.track_id,
        }
        if self.context:
            payload["context"] = self.context
        return payload


class CancelResult(BaseModel):
    """Answer to a cancel request.

    ``not_running`` and a successful cancel are different answers;
    callers must not treat them the same.
    """

    ok: bool
    error: str | None = None
    killed: bool | None = None

    @classmethod
    def cancelled(cls) -> CancelResult:
        return cls(ok=True, killed=True)

    @classmethod
    def failure(cls, error: str) -> CancelResult:
        return cls(ok=False, error=error)

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(exclude_none=True)
