"""
Domain models — Pydantic types for wingetctl.

All models are re-exported here for convenient access:

    from wingetctl.core.models import PackageRecord, StreamEvent, CancelResult
"""

from wingetctl.core.models.package import PackageRecord, PathCandidate
from wingetctl.core.models.stream import (
    CancelResult,
    OperationContext,
    StreamEvent,
)

__all__ = [
    # package.py
    "PackageRecord",
    "PathCandidate",
    # stream.py
    "CancelResult",
    "OperationContext",
    "StreamEvent",
]
