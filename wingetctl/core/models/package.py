"""
Package and path models — what a list operation returns and what the
install-path lookup considers.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict


class PackageRecord(BaseModel):
    """One installed package as reported by the tool.

    Absent columns are empty strings, never None.
    """

    model_config = ConfigDict(frozen=True)

    name: str = ""
    id: str = ""
    version: str = ""
    available: str = ""


class PathCandidate(BaseModel):
    """A possible install directory and where it came from."""

    source: str                     # e.g. "InstallLocation", "DisplayIcon"
    raw: str
    resolved: str | None = None
    exists: bool = False
