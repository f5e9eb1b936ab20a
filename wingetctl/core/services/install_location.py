"""
Install location lookup — where did a package land on disk?

winget does not report install directories, so this reads the Windows
uninstall registry (the same source winget correlates against) and
derives a directory from each matching entry's ``InstallLocation``,
``DisplayIcon`` and ``UninstallString`` values.

Off Windows, or in tests, entries are passed in directly.
"""

from __future__ import annotations

import logging
import os
import sys
from collections.abc import Iterable, Iterator
from typing import Any

from wingetctl.core.models.package import PathCandidate
from wingetctl.core.services.path_resolver import (
    derive_directory_from_command,
    resolve_install_directory,
)

logger = logging.getLogger(__name__)

_UNINSTALL_KEYS = (
    r"SOFTWARE\Microsoft\Windows\CurrentVersion\Uninstall",
    r"SOFTWARE\WOW6432Node\Microsoft\Windows\CurrentVersion\Uninstall",
)
_VALUE_NAMES = ("DisplayName", "InstallLocation", "DisplayIcon", "UninstallString")


# ═══════════════════════════════════════════════════════════════════
#  Registry enumeration (Windows only)
# ═══════════════════════════════════════════════════════════════════


def read_uninstall_entries() -> list[dict[str, Any]]:
    """All uninstall entries from HKLM and HKCU, both registry views.

    Returns an empty list off Windows.
    """
    if sys.platform != "win32":
        return []

    import winreg

    entries: list[dict[str, Any]] = []
    hives = (("HKLM", winreg.HKEY_LOCAL_MACHINE), ("HKCU", winreg.HKEY_CURRENT_USER))
    for hive_name, hive in hives:
        for key_path in _UNINSTALL_KEYS:
            entries.extend(_read_subkeys(winreg, hive, hive_name, key_path))
    logger.debug("read %d uninstall entries", len(entries))
    return entries


def _read_subkeys(winreg: Any, hive: Any, hive_name: str, key_path: str) -> Iterator[dict[str, Any]]:
    try:
        base = winreg.OpenKey(hive, key_path, 0, winreg.KEY_READ | winreg.KEY_WOW64_64KEY)
    except OSError:
        return
    with base:
        index = 0
        while True:
            try:
                sub_name = winreg.EnumKey(base, index)
            except OSError:
                break
            index += 1
            entry: dict[str, Any] = {"key": sub_name, "hive": hive_name}
            try:
                with winreg.OpenKey(base, sub_name) as sub:
                    for value_name in _VALUE_NAMES:
                        try:
                            value, reg_type = winreg.QueryValueEx(sub, value_name)
                        except OSError:
                            continue
                        if reg_type in (winreg.REG_SZ, winreg.REG_EXPAND_SZ) and value:
                            entry[value_name] = str(value)
            except OSError:
                continue
            yield entry


# ═══════════════════════════════════════════════════════════════════
#  Matching and candidates
# ═══════════════════════════════════════════════════════════════════


def entry_matches(entry: dict[str, Any], package_id: str, name: str | None = None) -> bool:
    """Key matches the package id, or display name matches the name hint."""
    key = str(entry.get("key", "")).lower()
    pkg = package_id.lower()
    if pkg and key and (key == pkg or pkg in key):
        return True
    display = str(entry.get("DisplayName", "")).lower()
    hint = (name or "").strip().lower()
    if hint and display and (hint in display or display in hint):
        return True
    return False


def candidates_for_entry(entry: dict[str, Any]) -> list[PathCandidate]:
    """PathCandidates for one entry, highest-confidence first."""
    out: list[PathCandidate] = []
    location = entry.get("InstallLocation")
    if location:
        out.append(_candidate("InstallLocation", location, resolve_install_directory(location)))
    for source in ("DisplayIcon", "UninstallString"):
        raw = entry.get(source)
        if raw:
            out.append(_candidate(source, raw, derive_directory_from_command(raw)))
    return out


def _candidate(source: str, raw: str, resolved: str | None) -> PathCandidate:
    exists = False
    if resolved:
        try:
            exists = os.path.isdir(resolved)
        except (OSError, ValueError):
            exists = False
    return PathCandidate(source=source, raw=raw, resolved=resolved, exists=exists)


def find_install_path(
    package_id: str,
    name: str | None = None,
    entries: Iterable[dict[str, Any]] | None = None,
) -> dict[str, Any]:
    """Best-guess install directory for a package.

    Returns:
        ``{"ok": True, "path": str, "candidates": [...]}`` or
        ``{"ok": False, "error": "not_found", "candidates": [...]}``
    """
    source = read_uninstall_entries() if entries is None else entries
    candidates: list[PathCandidate] = []
    for entry in source:
        if entry_matches(entry, package_id, name):
            candidates.extend(candidates_for_entry(entry))

    chosen = next((c for c in candidates if c.exists), None)
    if chosen is None:
        chosen = next((c for c in candidates if c.resolved), None)

    dumped = [c.model_dump() for c in candidates]
    if chosen is None:
        logger.debug("no install path for %s (%d candidates)", package_id, len(candidates))
        return {"ok": False, "error": "not_found", "candidates": dumped}
    return {"ok": True, "path": chosen.resolved, "candidates": dumped}
