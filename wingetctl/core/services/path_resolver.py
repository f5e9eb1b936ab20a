"""
Path resolution — raw registry/command strings to install directories.

Uninstall strings, icon paths and install locations arrive quoted,
with ``%VAR%`` placeholders, mixed separators and icon-index suffixes.
Everything here works on Windows path semantics (``ntpath``) regardless
of the host OS, and every function is total: bad input yields None,
never an exception.
"""

from __future__ import annotations

import logging
import ntpath
import os
import re
from collections.abc import Mapping

logger = logging.getLogger(__name__)

# Case-insensitive environment snapshot, taken once at import
_ENV_SNAPSHOT: dict[str, str] = {
    key.lower(): str(value) for key, value in os.environ.items() if key
}

_PLACEHOLDER_RE = re.compile(r"%([^%]+)%")
_QUOTES_RE = re.compile(r'^"+|"+$')
_ABSOLUTE_RE = re.compile(r"^[A-Za-z]:\\")
_DRIVE_ROOT_RE = re.compile(r"^[A-Za-z]:\\?$")
_FILE_LIKE_RE = re.compile(r"\.(exe|bat|cmd|msi|lnk)$", re.IGNORECASE)
_ICON_INDEX_RE = re.compile(r",\s*\d+$")
_QUOTED_HEAD_RE = re.compile(r'^"([^"]+)"')
_RUNDLL_HEAD_RE = re.compile(r"^rundll32(?:\.exe)?(?=[\s,\"]|$)", re.IGNORECASE)
_UNQUOTED_EXE_RE = re.compile(r"^(.+?\.(?:exe|bat|cmd|msi|lnk))(?=\s|$)", re.IGNORECASE)


def expand_env_placeholders(value: str, env: Mapping[str, str] | None = None) -> str:
    """Expand ``%NAME%`` placeholders; unknown names are left verbatim."""
    lookup = _ENV_SNAPSHOT if env is None else {k.lower(): v for k, v in env.items()}

    def _sub(match: re.Match[str]) -> str:
        token = match.group(1).strip()
        if not token:
            return match.group(0)
        return lookup.get(token.lower(), match.group(0))

    return _PLACEHOLDER_RE.sub(_sub, value)


def normalize_path_value(value: str | None, env: Mapping[str, str] | None = None) -> str | None:
    """Unquote, expand, and normalise a raw path string."""
    if not value:
        return None
    trimmed = value.strip()
    if not trimmed:
        return None
    unquoted = _QUOTES_RE.sub("", trimmed)
    expanded = expand_env_placeholders(unquoted, env)
    with_backslashes = expanded.replace("/", "\\")
    try:
        normalized = ntpath.normpath(with_backslashes)
    except (TypeError, ValueError):
        normalized = with_backslashes
    return normalized.strip() or None


def is_absolute_windows_path(path: str) -> bool:
    """Drive-rooted (``C:\\``) or UNC-rooted (``\\\\server``)."""
    return bool(_ABSOLUTE_RE.match(path)) or path.startswith("\\\\")


def resolve_install_directory(raw: str | None, env: Mapping[str, str] | None = None) -> str | None:
    """Turn a raw path into a canonical absolute directory, or None.

    File paths (existing files, or names that look like executables and
    installers) are replaced by their parent directory.  Drive roots keep
    one trailing separator; other paths lose theirs.
    """
    normalized = normalize_path_value(raw, env)
    if not normalized or not is_absolute_windows_path(normalized):
        return None

    candidate = normalized
    if os.path.isfile(candidate):
        candidate = ntpath.dirname(candidate)
    elif not os.path.exists(candidate) and _FILE_LIKE_RE.search(ntpath.basename(candidate)):
        candidate = ntpath.dirname(candidate)

    return _canonical_directory(candidate)


def _canonical_directory(path: str) -> str | None:
    directory = ntpath.normpath(path)
    if _DRIVE_ROOT_RE.match(directory):
        return directory.rstrip("\\") + "\\"
    return directory.rstrip("\\") or None


def _loader_target_directory(raw: str, env: Mapping[str, str] | None) -> str | None:
    """Parent directory of a ``rundll32`` DLL argument, on disk or not."""
    normalized = normalize_path_value(raw, env)
    if not normalized or not is_absolute_windows_path(normalized):
        return None
    return _canonical_directory(ntpath.dirname(normalized))


def derive_directory_from_command(
    command_line: str | None,
    env: Mapping[str, str] | None = None,
) -> str | None:
    """Extract an install directory from an uninstall/launch command.

    ``msiexec`` commands never carry a usable path.  ``rundll32``
    commands resolve to the directory holding the DLL argument, whether
    or not the DLL still exists.
    Unquoted commands resolve up to the first executable name, else
    the first whitespace-delimited token.
    """
    if not command_line:
        return None
    trimmed = command_line.strip()
    if not trimmed:
        return None
    lower = trimmed.lower()
    if lower.startswith("msiexec"):
        return None

    adjusted = _ICON_INDEX_RE.sub("", trimmed)

    quoted = _QUOTED_HEAD_RE.match(adjusted)
    if quoted:
        return resolve_install_directory(quoted.group(1), env)

    loader = _RUNDLL_HEAD_RE.match(adjusted)
    if loader:
        args_part = adjusted[loader.end():].strip()
        dll_quoted = _QUOTED_HEAD_RE.match(args_part)
        if dll_quoted:
            return _loader_target_directory(dll_quoted.group(1), env)
        tokens = [tok for tok in re.split(r"[,\s]+", args_part) if tok]
        if tokens:
            return _loader_target_directory(tokens[0], env)
        return None

    # Unquoted paths with spaces: cut after the first executable name
    unquoted_exe = _UNQUOTED_EXE_RE.match(adjusted)
    if unquoted_exe:
        return resolve_install_directory(unquoted_exe.group(1), env)

    head = adjusted.split()
    if not head:
        return None
    return resolve_install_directory(_ICON_INDEX_RE.sub("", head[0]), env)
