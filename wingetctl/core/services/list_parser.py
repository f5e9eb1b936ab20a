"""
List parsing — winget ``list`` output to PackageRecords.

Two paths:

- ``parse_structured_list`` — the tool's JSON mode.  Preferred; keys
  are looked up through a configurable alias table because the field
  names differ between tool builds.
- ``parse_list`` — the text table.  Lower-confidence fallback: column
  counts vary, headers and summary lines are localised, and progress
  spinners leave stray control characters behind.

The text parser is a pipeline of total predicates (each line either
survives a filter or is dropped) followed by a field-count dispatch
table.  It prefers dropping an ambiguous line over inventing a record,
since upgrade/uninstall act on the parsed ``id``.
"""

from __future__ import annotations

import json
import logging
import re
from collections.abc import Callable, Iterable
from typing import Any

from wingetctl.core.config.loader import FieldAliases
from wingetctl.core.errors import ParseFallback
from wingetctl.core.models.package import PackageRecord

logger = logging.getLogger(__name__)

_WORD_RE = re.compile(r"[A-Za-z0-9\u4e00-\u9fff]")
_DECORATION_RE = re.compile(r"^[\-|\\/\s\x00-\x1F\x7F]+$")
_JUNK_TOKEN_RE = re.compile(r"^[\-|\\/\s]+$")
_CONTROL_RE = re.compile(r"[\x00-\x1F\x7F]+")
_LINE_SPLIT_RE = re.compile(r"\r\n|\n|\r")
_COLUMN_SPLIT_RE = re.compile(r"\s{2,}")

_ENGLISH_HEADER_RE = re.compile(r"^Name\s+Id\s+Version", re.IGNORECASE)
_RULE_RE = re.compile(r"^[-=\s]{3,}$|^-{10,}")
_DOTTED_TOKEN_RE = re.compile(r"\w\.\w")
_HEADER_KEYWORDS = frozenset({
    "name", "id", "version", "available", "source", "packageidentifier",
    "名称", "版本", "可用", "源",
})

_SUMMARY_RES = (
    re.compile(r"^\d+\s*个?\s*(升级可用|升级|upgrades?\s+available|upgrades?)", re.IGNORECASE),
    re.compile(r"^(升级可用|upgrades?\s+available)\s*[:：]?\s*\d+", re.IGNORECASE),
)
_NO_MATCH_RES = (
    re.compile(r"^找不到与输入条件匹配的已安装程序包"),
    re.compile(r"^No installed package found matching input criteria", re.IGNORECASE),
)


# ═══════════════════════════════════════════════════════════════════
#  Token and line predicates
# ═══════════════════════════════════════════════════════════════════


def has_word_char(text: str) -> bool:
    """Contains at least one ASCII alphanumeric or CJK character."""
    return bool(_WORD_RE.search(text))


def is_junk_token(token: str) -> bool:
    """A field carrying no data: decoration, control chars, one stray char."""
    if not token:
        return True
    cleaned = _CONTROL_RE.sub("", token).strip()
    if not cleaned:
        return True
    if _JUNK_TOKEN_RE.match(cleaned):
        return True
    if len(cleaned) <= 1 and not any(ch.isdigit() for ch in cleaned):
        return True
    return False


def is_decoration_line(line: str) -> bool:
    """Spinner frames, rules, and anything without a word character."""
    return not has_word_char(line) or bool(_DECORATION_RE.match(line))


def is_header_line(line: str) -> bool:
    """Column header row (any supported locale) or a dash/equals rule.

    Localised headers are recognised by at least two whole-word column
    keywords, so package names that merely contain "id" survive.  A
    line carrying a dotted token (an id or a version) is data.
    """
    if _ENGLISH_HEADER_RE.match(line) or _RULE_RE.match(line):
        return True
    tokens = line.split()
    if any(_DOTTED_TOKEN_RE.search(tok) for tok in tokens):
        return False
    keywords = sum(1 for tok in tokens if tok.lower() in _HEADER_KEYWORDS)
    return keywords >= 2


def is_summary_line(line: str) -> bool:
    """Footers like "3 upgrades available." and no-match sentinel lines."""
    return any(r.match(line) for r in _SUMMARY_RES) or any(r.match(line) for r in _NO_MATCH_RES)


_LINE_FILTERS: tuple[Callable[[str], bool], ...] = (
    is_decoration_line,
    is_header_line,
    is_summary_line,
)


# ═══════════════════════════════════════════════════════════════════
#  Field-count dispatch
# ═══════════════════════════════════════════════════════════════════


def _four_or_more(fields: list[str]) -> PackageRecord:
    return PackageRecord(name=fields[0], id=fields[1], version=fields[2], available=fields[3])


def _three(fields: list[str]) -> PackageRecord:
    return PackageRecord(name=fields[0], id=fields[1], version=fields[2])


def _two(fields: list[str]) -> PackageRecord:
    return PackageRecord(name=fields[0], id=fields[1])


_DISPATCH: dict[int, Callable[[list[str]], PackageRecord]] = {
    2: _two,
    3: _three,
    4: _four_or_more,
}


def split_columns(line: str) -> list[str]:
    """Split on the tool's column delimiter (two or more spaces)."""
    return [part.strip() for part in _COLUMN_SPLIT_RE.split(line) if part.strip()]


def record_from_fields(fields: list[str]) -> PackageRecord | None:
    """Map split columns to a record, or None for anything ambiguous."""
    if not fields or all(is_junk_token(f) for f in fields):
        return None
    builder = _DISPATCH.get(min(len(fields), 4))
    if builder is None:
        return None
    if not has_word_char(fields[0]) or is_junk_token(fields[1]):
        return None
    return builder(fields)


def is_valid_record(record: PackageRecord) -> bool:
    """A record must identify something: name or id has a word char,
    and neither is pure decoration."""
    name = record.name.strip()
    pkg_id = record.id.strip()
    if not (has_word_char(name) or has_word_char(pkg_id)):
        return False
    if _DECORATION_RE.match(name) or _DECORATION_RE.match(pkg_id):
        return False
    return True


# ═══════════════════════════════════════════════════════════════════
#  Text mode
# ═══════════════════════════════════════════════════════════════════


def candidate_lines(raw_text: str) -> list[str]:
    """Trimmed, non-empty lines that pass every line filter."""
    lines = (line.strip() for line in _LINE_SPLIT_RE.split(raw_text or ""))
    return [
        line for line in lines
        if line and not any(f(line) for f in _LINE_FILTERS)
    ]


def parse_list(raw_text: str) -> list[PackageRecord]:
    """Parse the text table printed by ``winget list``."""
    records: list[PackageRecord] = []
    for line in candidate_lines(raw_text):
        record = record_from_fields(split_columns(line))
        if record is not None:
            records.append(record)

    cleaned = [r for r in records if is_valid_record(r)]
    if len(cleaned) != len(records):
        logger.debug("list parser dropped %d junk rows", len(records) - len(cleaned))
    logger.debug("list parser produced %d records", len(cleaned))
    return cleaned


# ═══════════════════════════════════════════════════════════════════
#  Structured mode
# ═══════════════════════════════════════════════════════════════════


def _pick(item: dict[str, Any], aliases: Iterable[str]) -> str:
    for key in aliases:
        value = item.get(key)
        if value:
            return str(value).strip()
    return ""


def parse_structured_list(raw_json: str, aliases: FieldAliases | None = None) -> list[PackageRecord]:
    """Parse ``winget list --output json``.

    Raises:
        ParseFallback: output is not JSON, or not a JSON array.
    """
    aliases = aliases or FieldAliases()
    try:
        data = json.loads(raw_json)
    except (json.JSONDecodeError, TypeError) as e:
        raise ParseFallback(f"structured list output is not JSON: {e}") from e

    if not isinstance(data, list):
        raise ParseFallback(
            f"structured list output is a JSON {type(data).__name__}, expected an array"
        )

    records = []
    for item in data:
        if not isinstance(item, dict):
            continue
        record = PackageRecord(
            name=_pick(item, aliases.name),
            id=_pick(item, aliases.id),
            version=_pick(item, aliases.version),
            available=_pick(item, aliases.available),
        )
        if is_valid_record(record):
            records.append(record)
    return records
