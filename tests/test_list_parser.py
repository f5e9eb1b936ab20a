"""
Tests for list parsing — text table pipeline and structured mode.
"""

import json

import pytest

from wingetctl.core.config.loader import FieldAliases
from wingetctl.core.errors import ParseFallback
from wingetctl.core.models.package import PackageRecord
from wingetctl.core.services.list_parser import (
    candidate_lines,
    is_decoration_line,
    is_header_line,
    is_junk_token,
    is_summary_line,
    parse_list,
    parse_structured_list,
    record_from_fields,
    split_columns,
)

CHINESE_OUTPUT = (
    "名称                 ID                       版本        可用        源\n"
    "------------------------------------------------------------------------\n"
    "Git                  Git.Git                  2.40.0      2.41.0      winget\n"
    "Visual Studio Code   Microsoft.VisualStudioCode  1.80.0   1.81.1      winget\n"
    "3 升级可用。\n"
)

ENGLISH_OUTPUT = (
    "\r   - \r   \\ \r   | \r"
    "Name                        Id                          Version     Available  Source\n"
    "-----------------------------------------------------------------------------------\n"
    "Google Android Studio       Google.AndroidStudio        2022.3.1    2023.1.1   winget\n"
    "7-Zip 23.01 (x64)           7zip.7zip                   23.01\n"
    "Microsoft Edge              Microsoft.Edge              118.0.2088\n"
    "2 upgrades available.\n"
)


# ── Predicates ───────────────────────────────────────────────────────


class TestJunkToken:
    @pytest.mark.parametrize("token", ["", "   ", "-", "|", "\\", "/", "--|--", "x", "\x1b", "\x08-"])
    def test_junk(self, token):
        assert is_junk_token(token)

    @pytest.mark.parametrize("token", ["7", "Git.Git", "1.0", "ab", "名称"])
    def test_not_junk(self, token):
        assert not is_junk_token(token)


class TestLineFilters:
    @pytest.mark.parametrize("line", ["-", "----------", "| / - \\", "\x1b[", "…"])
    def test_decoration(self, line):
        assert is_decoration_line(line)

    def test_words_are_not_decoration(self):
        assert not is_decoration_line("Git  Git.Git  2.40.0")

    @pytest.mark.parametrize("line", [
        "Name   Id   Version   Available   Source",
        "名称  ID  版本  可用  源",
        "=====",
        "---------------",
    ])
    def test_header(self, line):
        assert is_header_line(line)

    def test_id_substring_is_not_header(self):
        assert not is_header_line("Google Android Studio  Google.AndroidStudio  2022.3.1")

    def test_keyword_named_package_is_not_header(self):
        assert not is_header_line("Portable Source Version  Foo.PSV  1.0  2.0")

    @pytest.mark.parametrize("line", [
        "3 升级可用。",
        "3 个升级可用",
        "升级可用: 3",
        "2 upgrades available.",
        "1 upgrade available.",
        "找不到与输入条件匹配的已安装程序包。",
        "No installed package found matching input criteria.",
    ])
    def test_summary(self, line):
        assert is_summary_line(line)

    def test_row_is_not_summary(self):
        assert not is_summary_line("3DMark  UL.3DMark  2.26")


# ── Field dispatch ───────────────────────────────────────────────────


class TestFieldDispatch:
    def test_split_on_two_spaces(self):
        assert split_columns("Visual Studio Code   Microsoft.VSCode  1.80") == [
            "Visual Studio Code", "Microsoft.VSCode", "1.80",
        ]

    def test_four_or_more(self):
        r = record_from_fields(["Git", "Git.Git", "2.40.0", "2.41.0", "winget"])
        assert r == PackageRecord(name="Git", id="Git.Git", version="2.40.0", available="2.41.0")

    def test_three(self):
        r = record_from_fields(["Git", "Git.Git", "2.40.0"])
        assert r == PackageRecord(name="Git", id="Git.Git", version="2.40.0", available="")

    def test_two(self):
        r = record_from_fields(["Git", "Git.Git"])
        assert r == PackageRecord(name="Git", id="Git.Git", version="", available="")

    def test_single_field_discarded(self):
        assert record_from_fields(["Git"]) is None

    def test_all_junk_discarded(self):
        assert record_from_fields(["-", "|", "/"]) is None

    def test_junk_id_discarded(self):
        assert record_from_fields(["Git", "-", "2.40.0"]) is None

    def test_first_field_needs_word_char(self):
        assert record_from_fields(["--", "Git.Git", "2.40.0"]) is None


# ── Text mode end to end ─────────────────────────────────────────────


class TestParseList:
    def test_chinese_output(self):
        records = parse_list(CHINESE_OUTPUT)
        assert records == [
            PackageRecord(name="Git", id="Git.Git", version="2.40.0", available="2.41.0"),
            PackageRecord(
                name="Visual Studio Code", id="Microsoft.VisualStudioCode",
                version="1.80.0", available="1.81.1",
            ),
        ]

    def test_chinese_header_and_summary_dropped(self):
        lines = candidate_lines(CHINESE_OUTPUT)
        assert len(lines) == 2
        assert all("升级可用" not in line and "名称" not in line for line in lines)

    def test_english_output_with_spinner(self):
        records = parse_list(ENGLISH_OUTPUT)
        assert [r.id for r in records] == ["Google.AndroidStudio", "7zip.7zip", "Microsoft.Edge"]
        assert records[0].available == "2023.1.1"
        assert records[1].version == "23.01"
        assert records[1].available == ""

    def test_windows_line_endings(self):
        text = "Name  Id  Version\r\nGit  Git.Git  2.40.0\r\n"
        assert parse_list(text) == [PackageRecord(name="Git", id="Git.Git", version="2.40.0")]

    def test_keyword_named_package_kept(self):
        text = "Name  Id  Version  Available\nPortable Source Version  Foo.PSV  1.0  2.0\n"
        assert parse_list(text) == [
            PackageRecord(name="Portable Source Version", id="Foo.PSV", version="1.0", available="2.0"),
        ]

    def test_decorative_only_yields_nothing(self):
        assert parse_list("-\n----\n |\n/\n\\\n\n   \n") == []

    def test_empty_input(self):
        assert parse_list("") == []
        assert parse_list(None) == []  # type: ignore[arg-type]

    def test_no_match_sentinel(self):
        assert parse_list("No installed package found matching input criteria.") == []

    def test_idempotent(self):
        assert parse_list(ENGLISH_OUTPUT) == parse_list(ENGLISH_OUTPUT)
        assert parse_list(CHINESE_OUTPUT) == parse_list(CHINESE_OUTPUT)

    def test_extra_columns_ignored(self):
        text = "Foo  Foo.Bar  1.0  2.0  winget  extra"
        assert parse_list(text) == [
            PackageRecord(name="Foo", id="Foo.Bar", version="1.0", available="2.0"),
        ]


# ── Structured mode ──────────────────────────────────────────────────


class TestParseStructured:
    def test_default_aliases(self):
        raw = json.dumps([
            {"Name": "Git", "Id": "Git.Git", "Version": "2.40.0", "AvailableVersion": "2.41.0"},
            {"PackageName": "7-Zip", "PackageIdentifier": "7zip.7zip", "InstalledVersion": "23.01"},
        ])
        records = parse_structured_list(raw)
        assert records == [
            PackageRecord(name="Git", id="Git.Git", version="2.40.0", available="2.41.0"),
            PackageRecord(name="7-Zip", id="7zip.7zip", version="23.01", available=""),
        ]

    def test_first_non_empty_alias_wins(self):
        raw = json.dumps([{"Name": "", "name": "git", "Id": "Git.Git"}])
        assert parse_structured_list(raw)[0].name == "git"

    def test_configured_alias(self):
        aliases = FieldAliases(id=["Identifier"])
        raw = json.dumps([{"Name": "Git", "Identifier": "Git.Git"}])
        assert parse_structured_list(raw, aliases)[0].id == "Git.Git"

    def test_non_dict_and_empty_items_skipped(self):
        raw = json.dumps(["oops", 3, {}, {"Name": "Git", "Id": "Git.Git"}])
        assert [r.id for r in parse_structured_list(raw)] == ["Git.Git"]

    def test_values_stringified(self):
        raw = json.dumps([{"Name": "Tool", "Id": "T.T", "Version": 3}])
        assert parse_structured_list(raw)[0].version == "3"

    def test_not_json(self):
        with pytest.raises(ParseFallback):
            parse_structured_list("Name  Id  Version\nGit  Git.Git  2.40")

    def test_not_an_array(self):
        with pytest.raises(ParseFallback):
            parse_structured_list('{"Sources": []}')
