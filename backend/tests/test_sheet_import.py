"""
test_sheet_import.py — Legacy published-sheet import.

Tests cover:
  - Bilingual header normalisation
  - Share-link → CSV export URL conversion
  - Date normalisation (ISO, D/M/Y, M/D/Y, Y/M/D)
  - CSV parsing via pandas and per-department summaries
  - Fetching through httpx with a mock transport
  - Settings persistence
"""

import asyncio

import httpx
import pytest

from app.services.sheet_import import (
    SheetFetchError,
    SheetImporter,
    convert_to_csv_url,
    normalize_date,
    normalize_header_name,
    parse_csv,
    summarize_rows,
)
from app.services.sheet_settings import SheetSettings, load_settings, save_settings


class TestHeaders:

    @pytest.mark.parametrize("raw,expected", [
        ("Date", "date"),
        ("วันที่", "date"),
        (' "Department" ', "dept_type"),
        ("แผนก", "dept_type"),
        ("Total", "total_workforce"),
        ("PN", "pn_count"),
        ("เวรดึก", "night_shift_nurses"),
        ("Some Other Column", "some other column"),
    ])
    def test_normalize(self, raw, expected):
        assert normalize_header_name(raw) == expected


class TestCsvUrl:

    def test_share_link(self):
        url = "https://docs.google.com/spreadsheets/d/abc_123-XYZ/edit#gid=0"
        assert convert_to_csv_url(url) == (
            "https://docs.google.com/spreadsheets/d/abc_123-XYZ/export?format=csv&gid=0"
        )

    def test_gid(self):
        url = "https://docs.google.com/spreadsheets/d/abc/edit"
        assert convert_to_csv_url(url, gid="42").endswith("gid=42")

    def test_already_csv(self):
        url = "https://docs.google.com/spreadsheets/d/e/xyz/pub?output=csv"
        assert convert_to_csv_url(url) == url

    def test_other_url_unchanged(self):
        assert convert_to_csv_url("https://example.org/data.csv") == "https://example.org/data.csv"


class TestDates:

    @pytest.mark.parametrize("raw,expected", [
        ("2026-03-01", "2026-03-01"),
        ("15/03/2026", "2026-03-15"),   # first part > 12 → D/M/Y
        ("03/15/2026", "2026-03-15"),   # second part > 12 → M/D/Y
        ("3/1/2026", "2026-03-01"),     # ambiguous → M/D/Y
        ("2026/3/1", "2026-03-01"),
        ("yesterday", "yesterday"),
        ("", ""),
        (None, ""),
    ])
    def test_normalize(self, raw, expected):
        assert normalize_date(raw) == expected


class TestParseAndSummarize:

    CSV = (
        "วันที่,แผนก,หอผู้ป่วย,Total,RN,PN,Target,Actual,Suitable\n"
        "15/03/2026,IPD,Medicine 1,10,6,4,100,90,1\n"
        "\n"
        "15/03/2026,opd,Clinic,5,3,2,50,60,0\n"
        "16/03/2026,IPD,Medicine 2,12,8,4,100,80,1\n"
        ",,,,,,,,\n"
    )

    def test_parse(self):
        rows = parse_csv(self.CSV)
        assert len(rows) == 3
        first = rows[0]
        assert first["date"] == "2026-03-15"
        assert first["dept_type"] == "IPD"
        assert first["ward_name"] == "Medicine 1"
        assert first["total_workforce"] == 10
        assert isinstance(first["rn_count"], int)

    def test_parse_empty(self):
        assert parse_csv("") == []
        assert parse_csv("   \n") == []

    def test_duplicate_canonical_columns_keep_first(self):
        rows = parse_csv("Total,total_workforce\n7,9\n")
        assert rows == [{"total_workforce": 7}]

    def test_summarize(self):
        """IPD: actual 170 ÷ target 200 × 100 = 85 %. OPD: 60 ÷ 50 × 100 = 120 %."""
        summary = summarize_rows(parse_csv(self.CSV))
        assert set(summary) == {"IPD", "OPD"}
        assert summary["IPD"]["workforce"] == 22
        assert summary["IPD"]["rn"] == 14
        assert summary["IPD"]["pn"] == 8
        assert summary["IPD"]["productivity"] == 85.0
        assert summary["IPD"]["capStatus"]["suitable"] == 2
        assert summary["OPD"]["productivity"] == 120.0

    def test_summarize_without_target(self):
        summary = summarize_rows([{"dept_type": "ER", "actual_score": 40}])
        assert summary["ER"]["productivity"] == 0.0

    def test_rows_without_department_ignored(self):
        assert summarize_rows([{"total_workforce": 10}]) == {}


class TestImporter:

    def test_fetch_summary(self):
        seen = []

        def handler(request):
            seen.append(str(request.url))
            return httpx.Response(200, text="Department,Total\nIPD,10\n")

        importer = SheetImporter(
            SheetSettings(main_url="https://docs.google.com/spreadsheets/d/abc/edit"),
            transport=httpx.MockTransport(handler),
        )
        summary = asyncio.run(importer.fetch_summary())
        assert summary["IPD"]["workforce"] == 10
        assert seen == ["https://docs.google.com/spreadsheets/d/abc/export?format=csv&gid=0"]

    def test_http_error_status(self):
        importer = SheetImporter(SheetSettings(), transport=httpx.MockTransport(lambda r: httpx.Response(500)))
        with pytest.raises(SheetFetchError):
            asyncio.run(importer.fetch_text("https://example.org/x.csv"))

    def test_transport_failure(self):
        def handler(request):
            raise httpx.ConnectTimeout("timed out", request=request)

        importer = SheetImporter(SheetSettings(), timeout=0.1, transport=httpx.MockTransport(handler))
        with pytest.raises(SheetFetchError):
            asyncio.run(importer.fetch_text("https://example.org/x.csv"))

    def test_no_url_configured(self):
        with pytest.raises(SheetFetchError):
            asyncio.run(SheetImporter(SheetSettings()).fetch_rows())


class TestSettings:

    def test_defaults_when_missing(self, tmp_path):
        settings = load_settings(tmp_path / "missing.json")
        assert settings == SheetSettings()

    def test_save_and_load(self, tmp_path):
        path = tmp_path / "settings.json"
        save_settings(SheetSettings(main_url="https://example.org/s", opd_sheet="OPD_ใหม่"), path)
        loaded = load_settings(path)
        assert loaded.main_url == "https://example.org/s"
        assert loaded.opd_sheet == "OPD_ใหม่"
        assert loaded.summary_sheet == "Daily_Summary"

    def test_corrupt_file_falls_back(self, tmp_path):
        path = tmp_path / "settings.json"
        path.write_text("{not json", encoding="utf-8")
        assert load_settings(path) == SheetSettings()

    def test_from_dict_accepts_snake_and_camel(self):
        assert SheetSettings.from_dict({"mainUrl": "a"}).main_url == "a"
        assert SheetSettings.from_dict({"ipd_sheet": "b"}).ipd_sheet == "b"
