"""
sheet_import.py — Legacy published-sheet import

Before shift entry moved into the database, wards reported into a shared
spreadsheet published as CSV. This module still reads those sheets:

  1. convert_to_csv_url  → turn a share link into its CSV export URL
  2. SheetImporter.fetch → download with a bounded timeout (httpx)
  3. parse_csv           → pandas frame with bilingual headers normalised
  4. summarize_rows      → per-department workforce / productivity totals
"""

import io
import logging
import re
from typing import Any, Dict, List, Optional

import httpx
import pandas as pd

from app.services.sheet_settings import SheetSettings
from app.services.workload_engine import round_half_up, safe_ratio

logger = logging.getLogger("nursing-sheets")


# ---------------------------------------------------------------------------
# Header synonyms (Thai / English → canonical column)
# ---------------------------------------------------------------------------

HEADER_SYNONYMS: Dict[str, tuple] = {
    "date": ("date", "วันที่", "วัน"),
    "dept_type": ("dept_type", "department_type", "department", "dept", "type", "ประเภท", "แผนก"),
    "productivity": ("productivity", "prod", "ผลิตภาพ"),
    "ward_name": ("ward_name", "ward", "unit", "หอผู้ป่วย", "หน่วยงาน"),
    "total_workforce": ("total_nurses", "total_workforce", "total", "จำนวนพยาบาล", "กำลังคน"),
    "rn_count": ("rn_count", "rn", "พยาบาลวิชาชีพ"),
    "pn_count": ("pn_count", "pn", "na", "pn_na", "ผู้ช่วย", "ผู้ช่วยพยาบาล"),
    "night_shift_nurses": ("night_shift_nurses", "night", "เวรดึก"),
    "morning_shift_nurses": ("morning_shift_nurses", "morning", "เวรเช้า"),
    "afternoon_shift_nurses": ("afternoon_shift_nurses", "afternoon", "เวรบ่าย"),
    "target_score": ("target_score", "target", "เป้าหมาย"),
    "actual_score": ("actual_score", "actual", "คะแนนจริง"),
    "cmi": ("cmi",),
    "patient_visit": ("patient_visit", "visit", "ผู้ป่วย", "จำนวนผู้ป่วย"),
    "cap_suitable": ("cap_suitable", "suitable", "เหมาะสม"),
    "cap_improve": ("cap_improve", "improve", "ปรับปรุง"),
    "cap_shortage": ("cap_shortage", "shortage", "ขาดแคลน"),
}

_HEADER_LOOKUP: Dict[str, str] = {
    alias: canonical for canonical, aliases in HEADER_SYNONYMS.items() for alias in aliases
}

_SHEET_ID = re.compile(r"/spreadsheets/d/([a-zA-Z0-9\-_]+)")
_ISO_DATE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
_DATE_PARTS = re.compile(r"[/\-]")

SUMMED_COLUMNS = (
    "total_workforce", "rn_count", "pn_count",
    "night_shift_nurses", "morning_shift_nurses", "afternoon_shift_nurses",
    "target_score", "actual_score", "patient_visit",
    "cap_suitable", "cap_improve", "cap_shortage",
)


class SheetFetchError(RuntimeError):
    """The published sheet could not be downloaded."""


# ---------------------------------------------------------------------------
# Pure helpers
# ---------------------------------------------------------------------------

def normalize_header_name(header: str) -> str:
    h = str(header).strip().replace('"', "").lower()
    return _HEADER_LOOKUP.get(h, h)


def convert_to_csv_url(url: str, gid: str = "0") -> str:
    """Google Sheets share link → CSV export link. Other URLs pass through."""
    if "/export?format=csv" in url or "/pub?output=csv" in url:
        return url
    match = _SHEET_ID.search(url)
    if match:
        return f"https://docs.google.com/spreadsheets/d/{match.group(1)}/export?format=csv&gid={gid}"
    return url


def normalize_date(value: Any) -> str:
    """
    Normalise a sheet date to ``YYYY-MM-DD``.

    ``YYYY-MM-DD`` passes through. For ``a/b/YYYY``: a > 12 means D/M/Y,
    b > 12 means M/D/Y, and an ambiguous pair is read as M/D/Y (the export
    locale of the published sheets). Anything else is returned unchanged.
    """
    if value is None:
        return ""
    s = str(value).strip()
    if not s or _ISO_DATE.match(s):
        return s

    parts = _DATE_PARTS.split(s)
    if len(parts) != 3:
        return s
    p1, p2, p3 = parts

    if len(p3) == 4:
        try:
            v1, v2 = int(p1), int(p2)
        except ValueError:
            return s
        if v1 > 12:
            return f"{p3}-{p2.zfill(2)}-{p1.zfill(2)}"
        return f"{p3}-{p1.zfill(2)}-{p2.zfill(2)}"

    if len(p1) == 4:
        return f"{p1}-{p2.zfill(2)}-{p3.zfill(2)}"
    return s


def _to_number(value: Any) -> Any:
    if not isinstance(value, str) or value == "":
        return value
    try:
        number = float(value)
    except ValueError:
        return value
    if number.is_integer() and "." not in value and "e" not in value.lower():
        return int(number)
    return number


def parse_csv(csv_text: str) -> List[Dict[str, Any]]:
    """Parse CSV text into row dicts keyed by canonical column names."""
    if not csv_text.strip():
        return []
    df = pd.read_csv(
        io.StringIO(csv_text),
        dtype=str,
        keep_default_na=False,
        skip_blank_lines=True,
    )
    df.columns = [normalize_header_name(c) for c in df.columns]
    df = df.loc[:, ~df.columns.duplicated()]
    df = df.apply(lambda col: col.str.strip().str.replace('"', "", regex=False))
    # Rows where every cell is blank
    df = df[(df != "").any(axis=1)]

    if "date" in df.columns:
        df["date"] = df["date"].map(normalize_date)
    for col in df.columns:
        if col not in ("date", "dept_type", "ward_name"):
            df[col] = df[col].map(_to_number)
    return df.to_dict(orient="records")


def _as_float(value: Any) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


def summarize_rows(rows: List[Dict[str, Any]]) -> Dict[str, Dict[str, Any]]:
    """
    Per-department totals keyed by upper-cased ``dept_type``.

    productivity = Σ actual_score ÷ Σ target_score × 100 (0 without a target).
    """
    by_dept: Dict[str, Dict[str, float]] = {}
    for row in rows:
        dept = str(row.get("dept_type") or "").strip().upper()
        if not dept:
            continue
        totals = by_dept.setdefault(dept, {col: 0.0 for col in SUMMED_COLUMNS})
        totals.setdefault("rows", 0)
        totals["rows"] += 1
        for col in SUMMED_COLUMNS:
            totals[col] += _as_float(row.get(col))

    summary = {}
    for dept, t in by_dept.items():
        summary[dept] = {
            "rows": int(t["rows"]),
            "workforce": int(t["total_workforce"]),
            "rn": int(t["rn_count"]),
            "pn": int(t["pn_count"]),
            "nightShift": int(t["night_shift_nurses"]),
            "morningShift": int(t["morning_shift_nurses"]),
            "afternoonShift": int(t["afternoon_shift_nurses"]),
            "patientVisit": int(t["patient_visit"]),
            "capStatus": {
                "suitable": int(t["cap_suitable"]),
                "improve": int(t["cap_improve"]),
                "shortage": int(t["cap_shortage"]),
            },
            "productivity": round_half_up(safe_ratio(t["actual_score"], t["target_score"]) * 100.0),
        }
    return summary


# ---------------------------------------------------------------------------
# Importer
# ---------------------------------------------------------------------------

class SheetImporter:
    """Downloads and parses published sheets with a bounded timeout."""

    def __init__(
        self,
        settings: SheetSettings,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.settings = settings
        self.timeout = timeout
        self._transport = transport

    async def fetch_text(self, url: str) -> str:
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                r = await client.get(url, follow_redirects=True)
        except httpx.HTTPError as e:
            logger.warning(f"Sheet fetch failed for {url}: {e}")
            raise SheetFetchError(f"Failed to fetch sheet: {e}")
        if r.status_code != 200:
            logger.warning(f"Sheet fetch returned {r.status_code} for {url}")
            raise SheetFetchError(f"Failed to fetch sheet: HTTP {r.status_code}")
        return r.text

    async def fetch_rows(self, url: Optional[str] = None) -> List[Dict[str, Any]]:
        target = url or self.settings.main_url
        if not target:
            raise SheetFetchError("No sheet URL configured")
        text = await self.fetch_text(convert_to_csv_url(target))
        rows = parse_csv(text)
        logger.info(f"Parsed {len(rows)} row(s) from published sheet")
        return rows

    async def fetch_summary(self, url: Optional[str] = None) -> Dict[str, Dict[str, Any]]:
        return summarize_rows(await self.fetch_rows(url))
