"""
Export Engine — renders a PeriodReport as an Excel workbook (one sheet per ward).

Layouts:
  - IPD: วันที่ | เวร | HN | RN | TN | NA | รวม | Pt/Day | HPPD | D/C | รับใหม่ |
         Productivity% | CMI | CAP   (summary columns merged over the day)
  - OPD family: วันที่ | เวร | RN | Non-RN | จำนวน Pt | <ward fields ×mult> |
         Nursing Need | NHPPD(Expect) | อัตรากำลัง(Expect) | อัตรากำลัง(Actual) |
         NHPPD(Actual) | Productivity%

Workbooks are written to DOWNLOAD_DIR and the path returned for FileResponse.
"""
import os
import re
import logging
from datetime import date
from typing import Any, Dict, List, Optional

import xlsxwriter

from app.services.aggregation_engine import CAP_LABELS_TH, PeriodReport, WardPeriod
from app.services.ward_config import DEPT_IPD
from app.services.workload_engine import ADEQUACY_THRESHOLD_PCT

logger = logging.getLogger("nursing-export")

DOWNLOAD_DIR = os.getenv("DOWNLOAD_DIR", "/tmp/downloads")

SHIFT_LABELS_TH = {"morning": "ช", "afternoon": "บ", "night": "ด"}
THAI_MONTHS = (
    "ม.ค.", "ก.พ.", "มี.ค.", "เม.ย.", "พ.ค.", "มิ.ย.",
    "ก.ค.", "ส.ค.", "ก.ย.", "ต.ค.", "พ.ย.", "ธ.ค.",
)

IPD_HEADERS = [
    "วันที่", "เวร", "HN", "RN", "TN", "NA", "รวม",
    "Pt/Day", "HPPD", "D/C", "รับใหม่", "Productivity%", "CMI", "CAP",
]
OPD_LEFT_HEADERS = ["วันที่", "เวร", "RN", "Non-RN", "จำนวน Pt"]
OPD_RIGHT_HEADERS = [
    "Nursing\nNeed", "NHPPD\n(Expect)", "อัตรากำลัง\n(Expect)",
    "อัตรากำลัง\n(Actual)", "NHPPD\n(Actual)", "Productivity\n%",
]

_SHEET_BAD_CHARS = re.compile(r"[\[\]:*?/\\]")


def thai_date(d: date) -> str:
    """2026-03-01 → '1 มี.ค. 2569' (Buddhist era)."""
    return f"{d.day} {THAI_MONTHS[d.month - 1]} {d.year + 543}"


def sheet_name(name: str, taken: set) -> str:
    """Excel-safe, unique worksheet name (≤ 31 chars)."""
    base = _SHEET_BAD_CHARS.sub("_", name or "Sheet").strip() or "Sheet"
    base = base[:31]
    candidate = base
    n = 2
    while candidate.lower() in taken:
        suffix = f" ({n})"
        candidate = base[:31 - len(suffix)] + suffix
        n += 1
    taken.add(candidate.lower())
    return candidate


def _blank_zero(value: Any) -> Any:
    return value if value else ""


class ExportEngine:
    def __init__(self, download_dir: Optional[str] = None):
        self.download_dir = download_dir or DOWNLOAD_DIR

    def render(self, report: PeriodReport, filename: Optional[str] = None) -> Optional[str]:
        """Write the workbook; returns its path, or None when rendering failed."""
        os.makedirs(self.download_dir, exist_ok=True)
        prefix = "IPD" if report.dept_type == DEPT_IPD else "OPD"
        filename = filename or (
            f"{prefix}_Export_{report.date_from.isoformat()}_{report.date_to.isoformat()}.xlsx"
        )
        path = os.path.join(self.download_dir, filename)
        try:
            wb = xlsxwriter.Workbook(path)
            fmt = self._formats(wb)
            taken: set = set()
            if not report.wards:
                ws = wb.add_worksheet("No data")
                ws.write("A1", "ไม่พบข้อมูลหอผู้ป่วยในช่วงวันที่ที่เลือก", fmt["title"])
            for ward in report.wards:
                ws = wb.add_worksheet(sheet_name(ward.name or ward.code, taken))
                if report.dept_type == DEPT_IPD:
                    self._write_ipd_sheet(ws, fmt, ward, report)
                else:
                    self._write_opd_sheet(ws, fmt, ward, report)
            wb.close()
            logger.info(f"{prefix} export generated: {path}")
            return path
        except Exception as e:
            logger.error(f"{prefix} export generation failed: {e}", exc_info=True)
            return None

    # ── Formats ──────────────────────────────────────────────────────────────

    @staticmethod
    def _formats(wb) -> Dict[str, Any]:
        center = {"align": "center", "valign": "vcenter", "border": 1}
        return {
            "title": wb.add_format({"bold": True, "font_size": 13, "font_color": "#1E3A5F",
                                    "align": "center", "valign": "vcenter"}),
            "hdr": wb.add_format({**center, "bold": True, "bg_color": "#1E3A5F",
                                  "font_color": "#FFFFFF", "font_size": 9, "text_wrap": True}),
            "hdr_staff": wb.add_format({**center, "bold": True, "bg_color": "#F59E0B",
                                        "font_color": "#FFFFFF", "font_size": 8, "text_wrap": True}),
            "hdr_cat": wb.add_format({**center, "bold": True, "bg_color": "#3B82F6",
                                      "font_color": "#FFFFFF", "font_size": 8, "text_wrap": True}),
            "hdr_calc": wb.add_format({**center, "bold": True, "bg_color": "#059669",
                                       "font_color": "#FFFFFF", "font_size": 8, "text_wrap": True}),
            "day": wb.add_format({**center, "bold": True, "bg_color": "#E2E8F0"}),
            "cell": wb.add_format({**center, "font_size": 10}),
            "num": wb.add_format({**center, "font_size": 10, "num_format": "0.00"}),
            "good": wb.add_format({**center, "bold": True, "font_color": "#059669", "num_format": "0.00"}),
            "bad": wb.add_format({**center, "bold": True, "font_color": "#DC2626", "num_format": "0.00"}),
        }

    @staticmethod
    def _productivity_fmt(fmt: Dict[str, Any], value: float):
        if not value:
            return fmt["num"]
        return fmt["good"] if value >= ADEQUACY_THRESHOLD_PCT else fmt["bad"]

    # ── IPD ──────────────────────────────────────────────────────────────────

    def _write_ipd_sheet(self, ws, fmt, ward: WardPeriod, report: PeriodReport) -> None:
        last_col = len(IPD_HEADERS) - 1
        ws.set_column(0, 1, 6)
        ws.set_column(2, 6, 7)
        ws.set_column(7, last_col, 11)
        ws.merge_range(
            0, 0, 0, last_col,
            f"{ward.name}   {thai_date(report.date_from)} — {thai_date(report.date_to)}",
            fmt["title"],
        )
        ws.set_row(0, 28)
        ws.write_row(1, 0, IPD_HEADERS, fmt["hdr"])

        row = 2
        for day in ward.days:
            first = row
            for shift_row in day.shifts:
                ws.write(row, 1, SHIFT_LABELS_TH.get(shift_row["shift"], shift_row["shift"]), fmt["cell"])
                ws.write_row(row, 2, [
                    _blank_zero(shift_row["hn"]),
                    _blank_zero(shift_row["rn"]),
                    _blank_zero(shift_row["tn"]),
                    _blank_zero(shift_row["na"]),
                    _blank_zero(shift_row["total"]),
                ], fmt["cell"])
                row += 1
            last = row - 1

            summary = day.summary or {}
            productivity = summary.get("productivity", 0)
            cap = summary.get("capCategory")
            values = [
                (summary.get("patientDay", ""), fmt["cell"]),
                (summary.get("hppd", ""), fmt["num"]),
                (summary.get("dischargeCount", ""), fmt["cell"]),
                (summary.get("newAdmission", ""), fmt["cell"]),
                (productivity if summary else "", self._productivity_fmt(fmt, productivity)),
                (summary.get("cmi", ""), fmt["num"]),
                (CAP_LABELS_TH.get(cap, summary.get("capStatus", "")) if summary else "", fmt["cell"]),
            ]
            self._merge_or_write(ws, first, last, 0, day.day_number, fmt["day"])
            for offset, (value, cell_fmt) in enumerate(values):
                self._merge_or_write(ws, first, last, 7 + offset, value, cell_fmt)

        ws.freeze_panes(2, 2)

    # ── OPD family ───────────────────────────────────────────────────────────

    def _write_opd_sheet(self, ws, fmt, ward: WardPeriod, report: PeriodReport) -> None:
        fields = ward.fields
        left = len(OPD_LEFT_HEADERS)
        dyn = len(fields)
        total_cols = left + dyn + len(OPD_RIGHT_HEADERS)
        last_col = total_cols - 1

        ws.set_column(0, 1, 6)
        ws.set_column(2, left - 1, 8)
        if dyn:
            ws.set_column(left, left + dyn - 1, 8)
        ws.set_column(left + dyn, last_col, 11)

        ws.merge_range(
            0, 0, 0, last_col,
            f"{ward.name}   {thai_date(report.date_from)} — {thai_date(report.date_to)}",
            fmt["title"],
        )
        ws.set_row(0, 28)

        # Section headers
        ws.merge_range(1, 0, 1, left - 1, "อัตรากำลัง / จำนวน Pt", fmt["hdr_staff"])
        if dyn == 1:
            ws.write(1, left, " / ".join(ward.group_names) or "ผู้ป่วย", fmt["hdr_cat"])
        elif dyn > 1:
            ws.merge_range(1, left, 1, left + dyn - 1, " / ".join(ward.group_names) or "ผู้ป่วย", fmt["hdr_cat"])
        ws.merge_range(1, left + dyn, 1, last_col, "Nursing / Productivity", fmt["hdr_calc"])

        ws.write_row(2, 0, OPD_LEFT_HEADERS, fmt["hdr_staff"])
        ws.write_row(2, left, [f"{f['label']}\n×{f['multiplier']:g}" for f in fields], fmt["hdr_cat"])
        ws.write_row(2, left + dyn, OPD_RIGHT_HEADERS, fmt["hdr_calc"])
        ws.set_row(2, 35)

        row = 3
        for day in ward.days:
            first = row
            for s in day.shifts:
                ws.write(row, 1, SHIFT_LABELS_TH.get(s["shift"], s["shift"]), fmt["cell"])
                ws.write_row(row, 2, [
                    _blank_zero(s["rn"]),
                    _blank_zero(s["nonRn"]),
                    _blank_zero(s["patientTotal"]),
                ], fmt["cell"])
                ws.write_row(row, left, [_blank_zero(s["counts"].get(f["key"], 0)) for f in fields], fmt["cell"])
                calc = [
                    s["workloadScore"],
                    s["nhppdExpect"],
                    s["expectedStaff"],
                    s["actualStaff"],
                    s["nhppdActual"],
                ]
                ws.write_row(row, left + dyn, [_blank_zero(v) for v in calc], fmt["num"])
                productivity = s["productivity"]
                ws.write(row, last_col, _blank_zero(productivity), self._productivity_fmt(fmt, productivity))
                row += 1
            self._merge_or_write(ws, first, row - 1, 0, day.day_number, fmt["day"])

        ws.freeze_panes(3, 2)

    @staticmethod
    def _merge_or_write(ws, first_row: int, last_row: int, col: int, value: Any, cell_fmt) -> None:
        if last_row > first_row:
            ws.merge_range(first_row, col, last_row, col, value, cell_fmt)
        else:
            ws.write(first_row, col, value, cell_fmt)
