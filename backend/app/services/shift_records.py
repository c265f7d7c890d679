"""
Plain record types handed to the scoring and aggregation engines.

The engines never touch ORM rows directly; routes and the repository convert
rows with the ``*_from_row`` helpers so the engines stay pure and testable.
Missing counts become 0 here, so no None ever reaches the arithmetic.
"""
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Dict, Optional


def _int(value: Any) -> int:
    return int(value or 0)


def _float(value: Any) -> float:
    if value is None:
        return 0.0
    return float(value)


@dataclass
class IpdShiftRecord:
    ward_id: int
    record_date: date
    shift: str
    hn_count: int = 0
    rn_count: int = 0
    tn_count: int = 0
    na_count: int = 0
    ward_name: str = ""

    @property
    def total_staff(self) -> int:
        return self.hn_count + self.rn_count + self.tn_count + self.na_count

    @property
    def rn_total(self) -> int:
        """Canonical IPD "RN": head nurse plus staff RN."""
        return self.hn_count + self.rn_count

    @property
    def non_rn_total(self) -> int:
        return self.tn_count + self.na_count


@dataclass
class OpdShiftRecord:
    ward_id: int
    record_date: date
    shift: str
    rn_count: int = 0
    non_rn_count: int = 0
    patient_total: Optional[int] = None
    category_data: Dict[str, int] = field(default_factory=dict)
    workload_score: Optional[float] = None
    ward_name: str = ""
    ward_dept_type: str = "OPD"

    @property
    def actual_staff(self) -> int:
        return self.rn_count + self.non_rn_count


@dataclass
class DailySummaryRecord:
    ward_id: int
    record_date: date
    total_staff_day: int = 0
    patient_day: int = 0
    hppd: float = 0.0
    discharge_count: int = 0
    new_admission: int = 0
    productivity: float = 0.0
    cmi: float = 0.0
    cap_status: str = ""
    ward_name: str = ""


def ipd_shift_from_row(row, ward_name: str = "") -> IpdShiftRecord:
    return IpdShiftRecord(
        ward_id=row.ward_id,
        record_date=row.record_date,
        shift=row.shift,
        hn_count=_int(row.hn_count),
        rn_count=_int(row.rn_count),
        tn_count=_int(row.tn_count),
        na_count=_int(row.na_count),
        ward_name=ward_name,
    )


def opd_shift_from_row(row, ward_name: str = "", ward_dept_type: str = "OPD") -> OpdShiftRecord:
    return OpdShiftRecord(
        ward_id=row.ward_id,
        record_date=row.record_date,
        shift=row.shift,
        rn_count=_int(row.rn_count),
        non_rn_count=_int(row.non_rn_count),
        patient_total=_int(row.patient_total),
        category_data={k: _int(v) for k, v in (row.category_data or {}).items()},
        workload_score=None if row.workload_score is None else _float(row.workload_score),
        ward_name=ward_name,
        ward_dept_type=ward_dept_type,
    )


def summary_from_row(row, ward_name: str = "") -> DailySummaryRecord:
    return DailySummaryRecord(
        ward_id=row.ward_id,
        record_date=row.record_date,
        total_staff_day=_int(row.total_staff_day),
        patient_day=_int(row.patient_day),
        hppd=_float(row.hppd),
        discharge_count=_int(row.discharge_count),
        new_admission=_int(row.new_admission),
        productivity=_float(row.productivity),
        cmi=_float(row.cmi),
        cap_status=row.cap_status or "",
        ward_name=ward_name,
    )
