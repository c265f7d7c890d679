"""
workload_engine.py — Nursing workload scoring & productivity engine

Covers:
  - OPD-family workload score: weighted sum of per-ward counters
  - Legacy triage formula for wards never migrated to a dynamic schema
  - Expected staff (workload ÷ hours per shift) vs. actual staff on duty
  - Shift productivity % (expected ÷ actual) and NHPPD expect / actual
  - IPD daily HPPD and productivity against the 6.0 HPPD benchmark

Two productivity models coexist on purpose and are selected by department
type: OPD measures workload against staff per shift, IPD measures staffing
hours against patient-days. A productivity ≥ 85 % is "appropriate".

Every ratio returns 0 on a zero denominator. Values are kept at full
precision; ``round_half_up`` is applied only when results are rendered.
"""

from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, Mapping, Optional

from app.services.ward_config import (
    DynamicFieldSchema,
    LEGACY_TRIAGE_KEYS,
    LEGACY_TRIAGE_SCHEMA,
    WardConfig,
)
from app.services.shift_records import IpdShiftRecord, OpdShiftRecord


# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

HOURS_PER_SHIFT: float = 7.0          # direct-care hours one staff member delivers per shift
STANDARD_HPPD: float = 6.0            # IPD benchmark hours per patient-day
ADEQUACY_THRESHOLD_PCT: float = 85.0  # ≥ threshold: appropriate, below: short

ADEQUACY_APPROPRIATE = "appropriate"
ADEQUACY_SHORT = "short"

WORKLOAD_SCORED = "scored"
WORKLOAD_LEGACY = "legacy"
WORKLOAD_UNCONFIGURED = "unconfigured"


# ---------------------------------------------------------------------------
# Numeric helpers
# ---------------------------------------------------------------------------

def round_half_up(value: Optional[float], places: int = 2) -> float:
    """Round for display with half-up semantics (2.675 → 2.68, not 2.67)."""
    if value is None:
        return 0.0
    quantum = Decimal(1).scaleb(-places)
    return float(Decimal(str(value)).quantize(quantum, rounding=ROUND_HALF_UP))


def safe_ratio(numerator: float, denominator: float) -> float:
    """numerator ÷ denominator, or 0.0 when the denominator is zero."""
    if not denominator:
        return 0.0
    return numerator / denominator


def classify_adequacy(productivity_pct: float) -> str:
    return ADEQUACY_APPROPRIATE if productivity_pct >= ADEQUACY_THRESHOLD_PCT else ADEQUACY_SHORT


# ---------------------------------------------------------------------------
# Result types
# ---------------------------------------------------------------------------

@dataclass
class ShiftScore:
    """Per-shift scoring result (full precision)."""
    workload_available: bool
    workload_status: str
    workload_score: Optional[float]
    expected_staff: float
    actual_staff: int
    productivity_pct: float
    nhppd_expect: float
    nhppd_actual: float
    patient_total: int

    @property
    def adequacy(self) -> str:
        return classify_adequacy(self.productivity_pct)

    def to_display(self) -> Dict[str, Any]:
        return {
            "workloadAvailable": self.workload_available,
            "workloadStatus": self.workload_status,
            "workloadScore": None if self.workload_score is None else round_half_up(self.workload_score),
            "expectedStaff": round_half_up(self.expected_staff),
            "actualStaff": self.actual_staff,
            "productivity": round_half_up(self.productivity_pct),
            "nhppdExpect": round_half_up(self.nhppd_expect),
            "nhppdActual": round_half_up(self.nhppd_actual),
            "patientTotal": self.patient_total,
            "adequacy": self.adequacy,
        }


@dataclass
class IpdDailyMetrics:
    total_staff: int
    patient_day: int
    hppd: float
    productivity_pct: float

    @property
    def adequacy(self) -> str:
        return classify_adequacy(self.productivity_pct)


# ---------------------------------------------------------------------------
# WorkloadEngine
# ---------------------------------------------------------------------------

class WorkloadEngine:
    """
    Stateless scoring engine. Constructed with the staffing standards so a
    caller (or a test) can evaluate alternative standards without touching
    module constants.
    """

    def __init__(
        self,
        hours_per_shift: float = HOURS_PER_SHIFT,
        standard_hppd: float = STANDARD_HPPD,
    ) -> None:
        self.hours_per_shift = hours_per_shift
        self.standard_hppd = standard_hppd

    # -----------------------------------------------------------------------
    # 1. Workload score
    # -----------------------------------------------------------------------

    @staticmethod
    def workload_score(category_data: Mapping[str, Any], schema: DynamicFieldSchema) -> float:
        """
        Σ count × multiplier over the schema's fields.

        Absent keys count as 0; keys in ``category_data`` that the schema does
        not define contribute nothing.
        """
        total = 0.0
        for f in schema.fields:
            total += float(category_data.get(f.key) or 0) * f.multiplier
        return total

    @staticmethod
    def resolve_schema(
        config: Optional[WardConfig],
        category_data: Mapping[str, Any],
    ) -> Optional[DynamicFieldSchema]:
        """
        Pick the schema an OPD-family record is scored with.

        The ward's dynamic schema when it has one; the legacy triage schema
        when the ward has none but the record carries legacy counters;
        otherwise None (workload cannot be computed).
        """
        if config is not None and isinstance(config.schema, DynamicFieldSchema):
            return config.schema
        if any(key in category_data for key in LEGACY_TRIAGE_KEYS):
            return LEGACY_TRIAGE_SCHEMA
        return None

    @staticmethod
    def derive_patient_total(category_data: Mapping[str, Any], schema: Optional[DynamicFieldSchema]) -> int:
        """Sum of the counters the schema knows about."""
        if schema is None:
            return 0
        return sum(int(category_data.get(key) or 0) for key in schema.keys)

    # -----------------------------------------------------------------------
    # 2-5. OPD shift scoring
    # -----------------------------------------------------------------------

    def score_opd_shift(self, record: OpdShiftRecord, config: Optional[WardConfig]) -> ShiftScore:
        category_data = record.category_data or {}
        schema = self.resolve_schema(config, category_data)

        if record.patient_total is not None:
            patient_total = int(record.patient_total)
        else:
            patient_total = self.derive_patient_total(category_data, schema)

        actual = record.actual_staff

        if schema is None:
            return ShiftScore(
                workload_available=False,
                workload_status=WORKLOAD_UNCONFIGURED,
                workload_score=None,
                expected_staff=0.0,
                actual_staff=actual,
                productivity_pct=0.0,
                nhppd_expect=0.0,
                nhppd_actual=safe_ratio(actual * self.hours_per_shift, patient_total),
                patient_total=patient_total,
            )

        workload = self.workload_score(category_data, schema)
        expected = workload / self.hours_per_shift
        return ShiftScore(
            workload_available=True,
            workload_status=WORKLOAD_LEGACY if schema is LEGACY_TRIAGE_SCHEMA else WORKLOAD_SCORED,
            workload_score=workload,
            expected_staff=expected,
            actual_staff=actual,
            productivity_pct=self.shift_productivity(expected, actual),
            nhppd_expect=safe_ratio(expected * self.hours_per_shift, patient_total),
            nhppd_actual=safe_ratio(actual * self.hours_per_shift, patient_total),
            patient_total=patient_total,
        )

    def score_stored_shift(self, record: OpdShiftRecord, config: Optional[WardConfig] = None) -> ShiftScore:
        """
        Per-shift metrics from the workload materialized when the row was saved.

        The status is re-derived the way ``score_opd_shift`` picks a schema, so
        a row scored with the legacy triage counters reads back as "legacy".
        """
        actual = record.actual_staff
        patient_total = int(record.patient_total or 0)
        if record.workload_score is None:
            return ShiftScore(
                workload_available=False,
                workload_status=WORKLOAD_UNCONFIGURED,
                workload_score=None,
                expected_staff=0.0,
                actual_staff=actual,
                productivity_pct=0.0,
                nhppd_expect=0.0,
                nhppd_actual=safe_ratio(actual * self.hours_per_shift, patient_total),
                patient_total=patient_total,
            )
        expected = record.workload_score / self.hours_per_shift
        schema = self.resolve_schema(config, record.category_data or {})
        return ShiftScore(
            workload_available=True,
            workload_status=WORKLOAD_LEGACY if schema is LEGACY_TRIAGE_SCHEMA else WORKLOAD_SCORED,
            workload_score=record.workload_score,
            expected_staff=expected,
            actual_staff=actual,
            productivity_pct=self.shift_productivity(expected, actual),
            nhppd_expect=safe_ratio(expected * self.hours_per_shift, patient_total),
            nhppd_actual=safe_ratio(actual * self.hours_per_shift, patient_total),
            patient_total=patient_total,
        )

    @staticmethod
    def shift_productivity(expected_staff: float, actual_staff: float) -> float:
        """(expected ÷ actual) × 100, 0 when nobody is on duty."""
        if actual_staff <= 0:
            return 0.0
        return expected_staff / actual_staff * 100.0

    def opd_productivity(self, total_workload: float, total_staff: float) -> float:
        """
        Department / ward productivity as a ratio of sums:
        (Σ workload ÷ hours) ÷ Σ staff × 100. Never an average of shift ratios.
        """
        return self.shift_productivity(total_workload / self.hours_per_shift, total_staff)

    # -----------------------------------------------------------------------
    # IPD
    # -----------------------------------------------------------------------

    @staticmethod
    def ipd_actual_staff(record: IpdShiftRecord) -> int:
        return record.total_staff

    def ipd_daily_metrics(self, total_staff: int, patient_day: int) -> IpdDailyMetrics:
        """
        HPPD = staff × hours ÷ patient-days;
        productivity = patient-days × standard HPPD ÷ (staff × hours) × 100.
        """
        staff_hours = total_staff * self.hours_per_shift
        return IpdDailyMetrics(
            total_staff=total_staff,
            patient_day=patient_day,
            hppd=safe_ratio(staff_hours, patient_day),
            productivity_pct=safe_ratio(patient_day * self.standard_hppd, staff_hours) * 100.0,
        )

    def ipd_day_from_shifts(self, shifts, patient_day: int) -> IpdDailyMetrics:
        """Daily metrics from the day's shift records (all shifts summed)."""
        total_staff = sum(self.ipd_actual_staff(s) for s in shifts)
        return self.ipd_daily_metrics(total_staff, patient_day)
