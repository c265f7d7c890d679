"""
aggregation_engine.py — Daily dashboard and period-report aggregation

Rolls shift records (and, for IPD, daily summary rows) up into:
  - a DashboardSnapshot for one date (IPD or OPD family)
  - a PeriodReport for a ward list over a date range (feeds the export)

The functions here are pure: callers load records through the repository and
pass them in. All ratios delegate to WorkloadEngine so the OPD and IPD
models are defined in exactly one place.
"""

from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from app.services.shift_records import DailySummaryRecord, IpdShiftRecord, OpdShiftRecord
from app.services.ward_config import DEPT_IPD, DEPT_OPD, SHIFTS, WardConfig
from app.services.workload_engine import WorkloadEngine, round_half_up


# ---------------------------------------------------------------------------
# CAP (capacity adequacy) classification
# ---------------------------------------------------------------------------

CAP_SUITABLE = "suitable"
CAP_IMPROVE = "improve"
CAP_SHORTAGE = "shortage"
CAP_CATEGORIES: Tuple[str, ...] = (CAP_SUITABLE, CAP_IMPROVE, CAP_SHORTAGE)

# Checked top to bottom; first substring hit wins.
CAP_KEYWORDS: Tuple[Tuple[str, str], ...] = (
    ("suitable", CAP_SUITABLE),
    ("เหมาะสม", CAP_SUITABLE),
    ("improve", CAP_IMPROVE),
    ("ปรับปรุง", CAP_IMPROVE),
    ("shortage", CAP_SHORTAGE),
    ("ขาดแคลน", CAP_SHORTAGE),
)

CAP_LABELS_TH: Dict[str, str] = {
    CAP_SUITABLE: "เหมาะสม",
    CAP_IMPROVE: "ปรับปรุง",
    CAP_SHORTAGE: "ขาดแคลน",
}


def classify_cap_status(status: Optional[str]) -> Optional[str]:
    """Map a free-text CAP status to a category, or None when nothing matches."""
    text = (status or "").strip().lower()
    if not text:
        return None
    for keyword, category in CAP_KEYWORDS:
        if keyword in text:
            return category
    return None


def skill_mix_ratio(rn: int, non_rn: int) -> str:
    if non_rn <= 0:
        return "-"
    return f"1:{int(round_half_up(rn / non_rn, 0))}"


def date_range(date_from: date, date_to: date) -> List[date]:
    """Inclusive list of dates; raises ValueError when the range is inverted."""
    if date_to < date_from:
        raise ValueError("dateTo must not be before dateFrom")
    days = (date_to - date_from).days
    return [date_from + timedelta(days=i) for i in range(days + 1)]


# ---------------------------------------------------------------------------
# Dashboard snapshot
# ---------------------------------------------------------------------------

@dataclass
class WardRanking:
    ward_id: Optional[int]
    name: str
    productivity: float


@dataclass
class DashboardSnapshot:
    date: date
    dept_type: str
    productivity: float
    total_workforce: int
    cmi: float
    patient_visit: int
    shifts: Dict[str, Dict[str, Any]]
    workforce: Dict[str, int]
    skill_mix: Dict[str, Any]
    cap_status: Dict[str, int]
    ward_data: List[WardRanking] = field(default_factory=list)
    workload_score: Optional[float] = None
    unscored_shifts: int = 0

    def to_dict(self) -> Dict[str, Any]:
        out = {
            "date": self.date.isoformat(),
            "deptType": self.dept_type,
            "productivity": self.productivity,
            "totalWorkforce": self.total_workforce,
            "cmi": self.cmi,
            "patientVisit": self.patient_visit,
            "shifts": self.shifts,
            "workforce": self.workforce,
            "skillMix": self.skill_mix,
            "capStatus": self.cap_status,
            "wardData": [
                {"wardId": w.ward_id, "name": w.name, "prod": w.productivity}
                for w in self.ward_data
            ],
        }
        if self.dept_type != DEPT_IPD:
            out["workloadScore"] = self.workload_score
            out["unscoredShifts"] = self.unscored_shifts
        return out


def _rank_wards(rows: List[WardRanking]) -> List[WardRanking]:
    # sorted() is stable: equal productivity keeps input order
    return sorted(rows, key=lambda w: -w.productivity)


def aggregate_ipd_day(
    target_date: date,
    shifts: Iterable[IpdShiftRecord],
    summaries: Iterable[DailySummaryRecord],
) -> DashboardSnapshot:
    """
    IPD day view.

    Shift rows give the per-shift skill mix (RN = HN + RN, Non-RN = TN + NA).
    Summary rows give workforce, patient-days, CAP tallies and the ward
    ranking. Productivity and CMI are averaged over wards whose stored
    productivity is > 0; wards without data are left out of the denominator.
    """
    per_shift = {s: {"hn": 0, "rn": 0, "tn": 0, "na": 0} for s in SHIFTS}
    totals = {"hn": 0, "rn": 0, "tn": 0, "na": 0}

    for s in shifts:
        bucket = per_shift.get(s.shift)
        if bucket is not None:
            bucket["hn"] += s.hn_count
            bucket["rn"] += s.rn_count
            bucket["tn"] += s.tn_count
            bucket["na"] += s.na_count
        totals["hn"] += s.hn_count
        totals["rn"] += s.rn_count
        totals["tn"] += s.tn_count
        totals["na"] += s.na_count

    total_rn = totals["hn"] + totals["rn"]
    total_non_rn = totals["tn"] + totals["na"]

    total_workforce = 0
    total_patient_day = 0
    prod_sum = 0.0
    cmi_sum = 0.0
    prod_count = 0
    cap_counts = {c: 0 for c in CAP_CATEGORIES}
    ranking: List[WardRanking] = []

    for summary in summaries:
        total_workforce += summary.total_staff_day
        total_patient_day += summary.patient_day
        if summary.productivity > 0:
            prod_sum += summary.productivity
            cmi_sum += summary.cmi
            prod_count += 1

        category = classify_cap_status(summary.cap_status)
        if category is not None:
            cap_counts[category] += 1

        if summary.ward_name:
            ranking.append(WardRanking(
                ward_id=summary.ward_id,
                name=summary.ward_name,
                productivity=round_half_up(summary.productivity),
            ))

    def _shift_view(b: Dict[str, int]) -> Dict[str, int]:
        return {
            "rn": b["hn"] + b["rn"],
            "nonRn": b["tn"] + b["na"],
            "hn": b["hn"],
            "rnOnly": b["rn"],
            "tn": b["tn"],
            "na": b["na"],
        }

    return DashboardSnapshot(
        date=target_date,
        dept_type=DEPT_IPD,
        productivity=round_half_up(prod_sum / prod_count) if prod_count else 0.0,
        total_workforce=total_workforce,
        cmi=round_half_up(cmi_sum / prod_count) if prod_count else 0.0,
        patient_visit=total_patient_day,
        shifts={s: _shift_view(per_shift[s]) for s in SHIFTS},
        workforce={
            "rn": total_rn,
            "nonRn": total_non_rn,
            "hn": totals["hn"],
            "rnOnly": totals["rn"],
            "tn": totals["tn"],
            "na": totals["na"],
        },
        skill_mix={
            "total": total_rn + total_non_rn,
            "onDuty": total_rn + total_non_rn,
            "ratio": skill_mix_ratio(total_rn, total_non_rn),
        },
        cap_status=cap_counts,
        ward_data=_rank_wards(ranking),
    )


def aggregate_opd_day(
    target_date: date,
    dept_type: str,
    shifts: Iterable[OpdShiftRecord],
    engine: Optional[WorkloadEngine] = None,
) -> DashboardSnapshot:
    """
    OPD-family day view.

    ``dept_type`` other than ``OPD`` (e.g. ``ER``/``LR``) keeps only shifts of
    wards with that department type. Department and per-ward productivity are
    ratios of sums: (Σ workload ÷ 7) ÷ Σ staff. Shifts whose workload is
    unavailable add staff but no workload and are counted in
    ``unscored_shifts``.
    """
    engine = engine or WorkloadEngine()
    if dept_type != DEPT_OPD:
        shifts = [s for s in shifts if s.ward_dept_type == dept_type]

    per_shift = {s: {"rn": 0, "nonRn": 0, "workload": 0.0} for s in SHIFTS}
    wards: Dict[Any, Dict[str, Any]] = {}
    total_rn = 0
    total_non_rn = 0
    total_patients = 0
    total_workload = 0.0
    unscored = 0

    for s in shifts:
        workload = s.workload_score if s.workload_score is not None else 0.0
        if s.workload_score is None:
            unscored += 1
        total_rn += s.rn_count
        total_non_rn += s.non_rn_count
        total_patients += s.patient_total or 0
        total_workload += workload

        bucket = per_shift.get(s.shift)
        if bucket is not None:
            bucket["rn"] += s.rn_count
            bucket["nonRn"] += s.non_rn_count
            bucket["workload"] += workload

        ward = wards.setdefault(s.ward_id, {"name": s.ward_name or "Unknown", "workload": 0.0, "staff": 0})
        ward["workload"] += workload
        ward["staff"] += s.actual_staff

    ranking = [
        WardRanking(
            ward_id=ward_id,
            name=data["name"],
            productivity=round_half_up(engine.opd_productivity(data["workload"], data["staff"])),
        )
        for ward_id, data in wards.items()
    ]

    def _enrich(b: Dict[str, Any]) -> Dict[str, Any]:
        actual = b["rn"] + b["nonRn"]
        expect = b["workload"] / engine.hours_per_shift
        return {
            "rn": b["rn"],
            "nonRn": b["nonRn"],
            "workload": round_half_up(b["workload"]),
            "actual": actual,
            "expect": round_half_up(expect),
            "productivity": round_half_up(engine.shift_productivity(expect, actual)),
        }

    total_staff = total_rn + total_non_rn
    return DashboardSnapshot(
        date=target_date,
        dept_type=dept_type,
        productivity=round_half_up(engine.opd_productivity(total_workload, total_staff)),
        total_workforce=total_staff,
        cmi=0.0,
        patient_visit=total_patients,
        shifts={s: _enrich(per_shift[s]) for s in SHIFTS},
        workforce={"rn": total_rn, "nonRn": total_non_rn},
        skill_mix={
            "total": total_staff,
            "onDuty": total_staff,
            "ratio": skill_mix_ratio(total_rn, total_non_rn),
        },
        cap_status={c: 0 for c in CAP_CATEGORIES},
        ward_data=_rank_wards(ranking),
        workload_score=round_half_up(total_workload),
        unscored_shifts=unscored,
    )


# ---------------------------------------------------------------------------
# Period report
# ---------------------------------------------------------------------------

@dataclass
class PeriodDay:
    record_date: date
    day_number: int
    shifts: List[Dict[str, Any]]
    summary: Optional[Dict[str, Any]] = None
    totals: Dict[str, Any] = field(default_factory=dict)


@dataclass
class WardPeriod:
    ward_id: int
    code: str
    name: str
    dept_type: str
    fields: List[Dict[str, Any]] = field(default_factory=list)
    group_names: List[str] = field(default_factory=list)
    workload_available: bool = True
    days: List[PeriodDay] = field(default_factory=list)


@dataclass
class PeriodReport:
    dept_type: str
    date_from: date
    date_to: date
    wards: List[WardPeriod] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "deptType": self.dept_type,
            "dateFrom": self.date_from.isoformat(),
            "dateTo": self.date_to.isoformat(),
            "wards": [
                {
                    "wardId": w.ward_id,
                    "code": w.code,
                    "name": w.name,
                    "deptType": w.dept_type,
                    "fields": w.fields,
                    "groupNames": w.group_names,
                    "workloadAvailable": w.workload_available,
                    "days": [
                        {
                            "date": d.record_date.isoformat(),
                            "day": d.day_number,
                            "shifts": d.shifts,
                            "summary": d.summary,
                            "totals": d.totals,
                        }
                        for d in w.days
                    ],
                }
                for w in self.wards
            ],
        }


def _index_by_ward_date_shift(records: Iterable[Any]) -> Dict[Tuple[int, date, str], Any]:
    return {(r.ward_id, r.record_date, r.shift): r for r in records}


def build_ipd_period(
    wards: Sequence[WardConfig],
    shifts: Iterable[IpdShiftRecord],
    summaries: Iterable[DailySummaryRecord],
    date_from: date,
    date_to: date,
) -> PeriodReport:
    """Group IPD shift and summary rows ward → date → shift (missing = zeros)."""
    dates = date_range(date_from, date_to)
    shift_index = _index_by_ward_date_shift(shifts)
    summary_index = {(s.ward_id, s.record_date): s for s in summaries}

    report = PeriodReport(dept_type=DEPT_IPD, date_from=date_from, date_to=date_to)
    for ward in wards:
        period = WardPeriod(ward_id=ward.id, code=ward.code, name=ward.name, dept_type=ward.dept_type)
        for day_number, day in enumerate(dates, start=1):
            rows = []
            for shift in SHIFTS:
                rec = shift_index.get((ward.id, day, shift))
                hn = rec.hn_count if rec else 0
                rn = rec.rn_count if rec else 0
                tn = rec.tn_count if rec else 0
                na = rec.na_count if rec else 0
                rows.append({
                    "shift": shift,
                    "recorded": rec is not None,
                    "hn": hn, "rn": rn, "tn": tn, "na": na,
                    "total": hn + rn + tn + na,
                })

            summary = summary_index.get((ward.id, day))
            summary_view = None
            if summary is not None:
                summary_view = {
                    "patientDay": summary.patient_day,
                    "hppd": round_half_up(summary.hppd),
                    "dischargeCount": summary.discharge_count,
                    "newAdmission": summary.new_admission,
                    "productivity": round_half_up(summary.productivity),
                    "cmi": round_half_up(summary.cmi),
                    "capStatus": summary.cap_status,
                    "capCategory": classify_cap_status(summary.cap_status),
                }
            period.days.append(PeriodDay(
                record_date=day,
                day_number=day_number,
                shifts=rows,
                summary=summary_view,
                totals={"totalStaff": sum(r["total"] for r in rows)},
            ))
        report.wards.append(period)
    return report


def build_opd_period(
    wards: Sequence[WardConfig],
    shifts: Iterable[OpdShiftRecord],
    date_from: date,
    date_to: date,
    engine: Optional[WorkloadEngine] = None,
) -> PeriodReport:
    """
    Group OPD shift rows ward → date → active shift, scoring each row with
    the ward's current field configuration.
    """
    engine = engine or WorkloadEngine()
    dates = date_range(date_from, date_to)
    shift_index = _index_by_ward_date_shift(shifts)

    report = PeriodReport(dept_type=DEPT_OPD, date_from=date_from, date_to=date_to)
    for ward in wards:
        fields = [
            {"key": f.key, "label": f.label, "multiplier": f.multiplier}
            for g in ward.field_groups for f in g.fields
        ]
        period = WardPeriod(
            ward_id=ward.id,
            code=ward.code,
            name=ward.name,
            dept_type=ward.dept_type,
            fields=fields,
            group_names=[g.name for g in ward.field_groups],
            workload_available=ward.is_configured,
        )
        for day_number, day in enumerate(dates, start=1):
            rows = []
            day_workload = 0.0
            day_staff = 0
            for shift in ward.active_shifts:
                rec = shift_index.get((ward.id, day, shift))
                if rec is None:
                    rec = OpdShiftRecord(ward_id=ward.id, record_date=day, shift=shift, patient_total=0)
                    recorded = False
                else:
                    recorded = True
                score = engine.score_opd_shift(rec, ward)
                day_workload += score.workload_score or 0.0
                day_staff += score.actual_staff
                rows.append({
                    "shift": shift,
                    "recorded": recorded,
                    "rn": rec.rn_count,
                    "nonRn": rec.non_rn_count,
                    "patientTotal": score.patient_total,
                    "counts": {f["key"]: int(rec.category_data.get(f["key"]) or 0) for f in fields},
                    **score.to_display(),
                })
            period.days.append(PeriodDay(
                record_date=day,
                day_number=day_number,
                shifts=rows,
                totals={
                    "nursingNeed": round_half_up(day_workload),
                    "actualStaff": day_staff,
                    "productivity": round_half_up(engine.opd_productivity(day_workload, day_staff)),
                },
            ))
        report.wards.append(period)
    return report


def build_period_report(
    dept_type: str,
    wards: Sequence[WardConfig],
    shifts: Iterable[Any],
    summaries: Iterable[DailySummaryRecord],
    date_from: date,
    date_to: date,
    engine: Optional[WorkloadEngine] = None,
) -> PeriodReport:
    """Dispatch to the IPD or OPD-family period builder by department type."""
    if dept_type == DEPT_IPD:
        return build_ipd_period(wards, shifts, summaries, date_from, date_to)
    report = build_opd_period(wards, shifts, date_from, date_to, engine)
    report.dept_type = dept_type
    return report
