"""
Repository — ward lookups, shift/summary upserts and the read queries the
dashboard and export endpoints aggregate over.

Writes are keyed on the natural keys (ward, date, shift) and (ward, date)
and go through ``INSERT ... ON CONFLICT DO UPDATE``: re-saving a day
overwrites it, last write wins. Functions here never commit on their own
except ``save_ipd_day``, whose shift rows and summary row must land together.
"""
import logging
from datetime import date, datetime, timezone
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from sqlalchemy import case, func, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.orm_models import IpdDailyShift, IpdDailySummary, NursingWard, OpdDailyShift
from app.services.shift_records import (
    DailySummaryRecord,
    IpdShiftRecord,
    OpdShiftRecord,
    ipd_shift_from_row,
    opd_shift_from_row,
    summary_from_row,
)
from app.services.ward_config import (
    DEPT_IPD,
    DEPT_OPD,
    OPD_FAMILY,
    SHIFTS,
    SHIFT_ALIASES,
    WardConfig,
    ward_config_from_row,
)
from app.services.workload_engine import WorkloadEngine, round_half_up

logger = logging.getLogger("nursing-db")

Clock = Callable[[], datetime]

SHIFT_KEY_FIELDS = ("ward_id", "record_date", "shift")
SUMMARY_KEY_FIELDS = ("ward_id", "record_date")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ShiftValidationError(ValueError):
    """A row is missing part of its natural key or names an unknown shift."""

    def __init__(self, message: str, field: Optional[str] = None, index: Optional[int] = None):
        super().__init__(message)
        self.field = field
        self.index = index


class UnknownWardError(LookupError):
    def __init__(self, ward_id: int):
        super().__init__(f"Ward {ward_id} not found")
        self.ward_id = ward_id


# ─── Helpers ────────────────────────────────────────────────────────────────

def _insert_for(session: AsyncSession):
    """Dialect-specific ``insert`` that supports ``on_conflict_do_update``."""
    dialect = session.get_bind().dialect.name
    if dialect == "postgresql":
        return pg_insert
    if dialect == "sqlite":
        return sqlite_insert
    raise RuntimeError(f"Upsert not supported on dialect '{dialect}'")


def _shift_order(column):
    return case({s: i for i, s in enumerate(SHIFTS)}, value=column, else_=len(SHIFTS))


def _check_key(row: Mapping[str, Any], fields: Sequence[str], index: Optional[int]) -> None:
    for name in fields:
        if row.get(name) in (None, ""):
            where = f" (row {index})" if index is not None else ""
            raise ShiftValidationError(f"{name} is required{where}", field=name, index=index)


def _clean_shift(value: Any, index: Optional[int]) -> str:
    shift = str(value).strip().lower()
    shift = SHIFT_ALIASES.get(shift, shift)
    if shift not in SHIFTS:
        raise ShiftValidationError(f"Unknown shift '{value}'", field="shift", index=index)
    return shift


def _count(row: Mapping[str, Any], name: str) -> int:
    value = row.get(name)
    return int(value) if value is not None else 0


def validate_shift_rows(rows: Sequence[Mapping[str, Any]]) -> List[Dict[str, Any]]:
    """Check every row's natural key up front; returns copies with a canonical shift."""
    cleaned = []
    for i, row in enumerate(rows):
        _check_key(row, SHIFT_KEY_FIELDS, i)
        cleaned.append({**row, "shift": _clean_shift(row["shift"], i)})
    return cleaned


def validate_summary(summary: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
    if not summary:
        raise ShiftValidationError("summary is required", field="summary")
    _check_key(summary, SUMMARY_KEY_FIELDS, None)
    return dict(summary)


async def _ensure_wards(
    session: AsyncSession,
    ward_ids: Iterable[int],
    dept_types: Sequence[str],
) -> Dict[int, NursingWard]:
    """Load the wards a write targets; each must exist and belong to ``dept_types``."""
    wanted = set(ward_ids)
    if not wanted:
        return {}
    result = await session.execute(select(NursingWard).where(NursingWard.id.in_(wanted)))
    found = {w.id: w for w in result.scalars().all()}
    for ward_id in sorted(wanted):
        ward = found.get(ward_id)
        if ward is None:
            raise UnknownWardError(ward_id)
        if ward.dept_type not in dept_types:
            raise ShiftValidationError(
                f"Ward {ward_id} is {ward.dept_type}, expected one of {', '.join(dept_types)}",
                field="ward_id",
            )
    return found


# ─── Wards ──────────────────────────────────────────────────────────────────

async def get_ward(session: AsyncSession, ward_id: int) -> Optional[NursingWard]:
    return await session.get(NursingWard, ward_id)


async def get_ward_config(session: AsyncSession, ward_id: int) -> Optional[WardConfig]:
    """WardConfig for ``ward_id``, or None when the ward does not exist."""
    ward = await session.get(NursingWard, ward_id)
    if ward is None:
        return None
    return ward_config_from_row(ward)


async def list_wards(
    session: AsyncSession,
    dept_type: Optional[str] = None,
    active_only: bool = False,
) -> List[NursingWard]:
    stmt = select(NursingWard)
    if dept_type:
        stmt = stmt.where(NursingWard.dept_type == dept_type)
    if active_only:
        stmt = stmt.where(NursingWard.is_active.is_(True))
    result = await session.execute(stmt.order_by(NursingWard.code))
    return list(result.scalars().all())


async def list_ward_configs(
    session: AsyncSession,
    ward_ids: Optional[Sequence[int]] = None,
    dept_family: Optional[Sequence[str]] = None,
) -> List[WardConfig]:
    stmt = select(NursingWard)
    if ward_ids:
        stmt = stmt.where(NursingWard.id.in_(list(ward_ids)))
    if dept_family:
        stmt = stmt.where(NursingWard.dept_type.in_(list(dept_family)))
    result = await session.execute(stmt.order_by(NursingWard.code))
    return [ward_config_from_row(w) for w in result.scalars().all()]


# ─── IPD writes ─────────────────────────────────────────────────────────────

async def upsert_ipd_shifts(
    session: AsyncSession,
    rows: Sequence[Mapping[str, Any]],
    clock: Clock = utcnow,
) -> int:
    """Insert or overwrite IPD shift rows in one statement. Returns the row count."""
    cleaned = validate_shift_rows(rows)
    if not cleaned:
        return 0
    await _ensure_wards(session, (r["ward_id"] for r in cleaned), (DEPT_IPD,))

    now = clock()
    values = [
        {
            "ward_id": r["ward_id"],
            "record_date": r["record_date"],
            "shift": r["shift"],
            "hn_count": _count(r, "hn_count"),
            "rn_count": _count(r, "rn_count"),
            "tn_count": _count(r, "tn_count"),
            "na_count": _count(r, "na_count"),
            "created_at": now,
            "updated_at": now,
        }
        for r in cleaned
    ]
    insert = _insert_for(session)
    stmt = insert(IpdDailyShift).values(values)
    stmt = stmt.on_conflict_do_update(
        index_elements=list(SHIFT_KEY_FIELDS),
        set_={
            "hn_count": stmt.excluded.hn_count,
            "rn_count": stmt.excluded.rn_count,
            "tn_count": stmt.excluded.tn_count,
            "na_count": stmt.excluded.na_count,
            "updated_at": stmt.excluded.updated_at,
        },
    )
    await session.execute(stmt)
    logger.info(f"Upserted {len(values)} IPD shift row(s)")
    return len(values)


async def upsert_ipd_summary(
    session: AsyncSession,
    summary: Mapping[str, Any],
    engine: Optional[WorkloadEngine] = None,
    clock: Clock = utcnow,
) -> Dict[str, Any]:
    """
    Insert or overwrite the IPD daily summary for (ward, date).

    ``total_staff_day`` is the sum of the day's stored shift rows when any
    exist, else the submitted value. ``hppd`` and ``productivity`` are always
    derived from it and ``patient_day``; submitted values are ignored.
    """
    engine = engine or WorkloadEngine()
    summary = validate_summary(summary)
    ward_id = summary["ward_id"]
    record_date = summary["record_date"]
    await _ensure_wards(session, [ward_id], (DEPT_IPD,))

    result = await session.execute(
        select(IpdDailyShift).where(
            IpdDailyShift.ward_id == ward_id,
            IpdDailyShift.record_date == record_date,
        )
    )
    shift_rows = [ipd_shift_from_row(r) for r in result.scalars().all()]
    patient_day = _count(summary, "patient_day")
    if shift_rows:
        metrics = engine.ipd_day_from_shifts(shift_rows, patient_day)
    else:
        metrics = engine.ipd_daily_metrics(_count(summary, "total_staff_day"), patient_day)

    now = clock()
    value = {
        "ward_id": ward_id,
        "record_date": record_date,
        "total_staff_day": metrics.total_staff,
        "patient_day": patient_day,
        "hppd": round_half_up(metrics.hppd),
        "discharge_count": _count(summary, "discharge_count"),
        "new_admission": _count(summary, "new_admission"),
        "productivity": round_half_up(metrics.productivity_pct),
        "cmi": round_half_up(float(summary.get("cmi") or 0)),
        "cap_status": "suitable" if summary.get("cap_status") is None else summary["cap_status"],
        "created_at": now,
        "updated_at": now,
    }
    insert = _insert_for(session)
    stmt = insert(IpdDailySummary).values(value)
    stmt = stmt.on_conflict_do_update(
        index_elements=list(SUMMARY_KEY_FIELDS),
        set_={
            name: getattr(stmt.excluded, name)
            for name in (
                "total_staff_day", "patient_day", "hppd", "discharge_count",
                "new_admission", "productivity", "cmi", "cap_status", "updated_at",
            )
        },
    )
    await session.execute(stmt)
    logger.info(
        f"Upserted IPD summary ward={ward_id} date={record_date}",
        extra={"ward_id": ward_id, "record_date": record_date},
    )
    return value


async def save_ipd_day(
    session: AsyncSession,
    shifts: Sequence[Mapping[str, Any]],
    summary: Mapping[str, Any],
    engine: Optional[WorkloadEngine] = None,
    clock: Clock = utcnow,
) -> Dict[str, Any]:
    """
    Save a ward-day's shift rows and its summary row atomically.

    Every row is validated before anything is written. If either write fails
    the transaction is rolled back and nothing from the batch persists.
    """
    if not shifts:
        raise ShiftValidationError("shifts must be a non-empty list", field="shifts")
    validate_shift_rows(shifts)
    validate_summary(summary)

    try:
        await upsert_ipd_shifts(session, shifts, clock=clock)
        saved = await upsert_ipd_summary(session, summary, engine=engine, clock=clock)
        await session.commit()
    except Exception:
        await session.rollback()
        logger.error("IPD save-all rolled back", exc_info=True)
        raise
    return saved


# ─── OPD writes ─────────────────────────────────────────────────────────────

async def upsert_opd_shifts(
    session: AsyncSession,
    rows: Sequence[Mapping[str, Any]],
    engine: Optional[WorkloadEngine] = None,
    clock: Clock = utcnow,
) -> List[Dict[str, Any]]:
    """
    Insert or overwrite OPD-family shift rows, materializing each row's
    workload score from its ward's configuration at save time. A row whose
    ward cannot be scored stores ``workload_score = NULL``.
    """
    engine = engine or WorkloadEngine()
    cleaned = validate_shift_rows(rows)
    if not cleaned:
        return []
    wards = await _ensure_wards(session, (r["ward_id"] for r in cleaned), OPD_FAMILY)
    configs = {ward_id: ward_config_from_row(w) for ward_id, w in wards.items()}

    now = clock()
    values = []
    statuses = []
    for r in cleaned:
        category_data = {k: int(v or 0) for k, v in (r.get("category_data") or {}).items()}
        record = OpdShiftRecord(
            ward_id=r["ward_id"],
            record_date=r["record_date"],
            shift=r["shift"],
            rn_count=_count(r, "rn_count"),
            non_rn_count=_count(r, "non_rn_count"),
            patient_total=r.get("patient_total"),
            category_data=category_data,
        )
        score = engine.score_opd_shift(record, configs[record.ward_id])
        statuses.append(score.workload_status)
        values.append({
            "ward_id": record.ward_id,
            "record_date": record.record_date,
            "shift": record.shift,
            "rn_count": record.rn_count,
            "non_rn_count": record.non_rn_count,
            "patient_total": score.patient_total,
            "category_data": category_data or None,
            "workload_score": None if score.workload_score is None else round_half_up(score.workload_score),
            "created_at": now,
            "updated_at": now,
        })

    insert = _insert_for(session)
    stmt = insert(OpdDailyShift).values(values)
    stmt = stmt.on_conflict_do_update(
        index_elements=list(SHIFT_KEY_FIELDS),
        set_={
            "rn_count": stmt.excluded.rn_count,
            "non_rn_count": stmt.excluded.non_rn_count,
            "patient_total": stmt.excluded.patient_total,
            "category_data": stmt.excluded.category_data,
            "workload_score": stmt.excluded.workload_score,
            "updated_at": stmt.excluded.updated_at,
        },
    )
    await session.execute(stmt)
    unscored = sum(1 for v in values if v["workload_score"] is None)
    if unscored:
        logger.warning(f"{unscored} OPD shift row(s) saved without a workload score (ward unconfigured)")
    logger.info(f"Upserted {len(values)} OPD shift row(s)")
    return [{**v, "workload_status": s} for v, s in zip(values, statuses)]


# ─── Reads ──────────────────────────────────────────────────────────────────

async def list_ipd_shift_rows(
    session: AsyncSession,
    record_date: Optional[date] = None,
    ward_id: Optional[int] = None,
) -> List[Tuple[IpdDailyShift, NursingWard]]:
    stmt = (
        select(IpdDailyShift, NursingWard)
        .join(NursingWard, IpdDailyShift.ward_id == NursingWard.id)
        .where(NursingWard.dept_type == DEPT_IPD)
    )
    if record_date is not None:
        stmt = stmt.where(IpdDailyShift.record_date == record_date)
    if ward_id is not None:
        stmt = stmt.where(IpdDailyShift.ward_id == ward_id)
    stmt = stmt.order_by(IpdDailyShift.ward_id, IpdDailyShift.record_date, _shift_order(IpdDailyShift.shift))
    result = await session.execute(stmt)
    return [tuple(row) for row in result.all()]


async def list_ipd_summary_rows(
    session: AsyncSession,
    record_date: Optional[date] = None,
    ward_id: Optional[int] = None,
) -> List[Tuple[IpdDailySummary, NursingWard]]:
    stmt = (
        select(IpdDailySummary, NursingWard)
        .join(NursingWard, IpdDailySummary.ward_id == NursingWard.id)
        .where(NursingWard.dept_type == DEPT_IPD)
    )
    if record_date is not None:
        stmt = stmt.where(IpdDailySummary.record_date == record_date)
    if ward_id is not None:
        stmt = stmt.where(IpdDailySummary.ward_id == ward_id)
    stmt = stmt.order_by(IpdDailySummary.ward_id, IpdDailySummary.record_date)
    result = await session.execute(stmt)
    return [tuple(row) for row in result.all()]


async def list_opd_shift_rows(
    session: AsyncSession,
    record_date: Optional[date] = None,
    ward_id: Optional[int] = None,
    dept_type: Optional[str] = None,
) -> List[Tuple[OpdDailyShift, NursingWard]]:
    stmt = select(OpdDailyShift, NursingWard).join(NursingWard, OpdDailyShift.ward_id == NursingWard.id)
    if record_date is not None:
        stmt = stmt.where(OpdDailyShift.record_date == record_date)
    if ward_id is not None:
        stmt = stmt.where(OpdDailyShift.ward_id == ward_id)
    if dept_type and dept_type != DEPT_OPD:
        stmt = stmt.where(NursingWard.dept_type == dept_type)
    stmt = stmt.order_by(OpdDailyShift.ward_id, OpdDailyShift.record_date, _shift_order(OpdDailyShift.shift))
    result = await session.execute(stmt)
    return [tuple(row) for row in result.all()]


async def load_ipd_records(
    session: AsyncSession,
    date_from: date,
    date_to: date,
    ward_ids: Optional[Sequence[int]] = None,
) -> Tuple[List[IpdShiftRecord], List[DailySummaryRecord]]:
    """Engine-ready IPD shift and summary records for an inclusive date range."""
    shift_stmt = (
        select(IpdDailyShift, NursingWard.name)
        .join(NursingWard, IpdDailyShift.ward_id == NursingWard.id)
        .where(IpdDailyShift.record_date.between(date_from, date_to), NursingWard.dept_type == DEPT_IPD)
    )
    summary_stmt = (
        select(IpdDailySummary, NursingWard.name)
        .join(NursingWard, IpdDailySummary.ward_id == NursingWard.id)
        .where(IpdDailySummary.record_date.between(date_from, date_to), NursingWard.dept_type == DEPT_IPD)
        .order_by(NursingWard.code)
    )
    if ward_ids:
        shift_stmt = shift_stmt.where(IpdDailyShift.ward_id.in_(list(ward_ids)))
        summary_stmt = summary_stmt.where(IpdDailySummary.ward_id.in_(list(ward_ids)))

    shifts = [ipd_shift_from_row(row, name) for row, name in (await session.execute(shift_stmt)).all()]
    summaries = [summary_from_row(row, name) for row, name in (await session.execute(summary_stmt)).all()]
    return shifts, summaries


async def load_opd_records(
    session: AsyncSession,
    date_from: date,
    date_to: date,
    ward_ids: Optional[Sequence[int]] = None,
) -> List[OpdShiftRecord]:
    stmt = (
        select(OpdDailyShift, NursingWard.name, NursingWard.dept_type)
        .join(NursingWard, OpdDailyShift.ward_id == NursingWard.id)
        .where(OpdDailyShift.record_date.between(date_from, date_to))
        .order_by(NursingWard.code, OpdDailyShift.record_date, _shift_order(OpdDailyShift.shift))
    )
    if ward_ids:
        stmt = stmt.where(OpdDailyShift.ward_id.in_(list(ward_ids)))
    result = await session.execute(stmt)
    return [opd_shift_from_row(row, name, dept) for row, name, dept in result.all()]


async def latest_record_date(session: AsyncSession, dept_type: str = DEPT_IPD) -> Optional[date]:
    """Most recent date holding data for the department, or None."""
    if dept_type == DEPT_IPD:
        stmt = select(func.max(IpdDailySummary.record_date))
        latest = (await session.execute(stmt)).scalar()
        if latest is None:
            latest = (await session.execute(select(func.max(IpdDailyShift.record_date)))).scalar()
        return latest

    stmt = select(func.max(OpdDailyShift.record_date)).join(
        NursingWard, OpdDailyShift.ward_id == NursingWard.id
    )
    if dept_type in OPD_FAMILY and dept_type != DEPT_OPD:
        stmt = stmt.where(NursingWard.dept_type == dept_type)
    return (await session.execute(stmt)).scalar()
