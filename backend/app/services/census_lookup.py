"""
HIS census lookup — patient-day, admission and discharge counts for a ward
on a date, read from the hospital information system's fact tables.

Wards are linked to HIS wards through ``nursing_wards.his_ward_keys``. A ward
without links gets zero counts and ``has_mapping=False``. A lookup that does
not finish within the timeout, or that fails in the database, raises
``CensusLookupError`` so the caller can report it instead of hanging.
"""
import asyncio
import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import func, or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.repository import UnknownWardError, get_ward_config
from app.models.orm_models import DimWard, FactVisit

logger = logging.getLogger("nursing-his")

DEFAULT_TIMEOUT_S = 10.0


class CensusLookupError(RuntimeError):
    """The HIS census query timed out or failed."""


@dataclass
class CensusCounts:
    patient_day: int = 0
    new_admission: int = 0
    discharge_count: int = 0
    total_beds: int = 0
    mapped_his_keys: List[int] = field(default_factory=list)
    has_mapping: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "patientDay": self.patient_day,
            "newAdmission": self.new_admission,
            "dischargeCount": self.discharge_count,
            "totalBeds": self.total_beds,
            "mappedHisKeys": self.mapped_his_keys,
            "hasMapping": self.has_mapping,
        }


def date_key(d: date) -> int:
    """2026-03-01 → 20260301"""
    return d.year * 10000 + d.month * 100 + d.day


async def _count(session: AsyncSession, *conditions) -> int:
    stmt = select(func.count()).select_from(FactVisit).where(*conditions)
    return int((await session.execute(stmt)).scalar() or 0)


async def _query_counts(session: AsyncSession, his_keys: Tuple[int, ...], key: int) -> CensusCounts:
    in_ward = FactVisit.ward_key.in_(list(his_keys))
    not_cancelled = FactVisit.is_cancelled == 0

    # Admitted on or before the date and not discharged by it
    patient_day = await _count(
        session,
        in_ward,
        not_cancelled,
        FactVisit.visit_date_key <= key,
        or_(FactVisit.discharge_date_key.is_(None), FactVisit.discharge_date_key > key),
    )
    new_admission = await _count(
        session, in_ward, not_cancelled, FactVisit.is_admit == 1, FactVisit.visit_date_key == key,
    )
    discharge_count = await _count(
        session, in_ward, not_cancelled, FactVisit.is_discharge == 1, FactVisit.discharge_date_key == key,
    )
    beds_stmt = select(func.coalesce(func.sum(DimWard.bed_count), 0)).where(
        DimWard.ward_key.in_(list(his_keys))
    )
    total_beds = int((await session.execute(beds_stmt)).scalar() or 0)

    return CensusCounts(
        patient_day=patient_day,
        new_admission=new_admission,
        discharge_count=discharge_count,
        total_beds=total_beds,
        mapped_his_keys=list(his_keys),
        has_mapping=True,
    )


async def lookup_census(
    session: AsyncSession,
    ward_id: int,
    target_date: date,
    timeout: Optional[float] = DEFAULT_TIMEOUT_S,
) -> CensusCounts:
    config = await get_ward_config(session, ward_id)
    if config is None:
        raise UnknownWardError(ward_id)
    if not config.has_his_mapping:
        logger.info(f"Ward {ward_id} has no HIS mapping; returning zero census", extra={"ward_id": ward_id})
        return CensusCounts()

    key = date_key(target_date)
    try:
        counts = await asyncio.wait_for(_query_counts(session, config.his_link_keys, key), timeout=timeout)
    except asyncio.TimeoutError:
        logger.error(f"HIS census lookup timed out after {timeout}s", extra={"ward_id": ward_id})
        raise CensusLookupError(f"HIS census lookup timed out after {timeout}s")
    except SQLAlchemyError as e:
        logger.error(f"HIS census lookup failed: {e}", extra={"ward_id": ward_id}, exc_info=True)
        raise CensusLookupError(f"HIS census lookup failed: {e}")

    logger.info(
        f"HIS census ward={ward_id} date={target_date}: pd={counts.patient_day} "
        f"adm={counts.new_admission} dc={counts.discharge_count}",
        extra={"ward_id": ward_id, "record_date": target_date},
    )
    return counts


async def list_his_wards(session: AsyncSession) -> List[Dict[str, Any]]:
    """Visible HIS wards for the ward-mapping screen."""
    stmt = select(DimWard).where(DimWard.is_visible.is_(True)).order_by(DimWard.source_ward_id)
    result = await session.execute(stmt)
    return [
        {
            "wardKey": w.ward_key,
            "sourceWardId": w.source_ward_id,
            "wardName": w.ward_name,
            "bedCount": w.bed_count,
        }
        for w in result.scalars().all()
    ]
