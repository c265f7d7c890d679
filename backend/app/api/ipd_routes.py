"""IPD routes — per-shift headcounts, daily summary, atomic save and HIS census."""
import logging
from datetime import date
from typing import List, Optional, Union

from fastapi import APIRouter, Body, Depends, HTTPException, Query
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
from sqlalchemy.ext.asyncio import AsyncSession

from app.api import deps
from app.db import get_db
from app.db import repository
from app.db.repository import Clock, ShiftValidationError, UnknownWardError
from app.models.api_models import IpdSaveAllIn, IpdShiftIn, IpdSummaryIn
from app.services.census_lookup import CensusLookupError, lookup_census
from app.services.workload_engine import WorkloadEngine

router = APIRouter(prefix="/api/ipd", tags=["IPD"])
logger = logging.getLogger("nursing-ipd")


class HisLookupRequest(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)
    ward_id: Optional[int] = None
    record_date: Optional[date] = Field(None, alias="date")


def shift_to_dict(row, ward) -> dict:
    return {
        "id": row.id,
        "wardId": row.ward_id,
        "wardName": ward.name,
        "wardCode": ward.code,
        "recordDate": row.record_date.isoformat(),
        "shift": row.shift,
        "hnCount": row.hn_count,
        "rnCount": row.rn_count,
        "tnCount": row.tn_count,
        "naCount": row.na_count,
        "totalStaff": (row.hn_count or 0) + (row.rn_count or 0) + (row.tn_count or 0) + (row.na_count or 0),
        "updatedAt": row.updated_at.isoformat() if row.updated_at else None,
    }


def summary_to_dict(row, ward) -> dict:
    return {
        "id": row.id,
        "wardId": row.ward_id,
        "wardName": ward.name,
        "wardCode": ward.code,
        "recordDate": row.record_date.isoformat(),
        "totalStaffDay": row.total_staff_day,
        "patientDay": row.patient_day,
        "hppd": float(row.hppd or 0),
        "dischargeCount": row.discharge_count,
        "newAdmission": row.new_admission,
        "productivity": float(row.productivity or 0),
        "cmi": float(row.cmi or 0),
        "capStatus": row.cap_status,
        "updatedAt": row.updated_at.isoformat() if row.updated_at else None,
    }


def saved_summary_to_dict(value: dict) -> dict:
    return {
        "wardId": value["ward_id"],
        "recordDate": value["record_date"].isoformat(),
        "totalStaffDay": value["total_staff_day"],
        "patientDay": value["patient_day"],
        "hppd": value["hppd"],
        "dischargeCount": value["discharge_count"],
        "newAdmission": value["new_admission"],
        "productivity": value["productivity"],
        "cmi": value["cmi"],
        "capStatus": value["cap_status"],
    }


# ─── Shifts ─────────────────────────────────────────────────────────────────

@router.get("/shifts")
async def get_ipd_shifts(
    record_date: Optional[date] = Query(None, alias="date"),
    ward_id: Optional[int] = Query(None, alias="wardId"),
    db: AsyncSession = Depends(get_db),
):
    rows = await repository.list_ipd_shift_rows(db, record_date=record_date, ward_id=ward_id)
    return [shift_to_dict(r, w) for r, w in rows]


@router.post("/shifts", status_code=201)
async def save_ipd_shifts(
    payload: Union[List[IpdShiftIn], IpdShiftIn] = Body(...),
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(deps.get_clock),
):
    rows = payload if isinstance(payload, list) else [payload]
    try:
        count = await repository.upsert_ipd_shifts(db, [r.to_row() for r in rows], clock=clock)
        await db.commit()
    except (ShiftValidationError, UnknownWardError) as e:
        raise deps.domain_http_error(e)
    return {"success": True, "saved": count}


# ─── Summary ────────────────────────────────────────────────────────────────

@router.get("/summary")
async def get_ipd_summary(
    record_date: Optional[date] = Query(None, alias="date"),
    ward_id: Optional[int] = Query(None, alias="wardId"),
    db: AsyncSession = Depends(get_db),
):
    rows = await repository.list_ipd_summary_rows(db, record_date=record_date, ward_id=ward_id)
    return [summary_to_dict(r, w) for r, w in rows]


@router.post("/summary", status_code=201)
async def save_ipd_summary(
    payload: IpdSummaryIn,
    db: AsyncSession = Depends(get_db),
    engine: WorkloadEngine = Depends(deps.get_workload_engine),
    clock: Clock = Depends(deps.get_clock),
):
    try:
        saved = await repository.upsert_ipd_summary(db, payload.to_row(), engine=engine, clock=clock)
        await db.commit()
    except (ShiftValidationError, UnknownWardError) as e:
        raise deps.domain_http_error(e)
    return saved_summary_to_dict(saved)


# ─── Save all (shifts + summary, one transaction) ───────────────────────────

@router.post("/save-all", status_code=201)
async def save_all(
    payload: IpdSaveAllIn,
    db: AsyncSession = Depends(get_db),
    engine: WorkloadEngine = Depends(deps.get_workload_engine),
    clock: Clock = Depends(deps.get_clock),
):
    if not payload.shifts or payload.summary is None:
        raise HTTPException(
            status_code=400,
            detail="Invalid payload structure. Expected shifts array and summary object.",
        )
    try:
        saved = await repository.save_ipd_day(
            db,
            [s.to_row() for s in payload.shifts],
            payload.summary.to_row(),
            engine=engine,
            clock=clock,
        )
    except (ShiftValidationError, UnknownWardError) as e:
        raise deps.domain_http_error(e)
    except Exception as e:
        logger.error(f"Error saving IPD day in transaction: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=str(e))
    return {"success": True, "data": saved_summary_to_dict(saved)}


# ─── HIS census ─────────────────────────────────────────────────────────────

@router.post("/his")
async def his_census(
    payload: HisLookupRequest,
    db: AsyncSession = Depends(get_db),
    timeout: float = Depends(deps.his_timeout),
):
    if not payload.ward_id or not payload.record_date:
        raise HTTPException(status_code=400, detail="Missing wardId or date")
    try:
        counts = await lookup_census(db, payload.ward_id, payload.record_date, timeout=timeout)
    except UnknownWardError as e:
        raise deps.domain_http_error(e)
    except CensusLookupError as e:
        raise HTTPException(status_code=502, detail=str(e))
    return counts.to_dict()
