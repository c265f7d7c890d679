"""OPD routes — OPD / ER / LR shift entry with workload scoring at save time."""
import logging
from datetime import date
from typing import List, Optional, Union

from fastapi import APIRouter, Body, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.api import deps
from app.db import get_db
from app.db import repository
from app.db.repository import Clock, ShiftValidationError, UnknownWardError
from app.models.api_models import OpdShiftIn
from app.services.shift_records import opd_shift_from_row
from app.services.ward_config import ward_config_from_row
from app.services.workload_engine import WorkloadEngine

router = APIRouter(prefix="/api/opd", tags=["OPD"])
logger = logging.getLogger("nursing-opd")


def opd_shift_to_dict(row, ward, engine: WorkloadEngine) -> dict:
    """Stored row plus the per-shift metrics derived from it."""
    record = opd_shift_from_row(row, ward.name, ward.dept_type)
    score = engine.score_stored_shift(record, ward_config_from_row(ward))
    return {
        "id": row.id,
        "wardId": row.ward_id,
        "wardName": ward.name,
        "wardCode": ward.code,
        "deptType": ward.dept_type,
        "recordDate": row.record_date.isoformat(),
        "shift": row.shift,
        "rnCount": row.rn_count,
        "nonRnCount": row.non_rn_count,
        "categoryData": row.category_data or {},
        **score.to_display(),
        "updatedAt": row.updated_at.isoformat() if row.updated_at else None,
    }


@router.get("/shifts")
async def get_opd_shifts(
    record_date: Optional[date] = Query(None, alias="date"),
    ward_id: Optional[int] = Query(None, alias="wardId"),
    db: AsyncSession = Depends(get_db),
    engine: WorkloadEngine = Depends(deps.get_workload_engine),
):
    rows = await repository.list_opd_shift_rows(db, record_date=record_date, ward_id=ward_id)
    return [opd_shift_to_dict(r, w, engine) for r, w in rows]


@router.post("/shifts", status_code=201)
async def save_opd_shifts(
    payload: Union[List[OpdShiftIn], OpdShiftIn] = Body(...),
    db: AsyncSession = Depends(get_db),
    engine: WorkloadEngine = Depends(deps.get_workload_engine),
    clock: Clock = Depends(deps.get_clock),
):
    rows = payload if isinstance(payload, list) else [payload]
    try:
        saved = await repository.upsert_opd_shifts(db, [r.to_row() for r in rows], engine=engine, clock=clock)
        await db.commit()
    except (ShiftValidationError, UnknownWardError) as e:
        raise deps.domain_http_error(e)

    return {
        "success": True,
        "saved": len(saved),
        "rows": [
            {
                "wardId": v["ward_id"],
                "recordDate": v["record_date"].isoformat(),
                "shift": v["shift"],
                "patientTotal": v["patient_total"],
                "workloadScore": v["workload_score"],
                "workloadStatus": v["workload_status"],
            }
            for v in saved
        ],
    }
