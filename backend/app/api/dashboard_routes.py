"""Dashboard route — one-date snapshot for IPD or an OPD-family department."""
import logging
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.api import deps
from app.api.deps import domain_http_error
from app.db import get_db
from app.db import repository
from app.services.aggregation_engine import aggregate_ipd_day, aggregate_opd_day
from app.services.ward_config import DEPT_IPD, WardConfigError, normalize_dept_type
from app.services.workload_engine import WorkloadEngine

router = APIRouter(prefix="/api/dashboard", tags=["Dashboard"])
logger = logging.getLogger("nursing-dashboard")


@router.get("")
async def get_dashboard(
    record_date: Optional[date] = Query(None, alias="date"),
    dept_type: str = Query(DEPT_IPD, alias="deptType"),
    ward_id: Optional[int] = Query(None, alias="wardId"),
    db: AsyncSession = Depends(get_db),
    engine: WorkloadEngine = Depends(deps.get_workload_engine),
):
    """
    Without ``date`` the latest date holding data for the department is used
    (today when there is none).
    """
    try:
        dept = normalize_dept_type(dept_type)
    except WardConfigError as e:
        raise domain_http_error(e)

    target = record_date or await repository.latest_record_date(db, dept) or date.today()
    ward_ids = [ward_id] if ward_id else None

    if dept == DEPT_IPD:
        shifts, summaries = await repository.load_ipd_records(db, target, target, ward_ids)
        snapshot = aggregate_ipd_day(target, shifts, summaries)
    else:
        shifts = await repository.load_opd_records(db, target, target, ward_ids)
        snapshot = aggregate_opd_day(target, dept, shifts, engine)
        if snapshot.unscored_shifts:
            logger.info(
                f"{snapshot.unscored_shifts} {dept} shift(s) on {target} have no workload score",
                extra={"dept_type": dept, "record_date": target},
            )
    return snapshot.to_dict()
