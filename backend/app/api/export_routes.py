"""Export routes — period report as JSON or an Excel workbook."""
import logging
import os
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import FileResponse
from sqlalchemy.ext.asyncio import AsyncSession

from app.api import deps
from app.db import get_db
from app.db import repository
from app.services.aggregation_engine import PeriodReport, build_period_report
from app.services.export_engine import ExportEngine
from app.services.ward_config import DEPT_IPD, OPD_FAMILY, WardConfigError, normalize_dept_type
from app.services.workload_engine import WorkloadEngine

router = APIRouter(prefix="/api", tags=["Export"])
logger = logging.getLogger("nursing-export")

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


def get_export_engine() -> ExportEngine:
    return ExportEngine()


def _respond(report: PeriodReport, fmt: str, exporter: ExportEngine):
    if fmt == "json":
        return report.to_dict()
    if fmt != "xlsx":
        raise HTTPException(status_code=400, detail="format must be 'json' or 'xlsx'")
    path = exporter.render(report)
    if not path:
        raise HTTPException(status_code=500, detail="Workbook generation failed")
    return FileResponse(path, media_type=XLSX_MEDIA_TYPE, filename=os.path.basename(path))


@router.get("/ipd/export")
async def export_ipd(
    date_range: tuple = Depends(deps.require_date_range),
    ward_ids: List[int] = Depends(deps.parse_ward_ids),
    fmt: str = Query("xlsx", alias="format"),
    db: AsyncSession = Depends(get_db),
    exporter: ExportEngine = Depends(get_export_engine),
):
    date_from, date_to = date_range
    wards = await repository.list_ward_configs(db, ward_ids=ward_ids, dept_family=[DEPT_IPD])
    shifts, summaries = await repository.load_ipd_records(db, date_from, date_to, [w.id for w in wards])
    report = build_period_report(DEPT_IPD, wards, shifts, summaries, date_from, date_to)
    logger.info(f"IPD export {date_from}..{date_to}: {len(wards)} ward(s), format={fmt}")
    return _respond(report, fmt, exporter)


@router.get("/opd/export")
async def export_opd(
    date_range: tuple = Depends(deps.require_date_range),
    ward_ids: List[int] = Depends(deps.parse_ward_ids),
    dept_type: Optional[str] = Query(None, alias="deptType"),
    fmt: str = Query("xlsx", alias="format"),
    db: AsyncSession = Depends(get_db),
    engine: WorkloadEngine = Depends(deps.get_workload_engine),
    exporter: ExportEngine = Depends(get_export_engine),
):
    date_from, date_to = date_range
    try:
        family = [normalize_dept_type(dept_type)] if dept_type else list(OPD_FAMILY)
    except WardConfigError as e:
        raise deps.domain_http_error(e)
    if DEPT_IPD in family:
        raise HTTPException(status_code=400, detail="Use /api/ipd/export for IPD wards")

    wards = await repository.list_ward_configs(db, ward_ids=ward_ids, dept_family=family)
    shifts = await repository.load_opd_records(db, date_from, date_to, [w.id for w in wards])
    report = build_period_report(family[0] if dept_type else "OPD", wards, shifts, [], date_from, date_to, engine)
    logger.info(f"OPD export {date_from}..{date_to}: {len(wards)} ward(s), format={fmt}")
    return _respond(report, fmt, exporter)
