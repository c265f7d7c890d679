"""FastAPI dependency injection — engines, clock, query parsing, error mapping."""
import os
from datetime import date
from typing import List, Optional

from fastapi import HTTPException, Query, status

from app.db.repository import Clock, ShiftValidationError, UnknownWardError, utcnow
from app.services.ward_config import WardConfigError
from app.services.workload_engine import WorkloadEngine


def get_workload_engine() -> WorkloadEngine:
    return WorkloadEngine()


def get_clock() -> Clock:
    return utcnow


def his_timeout() -> float:
    return float(os.getenv("HIS_LOOKUP_TIMEOUT_S", "10"))


def sheet_timeout() -> float:
    return float(os.getenv("SHEET_FETCH_TIMEOUT_S", "10"))


def parse_ward_ids(
    ward_ids: Optional[str] = Query(None, alias="wardIds", description="Comma-separated ward ids"),
) -> List[int]:
    if not ward_ids:
        return []
    try:
        return [int(part) for part in ward_ids.split(",") if part.strip()]
    except ValueError:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="wardIds must be comma-separated integers")


def require_date_range(
    date_from: Optional[date] = Query(None, alias="dateFrom"),
    date_to: Optional[date] = Query(None, alias="dateTo"),
) -> tuple:
    if date_from is None or date_to is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="dateFrom and dateTo are required")
    if date_to < date_from:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="dateFrom must not be after dateTo")
    return date_from, date_to


def domain_http_error(exc: Exception) -> HTTPException:
    """Map a domain exception onto the HTTP status the entry screens expect."""
    if isinstance(exc, UnknownWardError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    if isinstance(exc, (ShiftValidationError, WardConfigError)):
        return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc))
