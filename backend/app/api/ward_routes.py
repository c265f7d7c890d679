"""Ward routes — CRUD and per-ward field configuration."""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import domain_http_error
from app.db import get_db
from app.db.repository import get_ward, list_wards
from app.models.api_models import WardIn
from app.models.orm_models import NursingWard
from app.services.ward_config import (
    WardConfigError,
    normalize_dept_type,
    validate_fields_document,
    ward_config_from_row,
)

router = APIRouter(prefix="/api/wards", tags=["Wards"])
logger = logging.getLogger("nursing-wards")


def ward_to_dict(w: NursingWard) -> dict:
    config = ward_config_from_row(w)
    return {
        "id": w.id,
        "code": w.code,
        "name": w.name,
        "deptType": w.dept_type,
        "isActive": w.is_active,
        "opdFieldsConfig": w.opd_fields_config,
        "activeShifts": list(config.active_shifts),
        "workloadConfigured": config.is_configured,
        "hisWardKeys": w.his_ward_keys or [],
        "createdAt": w.created_at.isoformat() if w.created_at else None,
        "updatedAt": w.updated_at.isoformat() if w.updated_at else None,
    }


async def _code_taken(db: AsyncSession, code: str, exclude_id: Optional[int] = None) -> bool:
    stmt = select(NursingWard.id).where(NursingWard.code == code)
    if exclude_id is not None:
        stmt = stmt.where(NursingWard.id != exclude_id)
    return (await db.execute(stmt)).first() is not None


@router.get("")
async def get_wards(
    dept_type: Optional[str] = Query(None, alias="deptType"),
    db: AsyncSession = Depends(get_db),
):
    wards = await list_wards(db, dept_type=dept_type.upper() if dept_type else None)
    return [ward_to_dict(w) for w in wards]


@router.post("", status_code=201)
async def create_ward(payload: WardIn, db: AsyncSession = Depends(get_db)):
    if not payload.code or not payload.name or not payload.dept_type:
        raise HTTPException(status_code=400, detail="code, name, deptType are required")
    try:
        dept = normalize_dept_type(payload.dept_type)
        document = None
        if payload.opd_fields_config is not None:
            document = validate_fields_document(dept, payload.opd_fields_config.to_document())
    except WardConfigError as e:
        raise domain_http_error(e)

    if await _code_taken(db, payload.code):
        raise HTTPException(status_code=409, detail=f"Ward code '{payload.code}' already exists")

    ward = NursingWard(
        code=payload.code,
        name=payload.name,
        dept_type=dept,
        is_active=True if payload.is_active is None else payload.is_active,
        opd_fields_config=document,
        his_ward_keys=payload.his_ward_keys or None,
    )
    db.add(ward)
    await db.commit()
    await db.refresh(ward)
    logger.info(f"Ward created: {ward.code} ({ward.dept_type})", extra={"ward_id": ward.id})
    return ward_to_dict(ward)


@router.get("/{ward_id}")
async def get_one_ward(ward_id: int, db: AsyncSession = Depends(get_db)):
    ward = await get_ward(db, ward_id)
    if not ward:
        raise HTTPException(status_code=404, detail="Ward not found")
    return ward_to_dict(ward)


@router.put("/{ward_id}")
async def update_ward(ward_id: int, payload: WardIn, db: AsyncSession = Depends(get_db)):
    """
    Partial update of the ward's identity fields; ``opdFieldsConfig`` is a
    full-document replace (send null to clear it).
    """
    ward = await get_ward(db, ward_id)
    if not ward:
        raise HTTPException(status_code=404, detail="Ward not found")

    sent = payload.model_fields_set
    try:
        dept = normalize_dept_type(payload.dept_type) if payload.dept_type else ward.dept_type
        if "opd_fields_config" in sent:
            raw = payload.opd_fields_config.to_document() if payload.opd_fields_config else None
        else:
            raw = ward.opd_fields_config
        document = validate_fields_document(dept, raw)
    except WardConfigError as e:
        raise domain_http_error(e)

    if payload.code and payload.code != ward.code and await _code_taken(db, payload.code, exclude_id=ward.id):
        raise HTTPException(status_code=409, detail=f"Ward code '{payload.code}' already exists")

    if payload.code:
        ward.code = payload.code
    if payload.name:
        ward.name = payload.name
    ward.dept_type = dept
    if payload.is_active is not None:
        ward.is_active = payload.is_active
    ward.opd_fields_config = document
    if "his_ward_keys" in sent:
        ward.his_ward_keys = payload.his_ward_keys or None

    await db.commit()
    await db.refresh(ward)
    logger.info(f"Ward updated: {ward.code}", extra={"ward_id": ward.id})
    return ward_to_dict(ward)


@router.delete("/{ward_id}")
async def delete_ward(ward_id: int, db: AsyncSession = Depends(get_db)):
    ward = await get_ward(db, ward_id)
    if not ward:
        raise HTTPException(status_code=404, detail="Ward not found")
    await db.delete(ward)
    await db.commit()
    logger.info(f"Ward deleted: {ward_id}", extra={"ward_id": ward_id})
    return {"success": True}
