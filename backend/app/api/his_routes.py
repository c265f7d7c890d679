"""HIS routes — ward list from the HIS warehouse for the ward-mapping screen."""
import logging

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.db import get_db
from app.services.census_lookup import list_his_wards

router = APIRouter(prefix="/api/his", tags=["HIS"])
logger = logging.getLogger("nursing-his")


@router.get("/wards")
async def get_his_wards(db: AsyncSession = Depends(get_db)):
    try:
        return await list_his_wards(db)
    except SQLAlchemyError as e:
        logger.error(f"Error fetching dim_ward: {e}", exc_info=True)
        raise HTTPException(status_code=502, detail="HIS ward list unavailable")
