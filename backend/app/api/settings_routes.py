"""Settings routes — published-sheet URL and sheet names."""
import logging
from typing import Optional

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel

from app.services.sheet_settings import SheetSettings, load_settings, save_settings

router = APIRouter(prefix="/api/settings", tags=["Settings"])
logger = logging.getLogger("nursing-sheets")


# ─── Pydantic schemas ────────────────────────────────────────────────────────

class SettingsUpdate(BaseModel):
    mainUrl: Optional[str] = None
    summarySheet: Optional[str] = None
    ipdSheet: Optional[str] = None
    opdSheet: Optional[str] = None


# ─── Endpoints ──────────────────────────────────────────────────────────────

@router.get("")
async def get_settings():
    """Stored settings, or defaults when nothing has been saved yet."""
    return load_settings().to_dict()


@router.post("")
async def update_settings(payload: SettingsUpdate):
    current = load_settings().to_dict()
    current.update(payload.model_dump(exclude_none=True))
    try:
        settings = save_settings(SheetSettings.from_dict(current))
    except OSError as e:
        logger.error(f"Error saving settings: {e}")
        raise HTTPException(status_code=500, detail=str(e))
    return {"success": True, "settings": settings.to_dict()}
