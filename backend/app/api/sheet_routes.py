"""Sheet routes — CSV proxy and summary for legacy published sheets."""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import PlainTextResponse

from app.api import deps
from app.services.sheet_import import SheetFetchError, SheetImporter, convert_to_csv_url
from app.services.sheet_settings import load_settings

router = APIRouter(prefix="/api/sheets", tags=["Sheets"])
logger = logging.getLogger("nursing-sheets")


def get_sheet_importer(timeout: float = Depends(deps.sheet_timeout)) -> SheetImporter:
    return SheetImporter(load_settings(), timeout=timeout)


@router.get("", response_class=PlainTextResponse)
async def proxy_sheet(
    url: Optional[str] = Query(None),
    importer: SheetImporter = Depends(get_sheet_importer),
):
    """Fetch a published sheet server-side and return its CSV text."""
    if not url:
        raise HTTPException(status_code=400, detail="Missing url parameter")
    try:
        text = await importer.fetch_text(convert_to_csv_url(url))
    except SheetFetchError as e:
        raise HTTPException(status_code=502, detail=str(e))
    return PlainTextResponse(text, headers={"Access-Control-Allow-Origin": "*"})


@router.get("/summary")
async def sheet_summary(
    url: Optional[str] = Query(None),
    importer: SheetImporter = Depends(get_sheet_importer),
):
    """Per-department totals from the configured (or given) published sheet."""
    try:
        summary = await importer.fetch_summary(url)
    except SheetFetchError as e:
        raise HTTPException(status_code=502, detail=str(e))
    return summary
