"""
Airtable app listing routes.
"""

from fastapi import APIRouter, Query
from fastapi.responses import JSONResponse
from typing import Optional
import structlog

from models.app_record import RemoteRecord
from services.airtable_service import get_airtable_service
from exceptions import AppError

logger = structlog.get_logger(__name__)

router = APIRouter()


def handle_error(e: Exception) -> JSONResponse:
    """Convert exception to JSON response."""
    if isinstance(e, AppError):
        return JSONResponse(
            status_code=e.status_code,
            content=e.to_dict()
        )
    logger.error("unexpected_error", error=str(e), type=type(e).__name__)
    return JSONResponse(
        status_code=500,
        content={
            "error": {
                "code": "INTERNAL_ERROR",
                "message": "An unexpected error occurred"
            }
        }
    )


@router.get("", response_model=list[RemoteRecord])
async def list_apps(
    max_records: Optional[int] = Query(None, ge=1, le=1000, description="Maximum records to return"),
    view: Optional[str] = Query(None, description="Airtable view to read through")
):
    """
    List app records in the Airtable table.

    Raises:
        500: Airtable not configured
        503: Airtable request failed
    """
    try:
        return get_airtable_service().fetch_all(max_records=max_records, view=view)
    except Exception as e:
        return handle_error(e)
