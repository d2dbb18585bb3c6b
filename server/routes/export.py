import logging

from fastapi import APIRouter, Depends
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse, Response

from ..analytics import render_sessions_csv
from ..models import SessionExportResponse
from ..storage import BaseStorage, get_storage

# Configure logging
logger = logging.getLogger(__name__)

# Create router
router = APIRouter()

CSV_FILENAME = "attention-sessions.csv"
JSON_FILENAME = "attention-data.json"

# ============================================================================
# EXPORT ENDPOINTS
# ============================================================================

@router.get(
    "/csv",
    summary="Export CSV",
    description="Download one summary row per session as CSV",
    response_class=Response
)
async def export_csv(storage: BaseStorage = Depends(get_storage)):
    """
    Export all sessions as CSV.

    Summary columns are recomputed from each session's stored metrics.
    """
    sessions = storage.get_all_sessions()
    rows = [(session, storage.get_metrics_by_session_id(session.id)) for session in sessions]
    csv_content = render_sessions_csv(rows)

    logger.info(f"Exported {len(sessions)} sessions as CSV")

    return Response(
        content=csv_content,
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{CSV_FILENAME}"'}
    )

@router.get(
    "/json",
    summary="Export JSON",
    description="Download every session together with its metrics as JSON"
)
async def export_json(storage: BaseStorage = Depends(get_storage)):
    sessions = storage.get_all_sessions()
    export = [
        SessionExportResponse(
            **session.model_dump(),
            metrics=storage.get_metrics_by_session_id(session.id)
        )
        for session in sessions
    ]

    logger.info(f"Exported {len(sessions)} sessions as JSON")

    return JSONResponse(
        content=jsonable_encoder(export),
        headers={"Content-Disposition": f'attachment; filename="{JSON_FILENAME}"'}
    )
