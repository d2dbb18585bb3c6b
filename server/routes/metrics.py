import logging
from typing import List, Union

from fastapi import APIRouter, Body, Depends, HTTPException, status

from ..models import MetricCreateRequest, MetricResponse
from ..storage import BaseStorage, UnknownSessionError, get_storage

# Configure logging
logger = logging.getLogger(__name__)

# Create router
router = APIRouter()

# ============================================================================
# ATTENTION METRIC ENDPOINTS
# ============================================================================

@router.post(
    "",
    response_model=List[MetricResponse],
    summary="Save Metrics",
    description="Save one attention metric or a batch of them"
)
async def create_metrics(
    payload: Union[List[MetricCreateRequest], MetricCreateRequest] = Body(...),
    storage: BaseStorage = Depends(get_storage)
):
    """
    Save attention metrics.

    The body may be a single metric object or an array. The whole batch is
    validated before anything is stored, so a bad item stores nothing.
    """
    metrics = payload if isinstance(payload, list) else [payload]

    try:
        created = storage.create_attention_metrics(metrics)
    except UnknownSessionError as e:
        logger.warning(f"Rejected metric batch of {len(metrics)}: {e}")
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid metric data"
        )

    logger.info(f"Saved {len(created)} metrics")
    return created

@router.get(
    "/session/{session_id}",
    response_model=List[MetricResponse],
    summary="Get Session Metrics",
    description="Get all metrics for a session, oldest first"
)
async def get_session_metrics(session_id: str, storage: BaseStorage = Depends(get_storage)):
    return storage.get_metrics_by_session_id(session_id)
