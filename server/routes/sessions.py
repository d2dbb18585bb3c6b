import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException, status

from ..models import SessionCreateRequest, SessionResponse, SessionUpdateRequest, SuccessResponse
from ..storage import BaseStorage, get_storage

# Configure logging
logger = logging.getLogger(__name__)

# Create router
router = APIRouter()

# ============================================================================
# SESSION MANAGEMENT ENDPOINTS
# ============================================================================

@router.post(
    "",
    response_model=SessionResponse,
    summary="Create Session",
    description="Create a new tracking session"
)
async def create_session(
    request: SessionCreateRequest,
    storage: BaseStorage = Depends(get_storage)
):
    """
    Create a new tracking session.

    The client creates the session as soon as tracking starts, with only the
    start time set, and fills in the summary fields when it stops.
    """
    session = storage.create_session(request)
    logger.info(f"Created session {session.id}")
    return session

@router.get(
    "",
    response_model=List[SessionResponse],
    summary="List Sessions",
    description="Get all sessions, newest first"
)
async def list_sessions(storage: BaseStorage = Depends(get_storage)):
    return storage.get_all_sessions()

@router.get(
    "/{session_id}",
    response_model=SessionResponse,
    summary="Get Session Details",
    description="Get a single session by ID"
)
async def get_session(session_id: str, storage: BaseStorage = Depends(get_storage)):
    session = storage.get_session(session_id)

    if not session:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Session not found"
        )

    return session

@router.patch(
    "/{session_id}",
    response_model=SessionResponse,
    summary="Update Session",
    description="Partially update a session, typically with its final statistics"
)
async def update_session(
    session_id: str,
    request: SessionUpdateRequest,
    storage: BaseStorage = Depends(get_storage)
):
    """
    Apply the fields present in the request body to a session.
    """
    session = storage.update_session(session_id, request)

    if not session:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Session not found"
        )

    logger.info(f"Updated session {session_id}: {sorted(request.model_fields_set)}")
    return session

@router.delete(
    "/{session_id}",
    response_model=SuccessResponse,
    summary="Delete Session",
    description="Delete a session and all of its metrics"
)
async def delete_session(session_id: str, storage: BaseStorage = Depends(get_storage)):
    """
    Delete a session. Its metrics are removed with it.

    Deleting an unknown session still succeeds, so the call can be repeated safely.
    """
    if storage.delete_session(session_id):
        logger.info(f"Deleted session {session_id}")
    else:
        logger.info(f"Delete requested for unknown session {session_id}")

    return SuccessResponse(success=True)
