# backend/app/routes/sessions.py
"""
Read-only session routes for the two parties of a booking.

Endpoints:
    GET /sessions              → Sessions the caller is mentor or mentee of
    GET /sessions/{session_id} → One session (parties only)
"""

import logging
from typing import NoReturn, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from starlette.concurrency import run_in_threadpool

from ..api.dependencies.auth import get_current_user_id
from ..api.dependencies.services import get_lifecycle_manager
from ..core.constants import DEFAULT_QUERY_LIMIT, MAX_QUERY_LIMIT
from ..core.exceptions import DomainException
from ..models.mentoring_session import SessionStatus
from ..schemas.session import SessionListResponse, SessionResponse
from ..services.session_lifecycle import SessionLifecycleManager

logger = logging.getLogger(__name__)

router = APIRouter(tags=["sessions"])


def handle_domain_exception(exc: DomainException) -> NoReturn:
    """Convert domain exceptions to HTTP exceptions."""
    if hasattr(exc, "to_http_exception"):
        raise exc.to_http_exception()
    raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc))


@router.get("/sessions", response_model=SessionListResponse)
async def list_sessions(
    status_filter: Optional[SessionStatus] = Query(None, alias="status"),
    limit: int = Query(DEFAULT_QUERY_LIMIT, ge=1, le=MAX_QUERY_LIMIT),
    current_user_id: str = Depends(get_current_user_id),
    lifecycle: SessionLifecycleManager = Depends(get_lifecycle_manager),
) -> SessionListResponse:
    sessions = await run_in_threadpool(
        lifecycle.list_sessions_for_user,
        current_user_id,
        status=status_filter.value if status_filter else None,
        limit=limit,
    )
    return SessionListResponse(
        sessions=[SessionResponse.model_validate(s) for s in sessions],
        total=len(sessions),
    )


@router.get("/sessions/{session_id}", response_model=SessionResponse)
async def get_session(
    session_id: str,
    current_user_id: str = Depends(get_current_user_id),
    lifecycle: SessionLifecycleManager = Depends(get_lifecycle_manager),
) -> SessionResponse:
    try:
        session = await run_in_threadpool(
            lifecycle.get_session_for_user, session_id, current_user_id
        )
    except DomainException as exc:
        handle_domain_exception(exc)
    return SessionResponse.model_validate(session)
