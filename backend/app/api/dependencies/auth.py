# backend/app/api/dependencies/auth.py
"""
Caller identity dependencies.

Authentication is terminated upstream; the gateway forwards the verified
user id in the ``X-User-Id`` header. Ownership checks against that id
happen in the services.
"""

import logging
from typing import Optional

from fastapi import Header, HTTPException, status

logger = logging.getLogger(__name__)

USER_ID_HEADER = "X-User-Id"


def get_current_user_id(
    x_user_id: Optional[str] = Header(None, alias=USER_ID_HEADER)
) -> str:
    """Return the authenticated caller's id or reject the request with 401."""
    user_id = (x_user_id or "").strip()
    if not user_id:
        logger.info("Request rejected: missing %s header", USER_ID_HEADER)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"message": "Authentication required", "code": "UNAUTHENTICATED"},
        )
    return user_id


def require_same_user(path_user_id: str, current_user_id: str) -> None:
    """Reject callers acting on another user's resources."""
    if path_user_id != current_user_id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail={"message": "Not authorized for this mentor", "code": "FORBIDDEN"},
        )
