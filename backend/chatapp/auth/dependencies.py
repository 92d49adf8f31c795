"""FastAPI dependency resolving the authenticated caller."""
import logging
from typing import Optional

from fastapi import Header, HTTPException

logger = logging.getLogger(__name__)

USER_ID_HEADER = "X-User-Id"


async def get_current_user_id(
    x_user_id: Optional[str] = Header(None, alias=USER_ID_HEADER),
) -> str:
    """Return the caller's user ID or reject the request with 401."""
    if x_user_id is None or not x_user_id.strip():
        logger.warning("[Auth] Request without %s header rejected", USER_ID_HEADER)
        raise HTTPException(status_code=401, detail="Not authenticated")
    return x_user_id.strip()
