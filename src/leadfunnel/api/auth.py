"""Operator authentication for dashboard endpoints."""

import secrets

from fastapi import Header, HTTPException, Request, status

from leadfunnel.logging_config import get_logger
from leadfunnel.settings import settings

logger = get_logger(__name__)


def require_operator(
    request: Request,
    x_admin_key: str | None = Header(default=None, alias="X-Admin-Key"),
) -> None:
    """Require the operator API key - raises 401 if missing or wrong.

    Marks the request as trusted so error responses may carry detail.
    """
    if not x_admin_key or not secrets.compare_digest(x_admin_key, settings.admin_api_key):
        logger.warning("operator_auth_failed", path=request.url.path)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
        )
    request.state.operator = True
