"""Authentication dependencies: shared bearer token and rater identity header."""

from __future__ import annotations

import logging
import secrets

from fastapi import Depends, Header, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from app.core.config import get_settings
from app.core.errors import ApiError

logger = logging.getLogger(__name__)

security = HTTPBearer(auto_error=False)


def require_auth_token(
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
) -> None:
    """Reject the request unless it carries ``Authorization: Bearer <AUTH_TOKEN>``."""
    settings = get_settings()

    if not settings.auth_token:
        logger.error("AUTH_TOKEN is not configured; refusing protected request")
        raise ApiError(
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            "INTERNAL_ERROR",
            "Server configuration error: AUTH_TOKEN missing",
        )

    if credentials is None:
        raise ApiError.unauthorized("Missing or malformed Authorization header")

    if not secrets.compare_digest(
        credentials.credentials.encode("utf-8"),
        settings.auth_token.encode("utf-8"),
    ):
        logger.warning("Rejected request with invalid bearer token")
        raise ApiError.unauthorized("Invalid token")


def require_rater_id(
    x_rater_id: str | None = Header(default=None, alias="X-Rater-Id"),
) -> str:
    """Return the caller's rater identifier from the ``X-Rater-Id`` header."""

    rater_id = (x_rater_id or "").strip()
    if not rater_id:
        raise ApiError.unauthorized("Missing X-Rater-Id header")
    return rater_id
