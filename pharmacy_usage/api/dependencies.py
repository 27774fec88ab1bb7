"""FastAPI dependencies: caller identity, admin guard and service access."""

import hmac
import logging
from typing import Optional

from fastapi import Depends, Header, HTTPException

from pharmacy_usage.core.usage.config import UsageConfig, get_usage_config
from pharmacy_usage.core.usage.service import UsageAccountingService, get_usage_service

logger = logging.getLogger(__name__)


def get_service() -> UsageAccountingService:
    """Get the usage accounting service singleton."""
    return get_usage_service()


def get_config() -> UsageConfig:
    return get_usage_config()


async def get_user_id(
    x_user_id: Optional[str] = Header(None, alias="X-User-ID")
) -> str:
    """
    Extract the authenticated user ID from request header.

    The authentication gateway in front of this service sets the header
    after validating the session.

    Raises:
        HTTPException 401: If header is missing or blank
    """
    if not x_user_id or not x_user_id.strip():
        raise HTTPException(
            status_code=401,
            detail="Authentication required. Provide X-User-ID header.",
        )
    return x_user_id.strip()


def require_admin(
    x_admin_key: Optional[str] = Header(None, alias="X-Admin-Key"),
    config: UsageConfig = Depends(get_config),
) -> None:
    """
    Guard admin routes with the shared ADMIN_API_KEY.

    When no admin key is configured the routes are open, matching local
    development setups.

    Raises:
        HTTPException 401: If the key is required but missing
        HTTPException 403: If the key does not match
    """
    expected = config.admin_api_key
    if not expected:
        return

    if not x_admin_key:
        raise HTTPException(
            status_code=401,
            detail="Admin key required. Provide X-Admin-Key header.",
        )
    if not hmac.compare_digest(x_admin_key, expected):
        logger.warning("Rejected admin request with invalid X-Admin-Key")
        raise HTTPException(status_code=403, detail="Invalid admin key")
