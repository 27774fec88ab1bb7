"""Health check API endpoint."""

import logging
from typing import Dict

from fastapi import APIRouter

from pharmacy_usage import __version__
from pharmacy_usage.core.usage.config import get_usage_config
from pharmacy_usage.utils.time_utils import utc_now

from ..schemas.common import ComponentHealth, HealthStatus, HealthStatusEnum

logger = logging.getLogger(__name__)
router = APIRouter()


async def _check_store() -> ComponentHealth:
    config = get_usage_config()
    if config.store_backend == "memory":
        return ComponentHealth(status=HealthStatusEnum.healthy, message="In-memory store")

    from pharmacy_usage.db.connection import db

    if not db.config.enabled:
        return ComponentHealth(status=HealthStatusEnum.disabled, message="Database disabled")
    if await db.test_connection(timeout=5.0):
        return ComponentHealth(status=HealthStatusEnum.healthy, message="Connected")
    return ComponentHealth(status=HealthStatusEnum.unhealthy, message="Connection failed")


@router.get(
    "/health",
    response_model=HealthStatus,
    operation_id="getHealth",
    summary="Check service health",
)
async def health_check():
    """
    Check the health of the usage store and billing configuration.

    **No authentication required.**
    """
    components: Dict[str, ComponentHealth] = {}

    try:
        components["store"] = await _check_store()
    except Exception as e:
        logger.error(f"Store health check failed: {e}")
        components["store"] = ComponentHealth(status=HealthStatusEnum.unhealthy, message=str(e))

    if get_usage_config().billing_configured:
        components["billing"] = ComponentHealth(status=HealthStatusEnum.healthy, message="Configured")
    else:
        components["billing"] = ComponentHealth(
            status=HealthStatusEnum.degraded, message="Billing not configured; free tier only"
        )

    if components["store"].status == HealthStatusEnum.unhealthy:
        overall = HealthStatusEnum.unhealthy
    elif any(c.status != HealthStatusEnum.healthy for c in components.values()):
        overall = HealthStatusEnum.degraded
    else:
        overall = HealthStatusEnum.healthy

    return HealthStatus(
        status=overall,
        version=__version__,
        timestamp=utc_now(),
        components=components,
    )
