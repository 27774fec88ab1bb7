"""Admin endpoints for the system-wide user count aggregate."""

import logging

from fastapi import APIRouter, Depends

from pharmacy_usage.core.usage.schemas import AggregateStats
from pharmacy_usage.core.usage.service import UsageAccountingService

from ..dependencies import get_service, require_admin
from ..schemas.usage import AdjustCountsRequest, UserCountsResponse

logger = logging.getLogger(__name__)
router = APIRouter(dependencies=[Depends(require_admin)])


def _to_response(stats: AggregateStats) -> UserCountsResponse:
    return UserCountsResponse(
        total_users=stats.total_users,
        active_users=stats.active_users,
        updated_at=stats.updated_at,
    )


@router.get(
    "/stats",
    response_model=UserCountsResponse,
    operation_id="getUserCounts",
    summary="Get system-wide user counts",
)
async def get_user_counts(service: UsageAccountingService = Depends(get_service)):
    return _to_response(await service.get_user_counts())


@router.post(
    "/stats/adjust",
    response_model=UserCountsResponse,
    operation_id="adjustUserCounts",
    summary="Apply a user lifecycle delta",
)
async def adjust_user_counts(
    request: AdjustCountsRequest,
    service: UsageAccountingService = Depends(get_service),
):
    """
    Called by the host application after creating or deleting a user.

    The first call bootstraps the aggregate from the profile count.
    """
    stats = await service.adjust_user_counts(request.total_delta, request.active_delta)
    return _to_response(stats)


@router.post(
    "/stats/recompute",
    response_model=UserCountsResponse,
    operation_id="recomputeUserCounts",
    summary="Rebuild user counts from profiles",
)
async def recompute_user_counts(service: UsageAccountingService = Depends(get_service)):
    stats = await service.recompute_user_counts()
    logger.info(f"Recomputed user counts: total={stats.total_users} active={stats.active_users}")
    return _to_response(stats)
