"""AI message usage API endpoints.

All endpoints are scoped to the caller identified by the X-User-ID header.
Reservation denials are raised as QuotaExceededException and rendered as
HTTP 402 by the registered exception handler.
"""

import logging

from fastapi import APIRouter, Depends

from pharmacy_usage.core.usage.service import UsageAccountingService

from ..dependencies import get_service, get_user_id
from ..schemas.common import ErrorResponse
from ..schemas.usage import (
    CheckoutRequest,
    CheckoutResponse,
    CompleteRequest,
    CompleteResponse,
    CurrentUsageResponse,
    ReleaseResponse,
    ReserveResponse,
    UsageConstantsResponse,
    UsageStatusResponse,
)

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get(
    "/current",
    response_model=CurrentUsageResponse,
    operation_id="getCurrentUsage",
    summary="Get the caller's usage counters",
)
async def get_current_usage(
    user_id: str = Depends(get_user_id),
    service: UsageAccountingService = Depends(get_service),
):
    """Usage counters, or `usage: null` before the first reservation."""
    usage = await service.get_current_user_usage(user_id)
    return CurrentUsageResponse(usage=usage)


@router.get(
    "/status",
    response_model=UsageStatusResponse,
    operation_id="getUsageStatus",
    summary="Get usage counters with live billing status",
)
async def get_usage_status(
    user_id: str = Depends(get_user_id),
    service: UsageAccountingService = Depends(get_service),
):
    """
    Usage counters merged with the billing provider's view of the caller.

    Billing failures are reported in `subscription.last_check_error` and
    never fail the request.
    """
    status = await service.get_usage_status(user_id)
    return UsageStatusResponse(usage=status.usage, subscription=status.subscription)


@router.get(
    "/constants",
    response_model=UsageConstantsResponse,
    operation_id="getUsageConstants",
    summary="Get free tier constants",
)
async def get_usage_constants(service: UsageAccountingService = Depends(get_service)):
    constants = service.usage_constants()
    return UsageConstantsResponse(
        free_message_limit=constants.free_message_limit,
        feature_id=constants.feature_id,
    )


@router.post(
    "/reserve",
    response_model=ReserveResponse,
    responses={402: {"description": "Quota exceeded"}, 401: {"model": ErrorResponse}},
    operation_id="reserveAiMessage",
    summary="Reserve one AI message before calling the model",
)
async def reserve_message(
    user_id: str = Depends(get_user_id),
    service: UsageAccountingService = Depends(get_service),
):
    """
    Reserve one AI message.

    Keep the returned `mode` and pass it to `/complete` when the reply has
    been produced, or call `/release` if the AI call failed.
    """
    result = await service.reserve(user_id)
    return ReserveResponse(mode=result.mode, usage=result.usage)


@router.post(
    "/complete",
    response_model=CompleteResponse,
    operation_id="completeAiMessage",
    summary="Commit a reserved AI message",
)
async def complete_message(
    request: CompleteRequest,
    user_id: str = Depends(get_user_id),
    service: UsageAccountingService = Depends(get_service),
):
    result = await service.complete(user_id, request.mode, request.metadata)
    if not result.settled:
        logger.info(f"Complete without pending reservation for user={user_id}")
    return CompleteResponse(**result.model_dump())


@router.post(
    "/release",
    response_model=ReleaseResponse,
    operation_id="releaseAiMessage",
    summary="Release a reserved AI message without charging it",
)
async def release_message(
    user_id: str = Depends(get_user_id),
    service: UsageAccountingService = Depends(get_service),
):
    result = await service.release(user_id)
    return ReleaseResponse(released=result.settled, reason=result.reason, usage=result.usage)


@router.post(
    "/checkout",
    response_model=CheckoutResponse,
    operation_id="startCheckout",
    summary="Start a billing checkout for AI credits",
)
async def start_checkout(
    request: CheckoutRequest,
    user_id: str = Depends(get_user_id),
    service: UsageAccountingService = Depends(get_service),
):
    result = await service.checkout(user_id, request.product_id, request.success_url)
    if not result.ok:
        return CheckoutResponse(success=False, error=result.error)
    return CheckoutResponse(
        success=True,
        url=result.data.url,
        granted_immediately=result.data.granted_immediately,
    )
