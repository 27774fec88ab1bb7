"""
Billing provider REST client.

Wraps the provider's check, track and checkout endpoints. Every call
returns a tagged BillingResult and never raises for provider or network
failures: transient failures are retried with exponential back-off and
then reported as an error result.
"""

import logging
from typing import Any, Dict, Optional, Type

import httpx
from pydantic import BaseModel, ValidationError
from tenacity import (
    before_sleep_log,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from pharmacy_usage.constants import (
    BILLING_INVALID_RESPONSE_CODE,
    BILLING_NETWORK_ERROR_CODE,
    BILLING_NOT_CONFIGURED_CODE,
    BILLING_NOT_CONFIGURED_MESSAGE,
    DEFAULT_BILLING_BASE_URL,
    DEFAULT_BILLING_MAX_ATTEMPTS,
    DEFAULT_BILLING_RETRY_WAIT_SECONDS,
    DEFAULT_BILLING_TIMEOUT_SECONDS,
)

from .schemas import BillingResult, CheckoutData, TrackData, UsageCheckData

logger = logging.getLogger(__name__)


class RetryableStatusError(Exception):
    """Provider answered with a status worth retrying (5xx or 429)."""

    def __init__(self, response: httpx.Response):
        self.response = response
        super().__init__(f"Billing provider returned HTTP {response.status_code}")


def _is_retryable_status(status_code: int) -> bool:
    return status_code == 429 or status_code >= 500


def _error_from_response(response: httpx.Response, transient: bool = False) -> BillingResult:
    """Build an error result from a non-2xx provider response."""
    code = f"BILLING_HTTP_{response.status_code}"
    message = f"Billing provider returned HTTP {response.status_code}"
    try:
        body = response.json()
    except ValueError:
        body = None
    if isinstance(body, dict):
        # Providers sometimes send numeric codes; only trust non-empty strings
        if isinstance(body.get("message"), str) and body["message"]:
            message = body["message"]
        if isinstance(body.get("code"), str) and body["code"]:
            code = body["code"]
    return BillingResult.failure(message=message, code=code, transient=transient)


def _parse(operation: str, model: Type[BaseModel], data: Dict[str, Any]) -> BillingResult:
    """Validate a provider body into its result model."""
    try:
        parsed = model.model_validate(data)
    except ValidationError as e:
        logger.warning(f"Billing {operation} returned an unexpected body: {e}")
        return BillingResult.failure(
            message=f"Billing provider returned an unexpected {operation} response",
            code=BILLING_INVALID_RESPONSE_CODE,
        )
    return BillingResult.success(parsed)


class BillingProviderClient:
    """
    Async client for the billing provider.

    The client is "not configured" when no secret key is set; every call
    then returns a BILLING_NOT_CONFIGURED error without touching the network.
    """

    def __init__(
        self,
        secret_key: Optional[str],
        base_url: str = DEFAULT_BILLING_BASE_URL,
        timeout_seconds: float = DEFAULT_BILLING_TIMEOUT_SECONDS,
        max_attempts: int = DEFAULT_BILLING_MAX_ATTEMPTS,
        retry_wait_seconds: float = DEFAULT_BILLING_RETRY_WAIT_SECONDS,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.secret_key = secret_key or None
        self.base_url = base_url.rstrip("/")
        self.timeout_seconds = timeout_seconds
        self.max_attempts = max_attempts
        self.retry_wait_seconds = retry_wait_seconds
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    @property
    def configured(self) -> bool:
        return self.secret_key is not None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                headers={
                    "Authorization": f"Bearer {self.secret_key}",
                    "Content-Type": "application/json",
                },
                timeout=self.timeout_seconds,
                transport=self._transport,
            )
        return self._client

    async def aclose(self) -> None:
        """Close the underlying HTTP client."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    def _not_configured(self, operation: str) -> BillingResult:
        logger.warning(f"Billing {operation} skipped: provider not configured")
        return BillingResult.failure(
            message=BILLING_NOT_CONFIGURED_MESSAGE,
            code=BILLING_NOT_CONFIGURED_CODE,
        )

    async def _post(self, path: str, payload: Dict[str, Any]) -> httpx.Response:
        """POST with retries on transport errors and retryable statuses."""
        client = self._get_client()

        @retry(
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_exponential(multiplier=self.retry_wait_seconds, max=10),
            retry=retry_if_exception_type((httpx.TransportError, RetryableStatusError)),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        )
        async def send() -> httpx.Response:
            response = await client.post(path, json=payload)
            if _is_retryable_status(response.status_code):
                raise RetryableStatusError(response)
            return response

        return await send()

    async def _call(self, operation: str, path: str, payload: Dict[str, Any]) -> BillingResult:
        """Run a provider call and return the JSON body or a tagged error."""
        try:
            response = await self._post(path, payload)
        except RetryableStatusError as e:
            logger.warning(f"Billing {operation} failed after retries: HTTP {e.response.status_code}")
            return _error_from_response(e.response, transient=True)
        except httpx.TransportError as e:
            logger.warning(f"Billing {operation} network error: {type(e).__name__}: {e}")
            return BillingResult.failure(
                message=f"Could not reach billing provider: {e}",
                code=BILLING_NETWORK_ERROR_CODE,
                transient=True,
            )
        except httpx.HTTPError as e:
            # Undecodable bodies, redirect loops: the provider misbehaved
            logger.warning(f"Billing {operation} failed: {type(e).__name__}: {e}")
            return BillingResult.failure(
                message=f"Billing provider returned an unreadable response: {e}",
                code=BILLING_INVALID_RESPONSE_CODE,
                transient=True,
            )

        if response.status_code >= 400:
            logger.warning(f"Billing {operation} rejected: HTTP {response.status_code}")
            return _error_from_response(response)

        try:
            body = response.json()
        except ValueError:
            return BillingResult.failure(
                message="Billing provider returned a non-JSON response",
                code=BILLING_INVALID_RESPONSE_CODE,
            )
        return BillingResult.success(body if isinstance(body, dict) else {})

    async def check_usage_status(self, user_id: str, feature_id: str) -> BillingResult:
        """
        Check whether a user may use a metered feature.

        Args:
            user_id: Billing customer id (same as the app user id)
            feature_id: Metered feature id

        Returns:
            BillingResult with UsageCheckData on success
        """
        if not self.configured:
            return self._not_configured("check")

        result = await self._call(
            "check", "/check", {"customer_id": user_id, "feature_id": feature_id}
        )
        if not result.ok:
            return result

        return _parse("check", UsageCheckData, result.data)

    async def track(
        self,
        user_id: str,
        feature_id: str,
        value: int = 1,
        properties: Optional[Dict[str, Any]] = None,
    ) -> BillingResult:
        """
        Report usage of a metered feature.

        Args:
            user_id: Billing customer id
            feature_id: Metered feature id
            value: Units consumed
            properties: Optional event properties (provider, model, tokens)

        Returns:
            BillingResult with TrackData on success
        """
        if not self.configured:
            return self._not_configured("track")

        payload: Dict[str, Any] = {
            "customer_id": user_id,
            "feature_id": feature_id,
            "value": value,
        }
        if properties:
            payload["properties"] = properties

        result = await self._call("track", "/track", payload)
        if not result.ok:
            return result
        return _parse("track", TrackData, result.data)

    async def checkout(
        self,
        user_id: str,
        product_id: str,
        success_url: Optional[str] = None,
    ) -> BillingResult:
        """
        Start a checkout for a product.

        Args:
            user_id: Billing customer id
            product_id: Provider product id
            success_url: Where the provider redirects after payment

        Returns:
            BillingResult with CheckoutData; granted_immediately is set when
            the provider attached the product without a payment page
        """
        if not self.configured:
            return self._not_configured("checkout")

        payload: Dict[str, Any] = {"customer_id": user_id, "product_id": product_id}
        if success_url:
            payload["success_url"] = success_url

        result = await self._call("checkout", "/checkout", payload)
        if not result.ok:
            return result

        data = dict(result.data)
        data["granted_immediately"] = not data.get("url")
        return _parse("checkout", CheckoutData, data)
