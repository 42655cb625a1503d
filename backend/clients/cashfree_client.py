# clients/cashfree_client.py
# ============================================================================
# CASHFREE PAYMENT GATEWAY - PG API CLIENT
# ============================================================================
# Thin async wrapper over the Cashfree PG REST API (x-api-version 2023-08-01).
#
# FAILURE HANDLING:
# - Transport errors (connect, read timeout) are retried by tenacity with a
#   fixed wait
# - Any non-200 response raises CashfreeAPIError immediately, no retry
# - Responses are validated into the Cashfree* pydantic models
# ============================================================================

from typing import Any, Dict, Optional, Type, TypeVar

import httpx
import structlog
from pydantic import BaseModel, TypeAdapter, ValidationError
from tenacity import AsyncRetrying, RetryCallState, retry_if_exception_type, stop_after_attempt, wait_fixed

from config import Settings
from schemas.payment_models import (
    CashfreeOrder,
    CashfreeOrderCreate,
    CashfreePayment,
    CashfreeRefund,
    CashfreeRefundCreate,
    CashfreeSettlement,
    CashfreeSettlementCreate,
)
from webhooks import signature

logger = structlog.get_logger().bind(component="cashfree_client")

M = TypeVar("M", bound=BaseModel)

_PAYMENT_LIST = TypeAdapter(list[CashfreePayment])


# ============================================================================
# SECTION 1: ERRORS
# ============================================================================

class CashfreeError(Exception):
    """Base class for gateway failures."""


class CashfreeAPIError(CashfreeError):
    """Cashfree answered with a non-200 status or an unreadable body."""

    def __init__(self, status_code: int, body: str, operation: str = ""):
        super().__init__(f"cashfree API returned status {status_code}: {body}")
        self.status_code = status_code
        self.body = body
        self.operation = operation


class CashfreeTransportError(CashfreeError):
    """The request never got an answer after all retries."""

    def __init__(self, operation: str, cause: Exception):
        super().__init__(f"failed to {operation}: {cause}")
        self.operation = operation
        self.cause = cause


# ============================================================================
# SECTION 2: CLIENT
# ============================================================================

class CashfreeClient:
    """
    Cashfree PG API client.

    The httpx client may be injected (tests pass one built on
    httpx.MockTransport); otherwise one is created and owned here.
    """

    def __init__(self, settings: Settings, http_client: Optional[httpx.AsyncClient] = None):
        self.settings = settings
        self.base_url = settings.cashfree_base_url
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(timeout=settings.cashfree_timeout)

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    def _auth_headers(self) -> Dict[str, str]:
        return {
            "X-Client-Id": self.settings.cashfree_client_id,
            "X-Client-Secret": self.settings.cashfree_client_secret,
            "Content-Type": "application/json",
            "Accept": "application/json",
            "x-api-version": self.settings.cashfree_api_version,
        }

    def _retrying(self, operation: str) -> AsyncRetrying:
        """Transport-level retry policy; HTTP error statuses are never retried."""

        def log_retry(retry_state: RetryCallState) -> None:
            logger.warning("cashfree_request_retry",
                           operation=operation,
                           attempt=retry_state.attempt_number,
                           error=repr(retry_state.outcome.exception()))

        return AsyncRetrying(
            retry=retry_if_exception_type(httpx.TransportError),
            stop=stop_after_attempt(self.settings.cashfree_max_retries + 1),
            wait=wait_fixed(self.settings.cashfree_retry_wait),
            before_sleep=log_retry,
            reraise=True,
        )

    async def _request(
        self,
        method: str,
        path: str,
        operation: str,
        body: Optional[BaseModel] = None,
    ) -> httpx.Response:
        url = f"{self.base_url}{path}"
        payload = body.model_dump(mode="json", exclude_none=True) if body is not None else None
        retrying = self._retrying(operation)

        try:
            async for attempt in retrying:
                with attempt:
                    response = await self._client.request(
                        method, url, json=payload, headers=self._auth_headers()
                    )
        except httpx.TransportError as e:
            logger.error("cashfree_request_failed",
                         operation=operation,
                         attempts=retrying.statistics.get("attempt_number"),
                         error=repr(e))
            raise CashfreeTransportError(operation, e) from e

        if response.status_code != 200:
            logger.warning("cashfree_api_error",
                           operation=operation, status_code=response.status_code)
            raise CashfreeAPIError(response.status_code, response.text, operation)

        return response

    @staticmethod
    def _parse(response: httpx.Response, model: Type[M], operation: str) -> M:
        try:
            return model.model_validate(response.json())
        except (ValueError, ValidationError) as e:
            raise CashfreeAPIError(response.status_code, response.text, operation) from e

    # ------------------------------------------------------------------------
    # Orders
    # ------------------------------------------------------------------------

    async def create_order(self, order: CashfreeOrderCreate) -> CashfreeOrder:
        response = await self._request("POST", "/orders", "create order", order)
        created = self._parse(response, CashfreeOrder, "create order")
        logger.info("cashfree_order_created",
                    order_id=created.order_id, cf_order_id=created.cf_order_id)
        return created

    async def get_order_status(self, order_id: str) -> CashfreeOrder:
        response = await self._request("GET", f"/orders/{order_id}", "get order status")
        return self._parse(response, CashfreeOrder, "get order status")

    async def get_payments(self, order_id: str) -> CashfreePayment:
        """First payment attempt recorded against the order."""
        response = await self._request("GET", f"/orders/{order_id}/payments", "get payments")
        try:
            payments = _PAYMENT_LIST.validate_python(response.json())
        except (ValueError, ValidationError) as e:
            raise CashfreeAPIError(response.status_code, response.text, "get payments") from e
        if not payments:
            raise CashfreeError(f"no payments found for order {order_id}")
        return payments[0]

    async def cancel_order(self, order_id: str) -> None:
        await self._request("PATCH", f"/orders/{order_id}/cancel", "cancel order")
        logger.info("cashfree_order_cancelled", order_id=order_id)

    # ------------------------------------------------------------------------
    # Refunds
    # ------------------------------------------------------------------------

    async def refund_payment(self, order_id: str, refund: CashfreeRefundCreate) -> CashfreeRefund:
        response = await self._request(
            "POST", f"/orders/{order_id}/refunds", "create refund", refund
        )
        created = self._parse(response, CashfreeRefund, "create refund")
        logger.info("cashfree_refund_created",
                    order_id=order_id, refund_id=created.refund_id)
        return created

    async def get_refund_status(self, order_id: str, refund_id: str) -> CashfreeRefund:
        response = await self._request(
            "GET", f"/orders/{order_id}/refunds/{refund_id}", "get refund status"
        )
        return self._parse(response, CashfreeRefund, "get refund status")

    # ------------------------------------------------------------------------
    # Settlements
    # ------------------------------------------------------------------------

    async def create_settlement(
        self, order_id: str, settlement: CashfreeSettlementCreate
    ) -> CashfreeSettlement:
        response = await self._request(
            "POST", f"/orders/{order_id}/settlements", "create settlement", settlement
        )
        return self._parse(response, CashfreeSettlement, "create settlement")

    # ------------------------------------------------------------------------
    # Webhooks
    # ------------------------------------------------------------------------

    def verify_webhook_signature(self, provided: str, timestamp: str, payload: Any) -> bool:
        return signature.verify(provided, timestamp, payload, self.settings.webhook_secret)
