# services/payment_service.py
# ============================================================================
# CASHFREE PAYMENT GATEWAY - PAYMENT SERVICE
# ============================================================================
# Translates REST operations into Cashfree calls plus row-level writes.
#
# FAILURE HANDLING:
# - Gateway failures abort the operation (PaymentServiceError, 500)
# - Unknown records abort with PaymentNotFoundError (404)
# - Store writes that follow a successful gateway call are best effort:
#   logged, never surfaced, since Cashfree has already committed the change
# ============================================================================

import asyncio
import time
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

import structlog

from clients.cashfree_client import CashfreeClient, CashfreeError
from config import Settings
from schemas.payment_models import (
    CashfreeOrderCreate,
    CashfreePayment,
    CashfreeRefundCreate,
    CashfreeSettlementCreate,
    CreatePaymentSessionRequest,
    CustomerDetails,
    OrderMeta,
    Payment,
    PaymentStatus,
    Refund,
    Settlement,
    SettlementSplit,
    SplitConfig,
    SplitSettlement,
)
from storage.payment_repository import PaymentRepository, RecordNotFoundError

logger = structlog.get_logger().bind(component="payment_service")

DEFAULT_PAGE_SIZE = 10
MAX_PAGE_SIZE = 100
ORDER_TTL = timedelta(hours=24)


# ============================================================================
# SECTION 1: ERRORS
# ============================================================================

class PaymentServiceError(Exception):
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_response(self) -> dict:
        return {"error": self.message}


class PaymentNotFoundError(PaymentServiceError):
    status_code = 404


# ============================================================================
# SECTION 2: HELPERS
# ============================================================================

def parse_page_param(raw: Optional[str], default: int, minimum: int) -> int:
    """Lenient integer query parameter: unparseable or below minimum -> default."""
    try:
        value = int(raw) if raw is not None else default
    except (TypeError, ValueError):
        return default
    return value if value >= minimum else default


def split_amount(split: SplitConfig, order_amount: float) -> float:
    if split.amount is not None:
        return split.amount
    return order_amount * split.percentage / 100


# ============================================================================
# SECTION 3: SERVICE
# ============================================================================

class PaymentService:
    """Order, refund and settlement operations over Cashfree and the store"""

    def __init__(self, repository: PaymentRepository, gateway: CashfreeClient, settings: Settings):
        self.repository = repository
        self.gateway = gateway
        self.settings = settings

    async def _store(self, operation, timeout: Optional[float] = None):
        return await asyncio.wait_for(operation, timeout=timeout or self.settings.db_operation_timeout)

    async def _best_effort(self, event: str, operation, **context) -> bool:
        """Run a follow-up store write; failures are logged and swallowed."""
        try:
            result = await self._store(operation)
        except Exception as e:
            logger.error(event, error=repr(e), **context)
            return False
        if result is False:
            logger.warning(event, error="no matching row", **context)
            return False
        return True

    async def _load_payment(self, order_id: str) -> Payment:
        try:
            return await self._store(self.repository.get_payment_by_order_id(order_id))
        except RecordNotFoundError as e:
            raise PaymentNotFoundError("Payment not found") from e
        except Exception as e:
            logger.error("payment_lookup_failed", order_id=order_id, error=repr(e))
            raise PaymentServiceError("Failed to retrieve payment") from e

    # ------------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------------

    async def create_session(self, request: CreatePaymentSessionRequest) -> Dict[str, Any]:
        expiry = datetime.now(timezone.utc) + ORDER_TTL
        order_request = CashfreeOrderCreate(
            order_id=request.order_id,
            order_amount=request.amount,
            order_currency=request.currency,
            customer_details=CustomerDetails(
                customer_id=request.customer_id,
                customer_name=request.customer_name,
                customer_email=request.customer_email,
                customer_phone=request.customer_phone,
            ),
            order_meta=OrderMeta(
                return_url=str(request.return_url),
                notify_url=str(request.notify_url),
            ),
            order_note=request.description,
            order_expiry_time=expiry.isoformat(timespec="seconds"),
        )

        try:
            order = await self.gateway.create_order(order_request)
        except CashfreeError as e:
            logger.error("create_order_failed", order_id=request.order_id, error=str(e))
            raise PaymentServiceError("Failed to create payment session") from e

        payment = Payment(
            order_id=request.order_id,
            cf_order_id=order.cf_order_id,
            amount=request.amount,
            currency=request.currency,
            status=PaymentStatus.CREATED.value,
            customer_id=request.customer_id,
            customer_name=request.customer_name,
            customer_email=request.customer_email,
            customer_phone=request.customer_phone,
            description=request.description,
            payment_url=order.payment_link,
        )
        try:
            await self._store(self.repository.create_payment(payment))
        except Exception as e:
            logger.error("payment_save_failed", order_id=request.order_id, error=repr(e))
            raise PaymentServiceError("Failed to save payment") from e

        logger.info("payment_session_created",
                    order_id=order.order_id, cf_order_id=order.cf_order_id)
        return {
            "order_id": order.order_id,
            "cf_order_id": order.cf_order_id,
            "payment_link": order.payment_link,
            "order_status": order.order_status,
            "amount": request.amount,
            "currency": request.currency,
        }

    async def verify_payment(self, order_id: str) -> Dict[str, Any]:
        try:
            order = await self.gateway.get_order_status(order_id)
        except CashfreeError as e:
            logger.error("order_status_failed", order_id=order_id, error=str(e))
            raise PaymentServiceError("Failed to verify payment") from e

        details: Optional[CashfreePayment] = None
        if order.order_status == PaymentStatus.PAID.value:
            try:
                details = await self.gateway.get_payments(order_id)
            except CashfreeError as e:
                logger.error("payment_details_failed", order_id=order_id, error=str(e))
                raise PaymentServiceError("Failed to get payment details") from e

        await self._best_effort(
            "payment_status_update_failed",
            self.repository.update_payment_status(
                order_id,
                order.order_status,
                cf_payment_id=details.cf_payment_id if details else None,
                payment_method=details.payment_method_name if details else None,
                payment_time=details.payment_time if details else None,
            ),
            order_id=order_id,
        )

        response: Dict[str, Any] = {
            "order_id": order.order_id,
            "cf_order_id": order.cf_order_id,
            "order_status": order.order_status,
            "order_amount": order.order_amount,
        }
        if details is not None:
            response.update({
                "cf_payment_id": details.cf_payment_id,
                "payment_method": details.payment_method_name,
                "payment_time": details.payment_time.isoformat() if details.payment_time else None,
                "payment_amount": details.payment_amount,
            })
        return response

    async def get_payment_details(self, order_id: str) -> Payment:
        """Stored record, refreshed with Cashfree's status when reachable."""
        payment = await self._load_payment(order_id)

        try:
            order = await self.gateway.get_order_status(order_id)
        except CashfreeError as e:
            logger.warning("order_status_unavailable", order_id=order_id, error=str(e))
            return payment

        if payment.status != order.order_status:
            await self._best_effort(
                "payment_status_update_failed",
                self.repository.update_payment_status(
                    order_id,
                    order.order_status,
                    cf_payment_id=payment.cf_payment_id,
                    payment_method=payment.payment_method,
                    payment_time=payment.payment_time,
                ),
                order_id=order_id,
            )
            payment = payment.model_copy(update={"status": order.order_status})
        return payment

    async def list_payments(self, limit: Optional[str] = None, offset: Optional[str] = None) -> Dict[str, Any]:
        page_size = min(parse_page_param(limit, DEFAULT_PAGE_SIZE, minimum=1), MAX_PAGE_SIZE)
        start = parse_page_param(offset, 0, minimum=0)

        try:
            payments = await self._store(
                self.repository.list_payments(page_size, start),
                timeout=self.settings.db_list_timeout,
            )
        except Exception as e:
            logger.error("list_payments_failed", error=repr(e))
            raise PaymentServiceError("Failed to retrieve payments") from e

        return {
            "payments": [p.model_dump(mode="json") for p in payments],
            "limit": page_size,
            "offset": start,
            "count": len(payments),
        }

    # ------------------------------------------------------------------------
    # Refunds and cancellation
    # ------------------------------------------------------------------------

    async def refund_payment(self, order_id: str, amount: float, reason: Optional[str] = None) -> Dict[str, Any]:
        refund_id = f"refund_{order_id}_{int(time.time())}"

        try:
            created = await self.gateway.refund_payment(
                order_id,
                CashfreeRefundCreate(refund_amount=amount, refund_id=refund_id, refund_note=reason),
            )
        except CashfreeError as e:
            logger.error("create_refund_failed", order_id=order_id, error=str(e))
            raise PaymentServiceError("Failed to create refund") from e

        payment = await self._load_payment(order_id)

        await self._best_effort(
            "refund_save_failed",
            self.repository.create_refund(Refund(
                refund_id=refund_id,
                cf_refund_id=created.cf_refund_id,
                order_id=order_id,
                cf_order_id=payment.cf_order_id,
                amount=amount,
                status=created.refund_status,
                reason=reason,
            )),
            refund_id=refund_id,
        )

        return {
            "refund_id": created.refund_id,
            "cf_refund_id": created.cf_refund_id,
            "order_id": created.order_id,
            "refund_amount": created.refund_amount,
            "refund_status": created.refund_status,
        }

    async def cancel_payment(self, order_id: str) -> Dict[str, Any]:
        try:
            await self.gateway.cancel_order(order_id)
        except CashfreeError as e:
            logger.error("cancel_order_failed", order_id=order_id, error=str(e))
            raise PaymentServiceError("Failed to cancel payment") from e

        await self._best_effort(
            "payment_status_update_failed",
            self.repository.update_payment_status(order_id, PaymentStatus.CANCELLED.value),
            order_id=order_id,
        )

        return {
            "order_id": order_id,
            "status": PaymentStatus.CANCELLED.value,
            "message": "Payment cancelled successfully",
        }

    async def get_refund(self, refund_id: str) -> Refund:
        try:
            return await self._store(self.repository.get_refund_by_id(refund_id))
        except RecordNotFoundError as e:
            raise PaymentNotFoundError("Refund not found") from e
        except Exception as e:
            logger.error("refund_lookup_failed", refund_id=refund_id, error=repr(e))
            raise PaymentServiceError("Failed to retrieve refund") from e

    # ------------------------------------------------------------------------
    # Settlements
    # ------------------------------------------------------------------------

    async def create_split_settlement(self, order_id: str, splits: List[SplitConfig]) -> Dict[str, Any]:
        payment = await self._load_payment(order_id)

        gateway_splits = [
            SettlementSplit(vendor_id=s.vendor_id, amount=s.amount, percentage=s.percentage)
            for s in splits
        ]
        rows = [
            SplitSettlement(
                order_id=order_id,
                cf_order_id=payment.cf_order_id,
                vendor_id=s.vendor_id,
                amount=split_amount(s, payment.amount),
                percentage=s.percentage,
                split_type=s.split_type,
            )
            for s in splits
        ]

        try:
            settlement = await self.gateway.create_settlement(
                order_id, CashfreeSettlementCreate(splits=gateway_splits)
            )
        except CashfreeError as e:
            logger.error("create_settlement_failed", order_id=order_id, error=str(e))
            raise PaymentServiceError("Failed to create split settlement") from e

        await self._best_effort(
            "split_settlement_save_failed",
            self.repository.create_split_settlements(rows),
            order_id=order_id,
        )

        settlement_id = settlement.settlement_id or settlement.cf_settlement_id
        if settlement_id:
            await self._best_effort(
                "settlement_save_failed",
                self.repository.create_settlement(Settlement(
                    settlement_id=settlement_id,
                    order_id=order_id,
                    cf_order_id=payment.cf_order_id,
                    amount=round(sum(row.amount for row in rows), 2),
                    status=settlement.settlement_status or "PENDING",
                )),
                order_id=order_id,
                settlement_id=settlement_id,
            )

        return {
            "cf_settlement_id": settlement.cf_settlement_id,
            "settlement_id": settlement.settlement_id,
            "order_id": settlement.order_id,
            "settlement_status": settlement.settlement_status,
            "splits": [s.model_dump(exclude_none=True) for s in settlement.splits],
        }

    async def get_settlement(self, settlement_id: str) -> Settlement:
        try:
            return await self._store(self.repository.get_settlement_by_id(settlement_id))
        except RecordNotFoundError as e:
            raise PaymentNotFoundError("Settlement not found") from e
        except Exception as e:
            logger.error("settlement_lookup_failed", settlement_id=settlement_id, error=repr(e))
            raise PaymentServiceError("Failed to retrieve settlement") from e
