# webhooks/projector.py
# ============================================================================
# STATUS PROJECTOR
# ============================================================================
# Applies decoded webhook events to existing Payment / Refund rows.
# Never creates records. A missing identifier is logged and skipped; store
# failures (timeout, error, unknown row) propagate to the processor, which
# records them without changing the HTTP response.
# ============================================================================

import asyncio

import structlog

from schemas.payment_models import PaymentStatus
from schemas.webhook_events import (
    PaymentFailedEvent,
    PaymentSuccessEvent,
    RefundStatusEvent,
    SettlementStatusEvent,
    WebhookEventType,
)
from storage.payment_repository import PaymentRepository, RecordNotFoundError
from webhooks.router import WebhookRouter


class StatusProjector:
    """Projects gateway-asserted status onto persisted records"""

    def __init__(self, repository: PaymentRepository, timeout: float = 5.0):
        self.repository = repository
        self.timeout = timeout
        self._base_logger = structlog.get_logger().bind(component="status_projector")

    def register(self, router: WebhookRouter) -> None:
        """Register one handler per known event type"""
        router.register(WebhookEventType.PAYMENT_SUCCESS.value)(self.on_payment_success)
        router.register(WebhookEventType.PAYMENT_FAILED.value)(self.on_payment_failed)
        router.register(WebhookEventType.REFUND_STATUS.value)(self.on_refund_status)
        router.register(WebhookEventType.SETTLEMENT_STATUS.value)(self.on_settlement_status)

    async def _bounded(self, operation):
        return await asyncio.wait_for(operation, timeout=self.timeout)

    async def on_payment_success(self, event: PaymentSuccessEvent, correlation_id: str) -> None:
        log = self._base_logger.bind(correlation_id=correlation_id)
        if event.order_id is None:
            log.warning("webhook_missing_field", event_type=event.kind.value, field="order_id")
            return

        updated = await self._bounded(self.repository.update_payment_status(
            event.order_id,
            PaymentStatus.SUCCESS.value,
            cf_payment_id=event.cf_payment_id,
            payment_method=event.payment_method,
            payment_time=event.payment_time,
        ))
        if not updated:
            raise RecordNotFoundError("payment", f"order_id: {event.order_id}")

        log.info("payment_marked_success",
                 order_id=event.order_id,
                 cf_payment_id=event.cf_payment_id)

    async def on_payment_failed(self, event: PaymentFailedEvent, correlation_id: str) -> None:
        log = self._base_logger.bind(correlation_id=correlation_id)
        if event.order_id is None:
            log.warning("webhook_missing_field", event_type=event.kind.value, field="order_id")
            return

        # Payment id, method and time are cleared
        updated = await self._bounded(self.repository.update_payment_status(
            event.order_id, PaymentStatus.FAILED.value,
        ))
        if not updated:
            raise RecordNotFoundError("payment", f"order_id: {event.order_id}")

        log.info("payment_marked_failed", order_id=event.order_id)

    async def on_refund_status(self, event: RefundStatusEvent, correlation_id: str) -> None:
        log = self._base_logger.bind(correlation_id=correlation_id)
        if event.refund_id is None:
            log.warning("webhook_missing_field", event_type=event.kind.value, field="refund_id")
            return

        updated = await self._bounded(self.repository.update_refund_status(
            event.refund_id, event.refund_status, processed_at=event.processed_at,
        ))
        if not updated:
            raise RecordNotFoundError("refund", f"refund_id: {event.refund_id}")

        log.info("refund_status_updated",
                 refund_id=event.refund_id,
                 refund_status=event.refund_status)

    async def on_settlement_status(self, event: SettlementStatusEvent, correlation_id: str) -> None:
        # Audit only
        self._base_logger.info("settlement_webhook_received",
                               correlation_id=correlation_id,
                               fields=sorted(event.payload.keys()))
