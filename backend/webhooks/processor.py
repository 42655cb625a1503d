# webhooks/processor.py
# ============================================================================
# CASHFREE WEBHOOK PROCESSOR
# ============================================================================
# Pipeline for one inbound delivery:
#   1. headers present          else MissingWebhookHeadersError (400)
#   2. signature verified       else InvalidWebhookSignatureError (401)
#   3. envelope decoded         else MalformedWebhookPayloadError (400)
#   4. audit record appended    (best effort)
#   5. event dispatched         (best effort)
#
# Once step 3 succeeds the result is always 200. Failures in steps 4 and 5
# are logged and collected on WebhookResult.failures.
# ============================================================================

import asyncio
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional

import structlog
from pydantic import ValidationError

from schemas.payment_models import WebhookLog
from schemas.webhook_events import WebhookEnvelope, decode_event
from storage.payment_repository import PaymentRepository
from webhooks import signature
from webhooks.errors import (
    InvalidWebhookSignatureError,
    MalformedWebhookPayloadError,
    MissingWebhookHeadersError,
)
from webhooks.projector import StatusProjector
from webhooks.router import WebhookRouter

SIGNATURE_HEADER = "x-webhook-signature"
TIMESTAMP_HEADER = "x-webhook-timestamp"


@dataclass
class WebhookResult:
    """Outcome of an accepted webhook"""
    event_type: str
    correlation_id: str
    log_id: Optional[uuid.UUID] = None
    handler: Optional[str] = None
    failures: List[str] = field(default_factory=list)
    status_code: int = 200

    @property
    def body(self) -> Dict[str, Any]:
        return {"status": "success"}

    @property
    def fully_applied(self) -> bool:
        return not self.failures


class WebhookProcessor:
    """
    Verifies, audits and projects Cashfree webhooks.

    Usage:
        processor = WebhookProcessor(repository, settings.webhook_secret)
        result = await processor.process(request.headers, await request.body())
    """

    def __init__(
        self,
        repository: PaymentRepository,
        secret: bytes,
        timeout: float = 5.0,
    ):
        self.repository = repository
        self._secret = secret
        self.timeout = timeout
        self.router = WebhookRouter()
        self.projector = StatusProjector(repository, timeout=timeout)
        self.projector.register(self.router)
        self._base_logger = structlog.get_logger().bind(component="webhook_processor")
        if not secret:
            self._base_logger.warning("webhook_secret_not_configured")

    async def process(self, headers: Mapping[str, str], raw_body: bytes) -> WebhookResult:
        """Raises WebhookRejectedError for request-fatal conditions"""
        correlation_id = str(uuid.uuid4())
        log = self._base_logger.bind(correlation_id=correlation_id)

        lowered = {k.lower(): v for k, v in headers.items()}
        provided_signature = lowered.get(SIGNATURE_HEADER, "")
        timestamp = lowered.get(TIMESTAMP_HEADER, "")
        if not provided_signature or not timestamp:
            log.warning("webhook_headers_missing",
                        has_signature=bool(provided_signature),
                        has_timestamp=bool(timestamp))
            raise MissingWebhookHeadersError()

        if not signature.verify(provided_signature, timestamp, raw_body, self._secret):
            log.warning("webhook_signature_invalid", timestamp=timestamp)
            raise InvalidWebhookSignatureError()

        try:
            envelope = WebhookEnvelope.model_validate_json(raw_body)
        except ValidationError as e:
            log.warning("webhook_parse_error", errors=e.error_count())
            raise MalformedWebhookPayloadError() from e

        result = WebhookResult(event_type=envelope.type, correlation_id=correlation_id)
        log = log.bind(event_type=envelope.type)
        log.info("webhook_received", order_id=envelope.order_id)

        # Audit record is written before dispatch
        record = WebhookLog(
            event_type=envelope.type,
            order_id=envelope.order_id,
            raw_payload=raw_body.decode("utf-8", errors="replace"),
        )
        try:
            await asyncio.wait_for(self.repository.append_webhook_log(record), timeout=self.timeout)
            result.log_id = record.id
        except Exception as e:
            log.error("webhook_log_failed", error=repr(e))
            result.failures.append(f"append_webhook_log: {e!r}")

        try:
            result.handler = await self.router.route(envelope.type, decode_event(envelope), correlation_id)
        except Exception as e:
            log.error("webhook_projection_failed", error=repr(e))
            result.failures.append(f"projection: {e!r}")

        log.info("webhook_processed", handler=result.handler, failures=len(result.failures))
        return result
