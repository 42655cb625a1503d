# schemas/__init__.py
from schemas.payment_models import (
    Payment,
    PaymentStatus,
    Refund,
    Settlement,
    SplitSettlement,
    SplitType,
    WebhookLog,
    CreatePaymentSessionRequest,
    VerifyPaymentRequest,
    RefundRequest,
    SplitConfig,
    SplitSettlementRequest,
)

from schemas.webhook_events import (
    WebhookEventType,
    WebhookEnvelope,
    WebhookEvent,
    PaymentSuccessEvent,
    PaymentFailedEvent,
    RefundStatusEvent,
    SettlementStatusEvent,
    UnknownEvent,
    decode_event,
    parse_gateway_timestamp,
)

__all__ = [
    # Records
    "Payment",
    "PaymentStatus",
    "Refund",
    "Settlement",
    "SplitSettlement",
    "SplitType",
    "WebhookLog",
    # Request bodies
    "CreatePaymentSessionRequest",
    "VerifyPaymentRequest",
    "RefundRequest",
    "SplitConfig",
    "SplitSettlementRequest",
    # Webhook events
    "WebhookEventType",
    "WebhookEnvelope",
    "WebhookEvent",
    "PaymentSuccessEvent",
    "PaymentFailedEvent",
    "RefundStatusEvent",
    "SettlementStatusEvent",
    "UnknownEvent",
    "decode_event",
    "parse_gateway_timestamp",
]
