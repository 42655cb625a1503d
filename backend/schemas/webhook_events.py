# schemas/webhook_events.py
# ============================================================================
# CASHFREE PAYMENT GATEWAY - WEBHOOK EVENT SCHEMAS
# ============================================================================
# Webhook bodies are decoded in two stages:
#   1. WebhookEnvelope: only the discriminant (`type`) and the raw `data` map.
#      A body that fails this stage is malformed (HTTP 400).
#   2. The `data` map is decoded into the variant for `type`. This stage never
#      fails: wrongly typed or missing fields become None.
# ============================================================================

import re
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Dict, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator


class WebhookEventType(str, Enum):
    PAYMENT_SUCCESS = "PAYMENT_SUCCESS_WEBHOOK"
    PAYMENT_FAILED = "PAYMENT_FAILED_WEBHOOK"
    REFUND_STATUS = "REFUND_STATUS_WEBHOOK"
    SETTLEMENT_STATUS = "SETTLEMENT_STATUS_WEBHOOK"


RFC3339_PATTERN = re.compile(
    r"(?P<year>\d{4})-(?P<month>\d{2})-(?P<day>\d{2})"
    r"T(?P<hour>\d{2}):(?P<minute>\d{2}):(?P<second>\d{2})"
    r"(?:\.(?P<fraction>\d+))?"
    r"(?:(?P<utc>Z)|(?P<sign>[+-])(?P<offset_hour>\d{2}):(?P<offset_minute>[0-5]\d))",
    re.ASCII,
)


def parse_gateway_timestamp(value: Any) -> Optional[datetime]:
    """Parse an RFC 3339 timestamp, returning None for anything else.

    Only the full `YYYY-MM-DDTHH:MM:SS[.frac](Z|+HH:MM)` form is accepted.
    Fractions beyond microseconds are truncated.
    """
    if not isinstance(value, str):
        return None
    match = RFC3339_PATTERN.fullmatch(value)
    if match is None:
        return None

    fraction = (match["fraction"] or "")[:6].ljust(6, "0")
    try:
        if match["utc"]:
            tz = timezone.utc
        else:
            offset = timedelta(hours=int(match["offset_hour"]), minutes=int(match["offset_minute"]))
            tz = timezone(-offset if match["sign"] == "-" else offset)
        return datetime(
            int(match["year"]), int(match["month"]), int(match["day"]),
            int(match["hour"]), int(match["minute"]), int(match["second"]),
            int(fraction), tzinfo=tz,
        )
    except ValueError:
        return None


def _string_or_none(value: Any) -> Optional[str]:
    return value if isinstance(value, str) else None


# ============================================================================
# STAGE 1: ENVELOPE
# ============================================================================

class WebhookEnvelope(BaseModel):
    """Outer shape of a Cashfree webhook body."""
    model_config = ConfigDict(extra="ignore")

    type: str = ""
    data: Optional[Dict[str, Any]] = None

    @property
    def payload(self) -> Dict[str, Any]:
        return self.data or {}

    @property
    def order_id(self) -> Optional[str]:
        """Order id for the audit record, when the payload carries one."""
        return _string_or_none(self.payload.get("order_id"))


# ============================================================================
# STAGE 2: VARIANTS
# ============================================================================

class _LenientEvent(BaseModel):
    model_config = ConfigDict(extra="ignore", frozen=True)


class PaymentSuccessEvent(_LenientEvent):
    kind: WebhookEventType = WebhookEventType.PAYMENT_SUCCESS
    order_id: Optional[str] = None
    cf_payment_id: Optional[str] = None
    payment_method: Optional[str] = None
    payment_time: Optional[datetime] = None

    @field_validator("order_id", "cf_payment_id", "payment_method", mode="before")
    @classmethod
    def _strings_only(cls, value: Any) -> Optional[str]:
        return _string_or_none(value)

    @field_validator("payment_time", mode="before")
    @classmethod
    def _lenient_time(cls, value: Any) -> Optional[datetime]:
        return parse_gateway_timestamp(value)


class PaymentFailedEvent(_LenientEvent):
    kind: WebhookEventType = WebhookEventType.PAYMENT_FAILED
    order_id: Optional[str] = None

    @field_validator("order_id", mode="before")
    @classmethod
    def _strings_only(cls, value: Any) -> Optional[str]:
        return _string_or_none(value)


class RefundStatusEvent(_LenientEvent):
    kind: WebhookEventType = WebhookEventType.REFUND_STATUS
    refund_id: Optional[str] = None
    refund_status: Optional[str] = None
    processed_at: Optional[datetime] = None

    @field_validator("refund_id", "refund_status", mode="before")
    @classmethod
    def _strings_only(cls, value: Any) -> Optional[str]:
        return _string_or_none(value)

    @field_validator("processed_at", mode="before")
    @classmethod
    def _lenient_time(cls, value: Any) -> Optional[datetime]:
        return parse_gateway_timestamp(value)


class SettlementStatusEvent(_LenientEvent):
    kind: WebhookEventType = WebhookEventType.SETTLEMENT_STATUS
    payload: Dict[str, Any] = Field(default_factory=dict)


class UnknownEvent(_LenientEvent):
    event_type: str
    payload: Dict[str, Any] = Field(default_factory=dict)


WebhookEvent = Union[
    PaymentSuccessEvent,
    PaymentFailedEvent,
    RefundStatusEvent,
    SettlementStatusEvent,
    UnknownEvent,
]

_VARIANTS = {
    WebhookEventType.PAYMENT_SUCCESS.value: PaymentSuccessEvent,
    WebhookEventType.PAYMENT_FAILED.value: PaymentFailedEvent,
    WebhookEventType.REFUND_STATUS.value: RefundStatusEvent,
}


def decode_event(envelope: WebhookEnvelope) -> WebhookEvent:
    """Decode the envelope's data into the variant selected by its type."""
    data = envelope.payload
    if envelope.type == WebhookEventType.SETTLEMENT_STATUS.value:
        return SettlementStatusEvent(payload=data)

    variant = _VARIANTS.get(envelope.type)
    if variant is None:
        return UnknownEvent(event_type=envelope.type, payload=data)

    known = {name: data[name] for name in variant.model_fields if name != "kind" and name in data}
    return variant(**known)
