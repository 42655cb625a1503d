# schemas/payment_models.py
# ============================================================================
# CASHFREE PAYMENT GATEWAY - DOMAIN + API SCHEMAS
# ============================================================================
# Persisted records, inbound REST request bodies, and the Cashfree PG API
# request/response shapes.
# ============================================================================

from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Any, List, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, BeforeValidator, Field, HttpUrl, model_validator


def _coerce_id(value: Any) -> Any:
    """Cashfree returns some identifiers as numbers; store them as text."""
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(int(value)) if float(value).is_integer() else str(value)
    return value


GatewayId = Annotated[str, BeforeValidator(_coerce_id)]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ============================================================================
# SECTION 1: ENUMS
# ============================================================================

class PaymentStatus(str, Enum):
    CREATED = "CREATED"
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"
    PAID = "PAID"


class SplitType(str, Enum):
    AMOUNT = "AMOUNT"
    PERCENTAGE = "PERCENTAGE"


class WebhookLogStatus(str, Enum):
    RECEIVED = "RECEIVED"


# ============================================================================
# SECTION 2: PERSISTED RECORDS
# ============================================================================

class Payment(BaseModel):
    """A payment order created through this service."""
    id: UUID = Field(default_factory=uuid4)
    order_id: str
    cf_order_id: GatewayId
    amount: float
    currency: str = "INR"
    status: str = PaymentStatus.CREATED.value
    payment_method: Optional[str] = None
    customer_id: str
    customer_name: str
    customer_email: str
    customer_phone: str
    description: Optional[str] = None
    payment_url: Optional[str] = None
    cf_payment_id: Optional[GatewayId] = None
    payment_time: Optional[datetime] = None
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)


class Refund(BaseModel):
    id: UUID = Field(default_factory=uuid4)
    refund_id: str
    cf_refund_id: GatewayId
    order_id: str
    cf_order_id: GatewayId
    amount: float
    status: str = "PENDING"
    reason: Optional[str] = None
    processed_at: Optional[datetime] = None
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)


class Settlement(BaseModel):
    id: UUID = Field(default_factory=uuid4)
    settlement_id: GatewayId
    order_id: str
    cf_order_id: GatewayId
    amount: float
    status: str = "PENDING"
    utr: Optional[str] = None
    settled_at: Optional[datetime] = None
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)


class SplitSettlement(BaseModel):
    """One vendor's share of an order's settlement."""
    id: UUID = Field(default_factory=uuid4)
    order_id: str
    cf_order_id: GatewayId
    vendor_id: str
    amount: float
    percentage: Optional[float] = None
    split_type: SplitType
    status: str = "PENDING"
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)


class WebhookLog(BaseModel):
    """Append-only audit record of an authenticated webhook delivery."""
    id: UUID = Field(default_factory=uuid4)
    event_type: str
    order_id: Optional[str] = None
    raw_payload: str
    status: str = WebhookLogStatus.RECEIVED.value
    created_at: datetime = Field(default_factory=_utcnow)


# ============================================================================
# SECTION 3: REST REQUEST BODIES
# ============================================================================

EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"


class CreatePaymentSessionRequest(BaseModel):
    order_id: str = Field(..., min_length=1)
    amount: float = Field(..., gt=0)
    currency: str = Field(..., min_length=1)
    customer_id: str = Field(..., min_length=1)
    customer_name: str = Field(..., min_length=1)
    customer_email: str = Field(..., pattern=EMAIL_PATTERN)
    customer_phone: str = Field(..., min_length=1)
    description: Optional[str] = None
    return_url: HttpUrl
    notify_url: HttpUrl


class VerifyPaymentRequest(BaseModel):
    order_id: str = Field(..., min_length=1)


class RefundRequest(BaseModel):
    amount: float = Field(..., gt=0)
    reason: Optional[str] = None


class SplitConfig(BaseModel):
    vendor_id: str = Field(..., min_length=1)
    amount: Optional[float] = Field(default=None, gt=0)
    percentage: Optional[float] = Field(default=None, gt=0, le=100)

    @model_validator(mode="after")
    def _amount_or_percentage(self) -> "SplitConfig":
        if (self.amount is None) == (self.percentage is None):
            raise ValueError("each split needs exactly one of amount or percentage")
        return self

    @property
    def split_type(self) -> SplitType:
        return SplitType.AMOUNT if self.amount is not None else SplitType.PERCENTAGE


class SplitSettlementRequest(BaseModel):
    splits: List[SplitConfig] = Field(..., min_length=1)


# ============================================================================
# SECTION 4: CASHFREE PG API SHAPES
# ============================================================================

class CustomerDetails(BaseModel):
    customer_id: str
    customer_name: str
    customer_email: str
    customer_phone: str


class OrderMeta(BaseModel):
    return_url: Optional[str] = None
    notify_url: Optional[str] = None
    payment_methods: Optional[str] = None


class CashfreeOrderCreate(BaseModel):
    order_id: str
    order_amount: float
    order_currency: str
    customer_details: CustomerDetails
    order_meta: Optional[OrderMeta] = None
    order_note: Optional[str] = None
    order_expiry_time: Optional[str] = None


class CashfreeOrder(BaseModel):
    cf_order_id: GatewayId
    order_id: str
    order_status: str = ""
    order_amount: Optional[float] = None
    order_currency: Optional[str] = None
    order_expiry_time: Optional[str] = None
    payment_link: Optional[str] = None


class CashfreePayment(BaseModel):
    cf_payment_id: GatewayId
    order_id: Optional[str] = None
    payment_status: Optional[str] = None
    payment_amount: Optional[float] = None
    payment_time: Optional[datetime] = None
    payment_method: Optional[Any] = None
    payment_group: Optional[str] = None

    @property
    def payment_method_name(self) -> Optional[str]:
        """Cashfree sends the method as an object keyed by method name."""
        if isinstance(self.payment_method, dict) and self.payment_method:
            return next(iter(self.payment_method))
        if isinstance(self.payment_method, str):
            return self.payment_method
        return self.payment_group


class CashfreeRefundCreate(BaseModel):
    refund_amount: float
    refund_id: str
    refund_note: Optional[str] = None


class CashfreeRefund(BaseModel):
    cf_refund_id: GatewayId
    refund_id: str
    order_id: str
    refund_amount: float
    refund_status: str = ""
    refund_mode: Optional[str] = None
    processed_at: Optional[datetime] = None
    refund_note: Optional[str] = None


class SettlementSplit(BaseModel):
    vendor_id: str
    amount: Optional[float] = None
    percentage: Optional[float] = None


class CashfreeSettlementCreate(BaseModel):
    splits: List[SettlementSplit]


class CashfreeSettlement(BaseModel):
    cf_settlement_id: Optional[GatewayId] = None
    settlement_id: Optional[GatewayId] = None
    order_id: str
    settlement_status: str = ""
    splits: List[SettlementSplit] = Field(default_factory=list)
