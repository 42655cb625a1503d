# api/routes.py
# ============================================================================
# CASHFREE PAYMENT GATEWAY - REST ROUTES
# ============================================================================
# Handlers are thin: they resolve the service or webhook processor wired
# onto app.state and return its result. Error mapping lives in api/server.py.
# ============================================================================

from typing import Dict, Optional

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from schemas.payment_models import (
    CreatePaymentSessionRequest,
    RefundRequest,
    SplitSettlementRequest,
    VerifyPaymentRequest,
)
from services.payment_service import PaymentService
from webhooks.processor import WebhookProcessor

SERVICE_NAME = "Cashfree Payment Gateway"

router = APIRouter()


def get_payment_service(request: Request) -> PaymentService:
    return request.app.state.payment_service


def get_webhook_processor(request: Request) -> WebhookProcessor:
    return request.app.state.webhook_processor


# ============================================================================
# HEALTH
# ============================================================================

@router.get("/health")
async def health_check() -> Dict[str, str]:
    return {"status": "OK", "service": SERVICE_NAME}


# ============================================================================
# PAYMENTS
# ============================================================================

@router.post("/api/v1/payments/create-session")
async def create_payment_session(
    body: CreatePaymentSessionRequest,
    service: PaymentService = Depends(get_payment_service),
):
    return await service.create_session(body)


@router.post("/api/v1/payments/verify")
async def verify_payment(
    body: VerifyPaymentRequest,
    service: PaymentService = Depends(get_payment_service),
):
    return await service.verify_payment(body.order_id)


@router.get("/api/v1/payments")
async def list_payments(
    limit: Optional[str] = None,
    offset: Optional[str] = None,
    service: PaymentService = Depends(get_payment_service),
):
    # Query params stay strings so bad values fall back to defaults instead of 422
    return await service.list_payments(limit, offset)


@router.get("/api/v1/payments/{order_id}")
async def get_payment_details(
    order_id: str,
    service: PaymentService = Depends(get_payment_service),
):
    payment = await service.get_payment_details(order_id)
    return payment.model_dump(mode="json")


@router.post("/api/v1/payments/{order_id}/refund")
async def refund_payment(
    order_id: str,
    body: RefundRequest,
    service: PaymentService = Depends(get_payment_service),
):
    return await service.refund_payment(order_id, body.amount, body.reason)


@router.post("/api/v1/payments/{order_id}/cancel")
async def cancel_payment(
    order_id: str,
    service: PaymentService = Depends(get_payment_service),
):
    return await service.cancel_payment(order_id)


@router.post("/api/v1/payments/{order_id}/split")
async def create_split_settlement(
    order_id: str,
    body: SplitSettlementRequest,
    service: PaymentService = Depends(get_payment_service),
):
    return await service.create_split_settlement(order_id, body.splits)


# ============================================================================
# SETTLEMENTS / REFUNDS
# ============================================================================

@router.get("/api/v1/settlements/{settlement_id}")
async def get_settlement(
    settlement_id: str,
    service: PaymentService = Depends(get_payment_service),
):
    settlement = await service.get_settlement(settlement_id)
    return settlement.model_dump(mode="json")


@router.get("/api/v1/refunds/{refund_id}")
async def get_refund(
    refund_id: str,
    service: PaymentService = Depends(get_payment_service),
):
    refund = await service.get_refund(refund_id)
    return refund.model_dump(mode="json")


# ============================================================================
# WEBHOOKS
# ============================================================================

@router.post("/api/v1/webhook/cashfree")
async def cashfree_webhook(
    request: Request,
    processor: WebhookProcessor = Depends(get_webhook_processor),
) -> JSONResponse:
    """Signature is checked against the exact bytes received."""
    raw_body = await request.body()
    result = await processor.process(request.headers, raw_body)
    return JSONResponse(status_code=result.status_code, content=result.body)
