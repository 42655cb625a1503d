# services/__init__.py
# ============================================================================
# CASHFREE PAYMENT GATEWAY - SERVICES MODULE
# ============================================================================
# Order, refund and settlement operations
# ============================================================================

from services.payment_service import (
    PaymentService,
    PaymentServiceError,
    PaymentNotFoundError,
    parse_page_param,
)

__all__ = [
    "PaymentService",
    "PaymentServiceError",
    "PaymentNotFoundError",
    "parse_page_param",
]
