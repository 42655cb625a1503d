# storage/__init__.py
# ============================================================================
# CASHFREE PAYMENT GATEWAY - STORAGE MODULE
# ============================================================================
# Repository interface plus Postgres and in-memory implementations
# ============================================================================

from storage.payment_repository import (
    PaymentRepository,
    PostgresPaymentRepository,
    InMemoryPaymentRepository,
    RecordNotFoundError,
)

__all__ = [
    "PaymentRepository",
    "PostgresPaymentRepository",
    "InMemoryPaymentRepository",
    "RecordNotFoundError",
]
