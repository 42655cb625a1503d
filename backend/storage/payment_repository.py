# storage/payment_repository.py
# ============================================================================
# CASHFREE PAYMENT GATEWAY - PAYMENT REPOSITORY
# ============================================================================
# Persistence interface for payments, refunds, settlements and the webhook
# audit log. PostgresPaymentRepository is the production store;
# InMemoryPaymentRepository backs tests and database-less local runs.
#
# Every call is independent and non-transactional, except the split
# settlement batch insert which is all-or-nothing.
# ============================================================================

import asyncio
from abc import ABC, abstractmethod
from collections import Counter
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional

import asyncpg

from database import Database
from schemas.payment_models import (
    Payment,
    Refund,
    Settlement,
    SplitSettlement,
    WebhookLog,
)


class RecordNotFoundError(LookupError):
    """Raised when a lookup by external identifier finds no row."""

    def __init__(self, entity: str, key: str):
        super().__init__(f"{entity} not found for {key}")
        self.entity = entity
        self.key = key


class PaymentRepository(ABC):
    """Store interface used by the payment service and the webhook projector"""

    # Payments
    @abstractmethod
    async def create_payment(self, payment: Payment) -> Payment:
        pass

    @abstractmethod
    async def get_payment_by_order_id(self, order_id: str) -> Payment:
        """Raises RecordNotFoundError when the order is unknown."""
        pass

    @abstractmethod
    async def update_payment_status(
        self,
        order_id: str,
        status: str,
        cf_payment_id: Optional[str] = None,
        payment_method: Optional[str] = None,
        payment_time: Optional[datetime] = None,
    ) -> bool:
        """Overwrite status and payment fields. Returns False if no row matched."""
        pass

    @abstractmethod
    async def list_payments(self, limit: int, offset: int) -> List[Payment]:
        pass

    @abstractmethod
    async def count_payments_by_status(self) -> Dict[str, int]:
        pass

    # Refunds
    @abstractmethod
    async def create_refund(self, refund: Refund) -> Refund:
        pass

    @abstractmethod
    async def get_refund_by_id(self, refund_id: str) -> Refund:
        pass

    @abstractmethod
    async def update_refund_status(
        self,
        refund_id: str,
        status: Optional[str],
        processed_at: Optional[datetime] = None,
    ) -> bool:
        """A None status leaves the stored status untouched."""
        pass

    # Settlements
    @abstractmethod
    async def create_split_settlements(self, splits: List[SplitSettlement]) -> List[SplitSettlement]:
        pass

    @abstractmethod
    async def create_settlement(self, settlement: Settlement) -> Settlement:
        pass

    @abstractmethod
    async def get_settlement_by_id(self, settlement_id: str) -> Settlement:
        pass

    # Webhook audit log
    @abstractmethod
    async def append_webhook_log(self, record: WebhookLog) -> WebhookLog:
        pass

    @abstractmethod
    async def list_webhook_logs(
        self, limit: int = 50, event_type: Optional[str] = None
    ) -> List[WebhookLog]:
        pass


# ============================================================================
# POSTGRES
# ============================================================================

_PAYMENT_COLUMNS = """
    id, order_id, cf_order_id, amount, currency, status, payment_method,
    customer_id, customer_name, customer_email, customer_phone, description,
    payment_url, cf_payment_id, payment_time, created_at, updated_at
"""

_REFUND_COLUMNS = """
    id, refund_id, cf_refund_id, order_id, cf_order_id, amount, status,
    reason, processed_at, created_at, updated_at
"""

_SETTLEMENT_COLUMNS = """
    id, settlement_id, order_id, cf_order_id, amount, status, utr,
    settled_at, created_at, updated_at
"""


def _row_to_dict(row: asyncpg.Record) -> Dict[str, Any]:
    """asyncpg returns NUMERIC as Decimal; the models use float."""
    return {k: float(v) if isinstance(v, Decimal) else v for k, v in dict(row).items()}


class PostgresPaymentRepository(PaymentRepository):
    """asyncpg-backed repository"""

    def __init__(self, db: Database):
        self.db = db

    async def create_payment(self, payment: Payment) -> Payment:
        await self.db.execute(
            """
            INSERT INTO payments (
                id, order_id, cf_order_id, amount, currency, status,
                customer_id, customer_name, customer_email, customer_phone,
                description, payment_url, created_at, updated_at
            ) VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11, $12, $13, $14)
            """,
            payment.id, payment.order_id, payment.cf_order_id, payment.amount,
            payment.currency, payment.status, payment.customer_id, payment.customer_name,
            payment.customer_email, payment.customer_phone, payment.description,
            payment.payment_url, payment.created_at, payment.updated_at,
        )
        return payment

    async def get_payment_by_order_id(self, order_id: str) -> Payment:
        row = await self.db.fetch_one(
            f"SELECT {_PAYMENT_COLUMNS} FROM payments WHERE order_id = $1", order_id
        )
        if row is None:
            raise RecordNotFoundError("payment", f"order_id: {order_id}")
        return Payment(**_row_to_dict(row))

    async def update_payment_status(
        self,
        order_id: str,
        status: str,
        cf_payment_id: Optional[str] = None,
        payment_method: Optional[str] = None,
        payment_time: Optional[datetime] = None,
    ) -> bool:
        result = await self.db.execute(
            """
            UPDATE payments
            SET status = $1, cf_payment_id = $2, payment_method = $3,
                payment_time = $4, updated_at = NOW()
            WHERE order_id = $5
            """,
            status, cf_payment_id, payment_method, payment_time, order_id,
        )
        return result != "UPDATE 0"

    async def list_payments(self, limit: int, offset: int) -> List[Payment]:
        rows = await self.db.fetch_all(
            f"""
            SELECT {_PAYMENT_COLUMNS} FROM payments
            ORDER BY created_at DESC
            LIMIT $1 OFFSET $2
            """,
            limit, offset,
        )
        return [Payment(**_row_to_dict(row)) for row in rows]

    async def count_payments_by_status(self) -> Dict[str, int]:
        rows = await self.db.fetch_all(
            "SELECT status, COUNT(*) AS total FROM payments GROUP BY status"
        )
        return {row["status"]: row["total"] for row in rows}

    async def create_refund(self, refund: Refund) -> Refund:
        await self.db.execute(
            """
            INSERT INTO refunds (
                id, refund_id, cf_refund_id, order_id, cf_order_id, amount,
                status, reason, created_at, updated_at
            ) VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10)
            """,
            refund.id, refund.refund_id, refund.cf_refund_id, refund.order_id,
            refund.cf_order_id, refund.amount, refund.status, refund.reason,
            refund.created_at, refund.updated_at,
        )
        return refund

    async def get_refund_by_id(self, refund_id: str) -> Refund:
        row = await self.db.fetch_one(
            f"SELECT {_REFUND_COLUMNS} FROM refunds WHERE refund_id = $1", refund_id
        )
        if row is None:
            raise RecordNotFoundError("refund", f"refund_id: {refund_id}")
        return Refund(**_row_to_dict(row))

    async def update_refund_status(
        self,
        refund_id: str,
        status: Optional[str],
        processed_at: Optional[datetime] = None,
    ) -> bool:
        result = await self.db.execute(
            """
            UPDATE refunds
            SET status = COALESCE($1, status), processed_at = $2, updated_at = NOW()
            WHERE refund_id = $3
            """,
            status, processed_at, refund_id,
        )
        return result != "UPDATE 0"

    async def create_split_settlements(self, splits: List[SplitSettlement]) -> List[SplitSettlement]:
        async with self.db.acquire() as conn:
            async with conn.transaction():
                await conn.executemany(
                    """
                    INSERT INTO split_settlements (
                        id, order_id, cf_order_id, vendor_id, amount, percentage,
                        split_type, status, created_at, updated_at
                    ) VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10)
                    """,
                    [
                        (
                            s.id, s.order_id, s.cf_order_id, s.vendor_id, s.amount,
                            s.percentage, s.split_type.value, s.status,
                            s.created_at, s.updated_at,
                        )
                        for s in splits
                    ],
                )
        return splits

    async def create_settlement(self, settlement: Settlement) -> Settlement:
        await self.db.execute(
            """
            INSERT INTO settlements (
                id, settlement_id, order_id, cf_order_id, amount, status,
                utr, settled_at, created_at, updated_at
            ) VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10)
            """,
            settlement.id, settlement.settlement_id, settlement.order_id,
            settlement.cf_order_id, settlement.amount, settlement.status,
            settlement.utr, settlement.settled_at, settlement.created_at,
            settlement.updated_at,
        )
        return settlement

    async def get_settlement_by_id(self, settlement_id: str) -> Settlement:
        row = await self.db.fetch_one(
            f"SELECT {_SETTLEMENT_COLUMNS} FROM settlements WHERE settlement_id = $1",
            settlement_id,
        )
        if row is None:
            raise RecordNotFoundError("settlement", f"settlement_id: {settlement_id}")
        return Settlement(**_row_to_dict(row))

    async def append_webhook_log(self, record: WebhookLog) -> WebhookLog:
        await self.db.execute(
            """
            INSERT INTO webhooks (id, event_type, order_id, payload, status, created_at)
            VALUES ($1, $2, $3, $4, $5, $6)
            """,
            record.id, record.event_type, record.order_id,
            record.raw_payload, record.status, record.created_at,
        )
        return record

    async def list_webhook_logs(
        self, limit: int = 50, event_type: Optional[str] = None
    ) -> List[WebhookLog]:
        if event_type:
            rows = await self.db.fetch_all(
                """
                SELECT id, event_type, order_id, payload, status, created_at
                FROM webhooks WHERE event_type = $1
                ORDER BY created_at DESC LIMIT $2
                """,
                event_type, limit,
            )
        else:
            rows = await self.db.fetch_all(
                """
                SELECT id, event_type, order_id, payload, status, created_at
                FROM webhooks ORDER BY created_at DESC LIMIT $1
                """,
                limit,
            )
        return [
            WebhookLog(
                id=row["id"],
                event_type=row["event_type"],
                order_id=row["order_id"],
                raw_payload=row["payload"],
                status=row["status"],
                created_at=row["created_at"],
            )
            for row in rows
        ]


# ============================================================================
# IN-MEMORY
# ============================================================================

class InMemoryPaymentRepository(PaymentRepository):
    """Lock-guarded in-memory repository"""

    def __init__(self):
        self.payments: Dict[str, Payment] = {}
        self.refunds: Dict[str, Refund] = {}
        self.settlements: Dict[str, Settlement] = {}
        self.split_settlements: List[SplitSettlement] = []
        self.webhook_logs: List[WebhookLog] = []
        self._lock = asyncio.Lock()

    async def create_payment(self, payment: Payment) -> Payment:
        async with self._lock:
            if payment.order_id in self.payments:
                raise ValueError(f"payment already exists for order_id: {payment.order_id}")
            self.payments[payment.order_id] = payment
            return payment

    async def get_payment_by_order_id(self, order_id: str) -> Payment:
        async with self._lock:
            payment = self.payments.get(order_id)
        if payment is None:
            raise RecordNotFoundError("payment", f"order_id: {order_id}")
        return payment.model_copy()

    async def update_payment_status(
        self,
        order_id: str,
        status: str,
        cf_payment_id: Optional[str] = None,
        payment_method: Optional[str] = None,
        payment_time: Optional[datetime] = None,
    ) -> bool:
        async with self._lock:
            payment = self.payments.get(order_id)
            if payment is None:
                return False
            self.payments[order_id] = payment.model_copy(update={
                "status": status,
                "cf_payment_id": cf_payment_id,
                "payment_method": payment_method,
                "payment_time": payment_time,
                "updated_at": datetime.now(timezone.utc),
            })
            return True

    async def list_payments(self, limit: int, offset: int) -> List[Payment]:
        async with self._lock:
            ordered = sorted(self.payments.values(), key=lambda p: p.created_at, reverse=True)
        return ordered[offset:offset + limit]

    async def count_payments_by_status(self) -> Dict[str, int]:
        async with self._lock:
            return dict(Counter(p.status for p in self.payments.values()))

    async def create_refund(self, refund: Refund) -> Refund:
        async with self._lock:
            self.refunds[refund.refund_id] = refund
            return refund

    async def get_refund_by_id(self, refund_id: str) -> Refund:
        async with self._lock:
            refund = self.refunds.get(refund_id)
        if refund is None:
            raise RecordNotFoundError("refund", f"refund_id: {refund_id}")
        return refund.model_copy()

    async def update_refund_status(
        self,
        refund_id: str,
        status: Optional[str],
        processed_at: Optional[datetime] = None,
    ) -> bool:
        async with self._lock:
            refund = self.refunds.get(refund_id)
            if refund is None:
                return False
            update: Dict[str, Any] = {
                "processed_at": processed_at,
                "updated_at": datetime.now(timezone.utc),
            }
            if status is not None:
                update["status"] = status
            self.refunds[refund_id] = refund.model_copy(update=update)
            return True

    async def create_split_settlements(self, splits: List[SplitSettlement]) -> List[SplitSettlement]:
        async with self._lock:
            self.split_settlements.extend(splits)
            return splits

    async def create_settlement(self, settlement: Settlement) -> Settlement:
        async with self._lock:
            self.settlements[settlement.settlement_id] = settlement
            return settlement

    async def get_settlement_by_id(self, settlement_id: str) -> Settlement:
        async with self._lock:
            settlement = self.settlements.get(settlement_id)
        if settlement is None:
            raise RecordNotFoundError("settlement", f"settlement_id: {settlement_id}")
        return settlement.model_copy()

    async def append_webhook_log(self, record: WebhookLog) -> WebhookLog:
        async with self._lock:
            self.webhook_logs.append(record)
            return record

    async def list_webhook_logs(
        self, limit: int = 50, event_type: Optional[str] = None
    ) -> List[WebhookLog]:
        async with self._lock:
            logs = [
                log for log in reversed(self.webhook_logs)
                if event_type is None or log.event_type == event_type
            ]
        return logs[:limit]
