"""Shared fixtures for the payment gateway test suite."""

from __future__ import annotations

import json
from typing import Any, Callable, Dict
from unittest.mock import AsyncMock

import pytest
from fastapi.testclient import TestClient

from api.server import create_app
from clients.cashfree_client import CashfreeClient
from config import Settings
from schemas.payment_models import Payment
from storage.payment_repository import InMemoryPaymentRepository
from webhooks.signature import sign

WEBHOOK_SECRET = "cf-test-secret"
WEBHOOK_TIMESTAMP = "1704067200"


@pytest.fixture()
def settings() -> Settings:
    return Settings(
        cashfree_client_id="cf-test-id",
        cashfree_client_secret=WEBHOOK_SECRET,
        db_operation_timeout=0.5,
        db_list_timeout=0.5,
        cashfree_max_retries=2,
        cashfree_retry_wait=0.0,
    )


@pytest.fixture()
def repository() -> InMemoryPaymentRepository:
    return InMemoryPaymentRepository()


@pytest.fixture()
def gateway() -> AsyncMock:
    """Cashfree client double; async methods are AsyncMocks."""
    return AsyncMock(spec=CashfreeClient)


@pytest.fixture()
def client(settings, repository, gateway):
    app = create_app(settings, repository=repository, gateway=gateway)
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture()
def make_payment(repository) -> Callable[..., Payment]:
    """Insert a payment row directly into the in-memory store."""
    def _make(order_id: str = "o1", **overrides: Any) -> Payment:
        fields: Dict[str, Any] = {
            "order_id": order_id,
            "cf_order_id": f"cf_{order_id}",
            "amount": 1000.0,
            "currency": "INR",
            "customer_id": "cust_1",
            "customer_name": "Asha Rao",
            "customer_email": "asha@example.com",
            "customer_phone": "9999999999",
        }
        fields.update(overrides)
        payment = Payment(**fields)
        repository.payments[order_id] = payment
        return payment
    return _make


@pytest.fixture()
def webhook_body() -> Callable[..., bytes]:
    def _body(event_type: str, data: Any = None) -> bytes:
        return json.dumps({"type": event_type, "data": data if data is not None else {}}).encode()
    return _body


@pytest.fixture()
def signed_headers() -> Callable[..., Dict[str, str]]:
    """Headers Cashfree would send for a given raw body."""
    def _headers(raw_body: bytes, timestamp: str = WEBHOOK_TIMESTAMP, secret: str = WEBHOOK_SECRET) -> Dict[str, str]:
        return {
            "x-webhook-signature": sign(secret.encode(), timestamp, raw_body),
            "x-webhook-timestamp": timestamp,
            "content-type": "application/json",
        }
    return _headers
