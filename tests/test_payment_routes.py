"""REST surface for payments, refunds and settlements."""

from __future__ import annotations

from datetime import datetime, timezone
from unittest.mock import AsyncMock

import pytest

from clients.cashfree_client import CashfreeAPIError, CashfreeTransportError
from schemas.payment_models import (
    CashfreeOrder,
    CashfreePayment,
    CashfreeRefund,
    CashfreeSettlement,
    Refund,
    SettlementSplit,
)

SESSION_REQUEST = {
    "order_id": "o1",
    "amount": 499.0,
    "currency": "INR",
    "customer_id": "cust_1",
    "customer_name": "Asha Rao",
    "customer_email": "asha@example.com",
    "customer_phone": "9999999999",
    "description": "Annual plan",
    "return_url": "https://shop.example.com/return",
    "notify_url": "https://shop.example.com/notify",
}


class TestHealthAndMiddleware:
    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"status": "OK", "service": "Cashfree Payment Gateway"}

    def test_timing_and_request_id_headers(self, client):
        response = client.get("/health", headers={"X-Request-ID": "req-123"})
        assert response.headers["X-Request-ID"] == "req-123"
        assert float(response.headers["X-Response-Time-Ms"]) >= 0

    def test_cors_preflight(self, client):
        response = client.options(
            "/api/v1/payments/create-session",
            headers={
                "Origin": "https://shop.example.com",
                "Access-Control-Request-Method": "POST",
                "Access-Control-Request-Headers": "Content-Type",
            },
        )
        assert response.status_code == 200
        assert response.headers["access-control-allow-origin"] in ("*", "https://shop.example.com")
        assert "POST" in response.headers["access-control-allow-methods"]


class TestCreateSession:
    def test_creates_order_and_persists_payment(self, client, repository, gateway):
        gateway.create_order.return_value = CashfreeOrder(
            cf_order_id="cf_o1", order_id="o1", order_status="ACTIVE",
            payment_link="https://payments.cashfree.com/o1",
        )

        response = client.post("/api/v1/payments/create-session", json=SESSION_REQUEST)

        assert response.status_code == 200
        assert response.json() == {
            "order_id": "o1",
            "cf_order_id": "cf_o1",
            "payment_link": "https://payments.cashfree.com/o1",
            "order_status": "ACTIVE",
            "amount": 499.0,
            "currency": "INR",
        }

        sent = gateway.create_order.await_args.args[0]
        assert sent.order_note == "Annual plan"
        assert sent.order_meta.notify_url == "https://shop.example.com/notify"
        expiry = datetime.fromisoformat(sent.order_expiry_time)
        hours_ahead = (expiry - datetime.now(timezone.utc)).total_seconds() / 3600
        assert 23.9 < hours_ahead <= 24

        stored = repository.payments["o1"]
        assert stored.status == "CREATED"
        assert stored.payment_url == "https://payments.cashfree.com/o1"

    @pytest.mark.parametrize("field,value", [
        ("amount", 0),
        ("customer_email", "not-an-email"),
        ("return_url", "nope"),
    ])
    def test_invalid_body_is_400(self, client, gateway, field, value):
        response = client.post("/api/v1/payments/create-session", json={**SESSION_REQUEST, field: value})

        assert response.status_code == 400
        assert field in response.json()["error"]
        gateway.create_order.assert_not_awaited()

    def test_missing_field_is_400(self, client):
        body = {k: v for k, v in SESSION_REQUEST.items() if k != "customer_phone"}
        response = client.post("/api/v1/payments/create-session", json=body)
        assert response.status_code == 400

    def test_gateway_failure_is_500(self, client, repository, gateway):
        gateway.create_order.side_effect = CashfreeAPIError(400, "bad request", "create order")

        response = client.post("/api/v1/payments/create-session", json=SESSION_REQUEST)

        assert response.status_code == 500
        assert response.json() == {"error": "Failed to create payment session"}
        assert repository.payments == {}

    def test_store_failure_is_500(self, client, repository, gateway):
        gateway.create_order.return_value = CashfreeOrder(cf_order_id="cf_o1", order_id="o1")
        repository.create_payment = AsyncMock(side_effect=RuntimeError("db down"))

        response = client.post("/api/v1/payments/create-session", json=SESSION_REQUEST)

        assert response.status_code == 500
        assert response.json() == {"error": "Failed to save payment"}


class TestVerifyAndDetails:
    def test_verify_paid_order(self, client, repository, gateway, make_payment):
        make_payment("o1")
        gateway.get_order_status.return_value = CashfreeOrder(
            cf_order_id="cf_o1", order_id="o1", order_status="PAID", order_amount=1000.0,
        )
        gateway.get_payments.return_value = CashfreePayment(
            cf_payment_id="p1",
            payment_amount=1000.0,
            payment_time=datetime(2024, 1, 1, tzinfo=timezone.utc),
            payment_method={"card": {"card_network": "visa"}},
        )

        response = client.post("/api/v1/payments/verify", json={"order_id": "o1"})

        assert response.status_code == 200
        body = response.json()
        assert body["order_status"] == "PAID"
        assert body["cf_payment_id"] == "p1"
        assert body["payment_method"] == "card"
        assert body["payment_amount"] == 1000.0

        stored = repository.payments["o1"]
        assert stored.status == "PAID"
        assert stored.cf_payment_id == "p1"
        assert stored.payment_method == "card"

    def test_verify_unpaid_skips_payment_lookup(self, client, gateway, make_payment):
        make_payment("o1")
        gateway.get_order_status.return_value = CashfreeOrder(cf_order_id="cf_o1", order_id="o1",
                                                              order_status="ACTIVE")

        response = client.post("/api/v1/payments/verify", json={"order_id": "o1"})

        assert response.status_code == 200
        assert "cf_payment_id" not in response.json()
        gateway.get_payments.assert_not_awaited()

    def test_verify_survives_store_failure(self, client, repository, gateway):
        gateway.get_order_status.return_value = CashfreeOrder(cf_order_id="cf_o1", order_id="o1",
                                                              order_status="ACTIVE")
        repository.update_payment_status = AsyncMock(side_effect=RuntimeError("db down"))

        response = client.post("/api/v1/payments/verify", json={"order_id": "o1"})

        assert response.status_code == 200

    def test_verify_gateway_failure(self, client, gateway):
        gateway.get_order_status.side_effect = CashfreeTransportError("get order status", OSError("down"))

        response = client.post("/api/v1/payments/verify", json={"order_id": "o1"})

        assert response.status_code == 500
        assert response.json() == {"error": "Failed to verify payment"}

    def test_details_not_found(self, client):
        response = client.get("/api/v1/payments/missing")
        assert response.status_code == 404
        assert response.json() == {"error": "Payment not found"}

    def test_details_write_back_status_drift(self, client, repository, gateway, make_payment):
        make_payment("o1")
        gateway.get_order_status.return_value = CashfreeOrder(cf_order_id="cf_o1", order_id="o1",
                                                              order_status="EXPIRED")

        response = client.get("/api/v1/payments/o1")

        assert response.status_code == 200
        assert response.json()["status"] == "EXPIRED"
        assert repository.payments["o1"].status == "EXPIRED"

    def test_details_fall_back_to_stored_record(self, client, gateway, make_payment):
        make_payment("o1")
        gateway.get_order_status.side_effect = CashfreeAPIError(500, "oops")

        response = client.get("/api/v1/payments/o1")

        assert response.status_code == 200
        assert response.json()["status"] == "CREATED"
        assert response.json()["order_id"] == "o1"


class TestRefundAndCancel:
    def test_refund(self, client, repository, gateway, make_payment):
        make_payment("o1")

        async def refund(order_id, request):
            return CashfreeRefund(cf_refund_id="cfr1", refund_id=request.refund_id, order_id=order_id,
                                  refund_amount=request.refund_amount, refund_status="PENDING")

        gateway.refund_payment.side_effect = refund

        response = client.post("/api/v1/payments/o1/refund", json={"amount": 100.0, "reason": "damaged"})

        assert response.status_code == 200
        body = response.json()
        assert body["refund_id"].startswith("refund_o1_")
        assert body["refund_id"].rsplit("_", 1)[1].isdigit()
        assert body["refund_status"] == "PENDING"

        stored = repository.refunds[body["refund_id"]]
        assert stored.cf_order_id == "cf_o1"
        assert stored.reason == "damaged"

        fetched = client.get(f"/api/v1/refunds/{body['refund_id']}")
        assert fetched.status_code == 200
        assert fetched.json()["amount"] == 100.0

    def test_refund_for_unknown_payment(self, client, gateway):
        gateway.refund_payment.return_value = CashfreeRefund(
            cf_refund_id="cfr1", refund_id="r", order_id="ghost", refund_amount=1.0,
        )
        response = client.post("/api/v1/payments/ghost/refund", json={"amount": 1.0})
        assert response.status_code == 404

    def test_refund_requires_positive_amount(self, client):
        response = client.post("/api/v1/payments/o1/refund", json={"amount": -5})
        assert response.status_code == 400

    def test_refund_lookup_not_found(self, client):
        response = client.get("/api/v1/refunds/nope")
        assert response.status_code == 404
        assert response.json() == {"error": "Refund not found"}

    def test_cancel(self, client, repository, gateway, make_payment):
        make_payment("o1")

        response = client.post("/api/v1/payments/o1/cancel")

        assert response.status_code == 200
        assert response.json() == {
            "order_id": "o1",
            "status": "CANCELLED",
            "message": "Payment cancelled successfully",
        }
        gateway.cancel_order.assert_awaited_once_with("o1")
        assert repository.payments["o1"].status == "CANCELLED"

    def test_cancel_gateway_failure(self, client, repository, gateway, make_payment):
        make_payment("o1")
        gateway.cancel_order.side_effect = CashfreeAPIError(400, "order already paid")

        response = client.post("/api/v1/payments/o1/cancel")

        assert response.status_code == 500
        assert repository.payments["o1"].status == "CREATED"


class TestSplitSettlement:
    def _settlement_response(self, splits):
        return CashfreeSettlement(
            cf_settlement_id="cfs1", settlement_id="s1", order_id="o1",
            settlement_status="PENDING", splits=splits,
        )

    def test_percentage_and_amount_splits(self, client, repository, gateway, make_payment):
        make_payment("o1", amount=1000.0)
        gateway.create_settlement.return_value = self._settlement_response([
            SettlementSplit(vendor_id="v1", percentage=30.0),
            SettlementSplit(vendor_id="v2", amount=200.0),
        ])

        response = client.post("/api/v1/payments/o1/split", json={"splits": [
            {"vendor_id": "v1", "percentage": 30},
            {"vendor_id": "v2", "amount": 200},
        ]})

        assert response.status_code == 200
        assert response.json()["settlement_id"] == "s1"

        rows = {row.vendor_id: row for row in repository.split_settlements}
        assert rows["v1"].split_type.value == "PERCENTAGE"
        assert rows["v1"].amount == pytest.approx(300.0)
        assert rows["v1"].percentage == 30.0
        assert rows["v2"].split_type.value == "AMOUNT"
        assert rows["v2"].amount == 200.0
        assert rows["v2"].percentage is None

        settlement = client.get("/api/v1/settlements/s1")
        assert settlement.status_code == 200
        assert settlement.json()["amount"] == pytest.approx(500.0)
        assert settlement.json()["cf_order_id"] == "cf_o1"

    @pytest.mark.parametrize("split", [
        {"vendor_id": "v1"},
        {"vendor_id": "v1", "amount": 10, "percentage": 10},
        {"vendor_id": "v1", "percentage": 150},
    ])
    def test_invalid_split_is_400(self, client, gateway, make_payment, split):
        make_payment("o1")
        response = client.post("/api/v1/payments/o1/split", json={"splits": [split]})
        assert response.status_code == 400
        gateway.create_settlement.assert_not_awaited()

    def test_empty_splits_is_400(self, client, make_payment):
        make_payment("o1")
        response = client.post("/api/v1/payments/o1/split", json={"splits": []})
        assert response.status_code == 400

    def test_unknown_payment_is_404(self, client, gateway):
        response = client.post("/api/v1/payments/ghost/split",
                               json={"splits": [{"vendor_id": "v1", "amount": 1}]})
        assert response.status_code == 404
        gateway.create_settlement.assert_not_awaited()

    def test_store_failure_after_gateway_success(self, client, repository, gateway, make_payment):
        make_payment("o1")
        gateway.create_settlement.return_value = self._settlement_response([])
        repository.create_split_settlements = AsyncMock(side_effect=RuntimeError("db down"))

        response = client.post("/api/v1/payments/o1/split",
                               json={"splits": [{"vendor_id": "v1", "amount": 1}]})

        assert response.status_code == 200

    def test_settlement_not_found(self, client):
        response = client.get("/api/v1/settlements/missing")
        assert response.status_code == 404
        assert response.json() == {"error": "Settlement not found"}


class TestListPayments:
    @pytest.fixture()
    def seeded(self, make_payment):
        for i in range(12):
            make_payment(f"o{i}", created_at=datetime(2024, 1, 1, i, tzinfo=timezone.utc))

    def test_defaults(self, client, seeded):
        body = client.get("/api/v1/payments").json()
        assert body["limit"] == 10
        assert body["offset"] == 0
        assert body["count"] == 10
        assert body["payments"][0]["order_id"] == "o11"

    def test_offset(self, client, seeded):
        body = client.get("/api/v1/payments", params={"limit": 5, "offset": 10}).json()
        assert body["count"] == 2
        assert [p["order_id"] for p in body["payments"]] == ["o1", "o0"]

    @pytest.mark.parametrize("limit,offset,expected", [
        ("abc", "0", (10, 0)),
        ("0", "0", (10, 0)),
        ("-3", "-1", (10, 0)),
        ("500", "x", (100, 0)),
        ("25", "4", (25, 4)),
    ])
    def test_lenient_parsing(self, client, limit, offset, expected):
        body = client.get("/api/v1/payments", params={"limit": limit, "offset": offset}).json()
        assert (body["limit"], body["offset"]) == expected

    def test_store_failure(self, client, repository):
        repository.list_payments = AsyncMock(side_effect=RuntimeError("db down"))
        response = client.get("/api/v1/payments")
        assert response.status_code == 500
        assert response.json() == {"error": "Failed to retrieve payments"}
