"""Tests for the FastAPI surface."""

import asyncio
from dataclasses import replace
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient

from conftest import StaleReads
from settlement import StoreError
from settlement.http import create_app

D = Decimal


def payload(*items, **extra):
    body = {
        "items": [
            {"product_id": product_id, "size": "10", "quantity": quantity}
            for product_id, quantity in items
        ],
        "customer": {"email": "jordan@example.com", "name": "Jordan Doe"},
        "shipping_address": {
            "line1": "1 Court St",
            "city": "Brooklyn",
            "state": "NY",
            "postal_code": "11201",
        },
    }
    body.update(extra)
    return body


def money_of(value):
    return D(str(value))


@pytest.fixture
def client(store, config):
    return TestClient(create_app(store, config))


class TestCheckout:
    def test_creates_order(self, client, store):
        response = client.post(
            "/api/checkout",
            json=payload(("P1", 2), discount_code="SAVE10", gift_card_code="GC30"),
        )

        assert response.status_code == 201
        data = response.json()
        assert data["order_number"] == data["order"]["order_number"]
        assert data["replayed"] is False
        assert money_of(data["order"]["subtotal"]) == D("100.00")
        assert money_of(data["order"]["discount"]) == D("10.00")
        assert money_of(data["order"]["gift_card_amount"]) == D("30.00")
        assert money_of(data["order"]["total"]) == D("60.00")
        assert data["order"]["status"] == "pending"
        assert data["order"]["items"][0]["name"] == "Air Max 90"
        assert asyncio.run(store.get_product("P1")).quantity == 8

    def test_idempotency_key_replays(self, client, store):
        headers = {"Idempotency-Key": "checkout-123"}
        first = client.post("/api/checkout", json=payload(("P1", 1)), headers=headers)
        second = client.post("/api/checkout", json=payload(("P1", 1)), headers=headers)

        assert first.status_code == 201
        assert second.status_code == 200
        assert second.json()["replayed"] is True
        assert second.json()["order_number"] == first.json()["order_number"]
        assert asyncio.run(store.get_product("P1")).quantity == 9

    def test_notices_for_ignored_codes(self, client):
        response = client.post("/api/checkout", json=payload(("P1", 1), discount_code="NOPE"))

        assert response.status_code == 201
        assert response.json()["notices"] == ["Invalid discount code"]

    def test_insufficient_stock(self, client):
        response = client.post("/api/checkout", json=payload(("P2", 5)))

        assert response.status_code == 400
        error = response.json()["error"]
        assert error["kind"] == "insufficient_stock"
        assert error["product_name"] == "Jordan 1 Retro High"
        assert error["stage"] == "validating"

    def test_empty_cart_points_at_items(self, client):
        response = client.post("/api/checkout", json=payload())

        assert response.status_code == 400
        assert response.json()["error"]["kind"] == "empty_cart"
        assert response.json()["error"]["field"] == "items"

    def test_client_prices_are_rejected(self, client):
        body = payload()
        body["items"] = [{"product_id": "P1", "quantity": 1, "price": "0.01"}]

        response = client.post("/api/checkout", json=body)

        assert response.status_code == 400
        assert response.json()["error"]["kind"] == "invalid_request"

    def test_conflict_is_409(self, store, config):
        client = TestClient(create_app(store, config))
        assert client.post("/api/checkout", json=payload(("LAST", 1))).status_code == 201

        sold_out = asyncio.run(store.get_product("LAST"))
        stale = StaleReads(store, products=[replace(sold_out, quantity=1)])
        response = TestClient(create_app(stale, config)).post(
            "/api/checkout", json=payload(("LAST", 1))
        )

        assert response.status_code == 409
        assert response.json()["error"]["kind"] == "conflict"
        assert response.json()["error"]["step"] == "stock_decrement"

    def test_store_failure_is_500(self, config):
        class Down:
            def __getattr__(self, name):
                async def fail(*args, **kwargs):
                    raise StoreError("connection refused")

                return fail

        response = TestClient(create_app(Down(), config)).post(
            "/api/checkout", json=payload(("P1", 1))
        )

        assert response.status_code == 500
        assert response.json()["error"]["message"] == "Server error"


class TestQuote:
    def test_quote_does_not_mutate(self, client, store):
        response = client.post(
            "/api/checkout/quote", json={"items": [{"product_id": "P1", "quantity": 2}]}
        )

        assert response.status_code == 200
        assert money_of(response.json()["total"]) == D("100.00")
        assert asyncio.run(store.get_product("P1")).quantity == 10


class TestDiscountValidate:
    def test_valid(self, client):
        response = client.post("/api/discounts/validate", json={"code": "save10", "subtotal": "100"})

        assert response.status_code == 200
        data = response.json()
        assert data["valid"] is True
        assert data["discount"]["code"] == "SAVE10"
        assert data["discount"]["type"] == "percentage"
        assert money_of(data["discount"]["amount"]) == D("10.00")

    def test_unknown_code_is_404(self, client):
        response = client.post("/api/discounts/validate", json={"code": "NOPE", "subtotal": "100"})

        assert response.status_code == 404
        assert response.json() == {"valid": False, "error": "Invalid discount code"}

    def test_below_minimum(self, client):
        response = client.post(
            "/api/discounts/validate", json={"code": "BIG100", "subtotal": "99.99"}
        )

        assert response.status_code == 200
        assert response.json() == {
            "valid": False,
            "error": "Minimum purchase of $100.00 required",
        }

    def test_code_required(self, client):
        response = client.post("/api/discounts/validate", json={"subtotal": "10"})
        assert response.status_code == 400
        assert response.json() == {"error": "Code required"}


class TestGiftCards:
    def test_validate(self, client):
        response = client.post("/api/gift-cards/validate", json={"code": "gc30"})

        assert response.status_code == 200
        assert response.json()["valid"] is True
        assert money_of(response.json()["balance"]) == D("30.00")

    def test_validate_inactive(self, client):
        response = client.post("/api/gift-cards/validate", json={"code": "GC-OFF"})

        assert response.status_code == 200
        assert response.json() == {"valid": False, "error": "Gift card is not active"}

    def test_validate_unknown(self, client):
        response = client.post("/api/gift-cards/validate", json={"code": "NOPE"})
        assert response.status_code == 404

    def test_balance(self, client):
        response = client.post("/api/gift-cards/balance", json={"code": "GC-OFF"})

        assert response.status_code == 200
        assert money_of(response.json()["balance"]) == D("50.00")
        assert response.json()["status"] == "disabled"

    def test_balance_unknown(self, client):
        response = client.post("/api/gift-cards/balance", json={"code": "NOPE"})

        assert response.status_code == 404
        assert response.json() == {"error": "Gift card not found"}
