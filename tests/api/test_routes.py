# tests/api/test_routes.py
"""
Тесты для HTTP API.
Жизненный цикл приложения не запускается: сервисы подставляются
в app.state поверх хранилища в памяти.
"""

from __future__ import annotations

from unittest.mock import AsyncMock

import pytest
from fastapi.testclient import TestClient

from fulfillment.api.app import create_app
from fulfillment.api.dependencies import ServiceContainer, build_services
from fulfillment.config import settings
from fulfillment.core.offers.service import OfferService
from fulfillment.core.orders.service import OrderService
from fulfillment.core.payments.gateway import AcceptAllVerifier, Sha512SignatureVerifier
from fulfillment.core.payments.service import PaymentService
from fulfillment.core.vouchers.service import VoucherService
from fulfillment.core.wallet.service import WalletLedger
from tests.fakes import (
    ADMIN_ID,
    CUSTOMER_ID,
    DELIVERY_LAT,
    DELIVERY_LON,
    DRIVER_USER_ID,
    MERCHANT_ID,
    OTHER_CUSTOMER_ID,
    InMemoryStorage,
)


API = settings.api.API_PREFIX

CUSTOMER = {"X-User-Id": str(CUSTOMER_ID)}
STRANGER = {"X-User-Id": str(OTHER_CUSTOMER_ID)}
ADMIN = {"X-User-Id": str(ADMIN_ID), "X-User-Role": "admin"}

ORDER_BODY = {
    "merchant_id": MERCHANT_ID,
    "items": [{"product_id": 10, "quantity": 2}],
    "delivery_address": "Jl. Sudirman 1",
    "delivery_latitude": DELIVERY_LAT,
    "delivery_longitude": DELIVERY_LON,
}


@pytest.fixture
def client(
    order_service: OrderService,
    offer_service: OfferService,
    voucher_service: VoucherService,
    wallet: WalletLedger,
    payment_service: PaymentService,
) -> TestClient:
    app = create_app()
    app.state.services = ServiceContainer(
        orders=order_service,
        offers=offer_service,
        vouchers=voucher_service,
        wallet=wallet,
        payments=payment_service,
    )
    return TestClient(app)


def place_order(client: TestClient, **overrides) -> dict:
    response = client.post(f"{API}/orders", json={**ORDER_BODY, **overrides}, headers=CUSTOMER)
    assert response.status_code == 201, response.text
    return response.json()


def move(client: TestClient, order_id: int, *statuses: str) -> None:
    for status in statuses:
        response = client.patch(f"{API}/orders/{order_id}/status", json={"status": status}, headers=ADMIN)
        assert response.status_code == 200, response.text


class TestBuildServices:
    """Тесты для сборки графа сервисов."""

    def test_builds_container(self, storage: InMemoryStorage, mock_job_queue: AsyncMock) -> None:
        services = build_services(storage, mock_job_queue, settings)

        assert isinstance(services.orders, OrderService)
        assert isinstance(services.payments, PaymentService)
        assert services.wallet is services.orders._wallet

    def test_explicit_verifier(self, storage: InMemoryStorage, mock_job_queue: AsyncMock) -> None:
        verifier = AcceptAllVerifier()
        services = build_services(storage, mock_job_queue, settings, verifier=verifier)
        assert services.payments._verifier is verifier


class TestHealth:
    def test_health_without_dependencies(self, client: TestClient) -> None:
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "healthy"
        assert response.json()["service"] == "fulfillment"


class TestOrderRoutes:
    """Тесты для маршрутов заказов."""

    def test_create_order(self, client: TestClient) -> None:
        order = place_order(client)

        assert order["status"] == "PENDING"
        assert order["customer_id"] == CUSTOMER_ID
        assert order["total_amount"] == 138200
        assert len(order["items"]) == 1

    def test_missing_actor_header(self, client: TestClient) -> None:
        response = client.post(f"{API}/orders", json=ORDER_BODY)

        assert response.status_code == 400
        assert response.json()["error"] == "VALIDATION_ERROR"

    def test_invalid_body(self, client: TestClient) -> None:
        response = client.post(f"{API}/orders", json={**ORDER_BODY, "items": []}, headers=CUSTOMER)

        body = response.json()
        assert response.status_code == 400
        assert body["error"] == "VALIDATION_ERROR"
        assert body["message"] == "Invalid request"
        assert body["details"]["errors"]

    def test_domain_error_body(self, client: TestClient) -> None:
        response = client.post(
            f"{API}/orders", json={**ORDER_BODY, "delivery_latitude": -6.4}, headers=CUSTOMER
        )

        assert response.status_code == 400
        assert response.json()["error"] == "OUT_OF_RANGE"

    def test_get_order_and_history(self, client: TestClient) -> None:
        order = place_order(client)

        fetched = client.get(f"{API}/orders/{order['id']}")
        history = client.get(f"{API}/orders/{order['id']}/history")

        assert fetched.json()["order_number"] == order["order_number"]
        assert [h["status"] for h in history.json()] == ["PENDING"]

    def test_unknown_order(self, client: TestClient) -> None:
        response = client.get(f"{API}/orders/404")

        assert response.status_code == 404
        assert response.json() == {"error": "NOT_FOUND", "message": "Order 404 not found", "details": {}}

    def test_update_status_forbidden(self, client: TestClient) -> None:
        order = place_order(client)

        response = client.patch(
            f"{API}/orders/{order['id']}/status", json={"status": "PAYMENT_PENDING"}, headers=STRANGER
        )

        assert response.status_code == 403
        assert response.json()["error"] == "FORBIDDEN"

    def test_invalid_transition(self, client: TestClient) -> None:
        order = place_order(client)

        response = client.patch(f"{API}/orders/{order['id']}/status", json={"status": "DELIVERED"}, headers=ADMIN)

        assert response.status_code == 400
        assert response.json()["error"] == "INVALID_TRANSITION"
        assert response.json()["details"] == {"current": "PENDING", "requested": "DELIVERED"}

    def test_customer_cannot_confirm_payment(self, client: TestClient) -> None:
        order = place_order(client)
        path = f"{API}/orders/{order['id']}/status"

        response = client.patch(path, json={"status": "PAYMENT_PENDING"}, headers=CUSTOMER)

        assert response.status_code == 403
        assert response.json()["details"] == {"status": "PAYMENT_PENDING"}
        assert client.get(f"{API}/orders/{order['id']}").json()["status"] == "PENDING"

    def test_driver_assigned_not_settable(self, client: TestClient) -> None:
        order = place_order(client)
        move(client, order["id"], "PAYMENT_PENDING", "CONFIRMED", "PREPARING", "READY_FOR_PICKUP")

        response = client.patch(
            f"{API}/orders/{order['id']}/status", json={"status": "DRIVER_ASSIGNED"}, headers=ADMIN
        )

        assert response.status_code == 400
        assert response.json()["error"] == "INVALID_OPERATION"

    def test_assign_driver_requires_admin(self, client: TestClient) -> None:
        order = place_order(client)
        move(client, order["id"], "PAYMENT_PENDING", "CONFIRMED", "PREPARING", "READY_FOR_PICKUP")
        path = f"{API}/orders/{order['id']}/assign-driver"

        denied = client.patch(path, json={"driver_id": DRIVER_USER_ID}, headers=CUSTOMER)
        assigned = client.patch(path, json={"driver_id": DRIVER_USER_ID}, headers=ADMIN)

        assert denied.status_code == 403
        assert assigned.status_code == 200
        assert assigned.json()["status"] == "DRIVER_ASSIGNED"
        assert assigned.json()["driver_id"] == DRIVER_USER_ID

    def test_cancel(self, client: TestClient) -> None:
        order = place_order(client)

        response = client.patch(
            f"{API}/orders/{order['id']}/cancel", json={"reason": "Changed my mind"}, headers=CUSTOMER
        )

        assert response.status_code == 200
        assert response.json()["order"]["status"] == "CANCELLED"
        assert response.json()["refunded_amount"] == 0


class TestOfferRoutes:
    """Тесты для маршрутов предложений."""

    def test_offer_and_accept(self, client: TestClient) -> None:
        order = place_order(client)
        move(client, order["id"], "PAYMENT_PENDING", "CONFIRMED", "PREPARING", "READY_FOR_PICKUP")

        created = client.post(
            f"{API}/offers",
            json={"order_id": order["id"], "driver_profile_id": 1, "proposed_fee": 12000},
            headers={"X-User-Id": str(DRIVER_USER_ID)},
        )
        assert created.status_code == 201
        offer = created.json()

        listed = client.get(f"{API}/orders/{order['id']}/offers")
        assert [o["id"] for o in listed.json()] == [offer["id"]]

        accepted = client.patch(f"{API}/offers/{offer['id']}/accept", headers=CUSTOMER)
        assert accepted.status_code == 200
        assert accepted.json()["order"]["driver_id"] == DRIVER_USER_ID
        assert accepted.json()["order"]["total_amount"] == 120000 + 12000 + 1000 + 1200
        assert accepted.json()["offer"]["status"] == "ACCEPTED"

    def test_offer_on_pending_order(self, client: TestClient) -> None:
        order = place_order(client)

        response = client.post(
            f"{API}/offers",
            json={"order_id": order["id"], "driver_profile_id": 1, "proposed_fee": 12000},
            headers={"X-User-Id": str(DRIVER_USER_ID)},
        )

        assert response.status_code == 400
        assert response.json()["error"] == "ORDER_NOT_BIDDABLE"


class TestVoucherRoutes:
    """Тесты для маршрутов ваучеров."""

    def test_validate(self, client: TestClient) -> None:
        response = client.post(
            f"{API}/vouchers/validate",
            json={"code": "SAVE10", "subtotal": 120000, "item_count": 2, "merchant_id": MERCHANT_ID},
            headers=CUSTOMER,
        )

        assert response.status_code == 200
        assert response.json()["discount"] == 8000

    def test_validate_rejected(self, client: TestClient) -> None:
        response = client.post(
            f"{API}/vouchers/validate", json={"code": "SAVE10", "subtotal": 1000}, headers=CUSTOMER
        )

        assert response.status_code == 400
        assert response.json()["error"] == "INVALID_VOUCHER"
        assert response.json()["details"] == {"reason": "MIN_PURCHASE_NOT_MET"}

    def test_available(self, client: TestClient) -> None:
        response = client.get(f"{API}/vouchers/available", params={"merchant_id": MERCHANT_ID}, headers=CUSTOMER)

        assert response.status_code == 200
        assert {v["code"] for v in response.json()} == {"SAVE10", "FREESHIP", "FLAT5K"}


class TestWalletRoutes:
    """Тесты для маршрутов кошелька."""

    @pytest.mark.parametrize(("headers", "expected"), [(CUSTOMER, 200), (ADMIN, 200), (STRANGER, 403)])
    def test_balance_access(self, client: TestClient, headers: dict, expected: int) -> None:
        response = client.get(f"{API}/wallet/{CUSTOMER_ID}/balance", headers=headers)

        assert response.status_code == expected
        if expected == 200:
            assert response.json()["balance"] == 0

    def test_transactions(self, client: TestClient) -> None:
        response = client.get(f"{API}/wallet/{CUSTOMER_ID}/transactions", params={"limit": 5}, headers=CUSTOMER)
        assert response.status_code == 200
        assert response.json() == []

    def test_transactions_limit_bounds(self, client: TestClient) -> None:
        response = client.get(f"{API}/wallet/{CUSTOMER_ID}/transactions", params={"limit": 500}, headers=CUSTOMER)
        assert response.status_code == 400

    def test_withdraw_below_minimum(self, client: TestClient) -> None:
        response = client.post(
            f"{API}/wallet/{DRIVER_USER_ID}/withdraw",
            json={"amount": 1000},
            headers={"X-User-Id": str(DRIVER_USER_ID)},
        )

        assert response.status_code == 400
        assert response.json()["details"] == {"min_withdrawal": 50000}

    def test_withdraw_other_wallet(self, client: TestClient) -> None:
        response = client.post(f"{API}/wallet/{DRIVER_USER_ID}/withdraw", json={"amount": 60000}, headers=CUSTOMER)
        assert response.status_code == 403

    def test_topup_by_admin(self, client: TestClient) -> None:
        response = client.post(
            f"{API}/wallet/{CUSTOMER_ID}/topup", json={"amount": 75000, "payment_id": 9}, headers=ADMIN
        )

        assert response.status_code == 201
        body = response.json()
        assert body["type"] == "TOPUP"
        assert body["balance_after"] == 75000
        assert body["reference_type"] == "payment"
        assert body["reference_id"] == 9
        balance = client.get(f"{API}/wallet/{CUSTOMER_ID}/balance", headers=CUSTOMER)
        assert balance.json()["balance"] == 75000

    def test_topup_own_wallet_forbidden(self, client: TestClient) -> None:
        response = client.post(f"{API}/wallet/{CUSTOMER_ID}/topup", json={"amount": 75000}, headers=CUSTOMER)
        assert response.status_code == 403


class TestPaymentWebhook:
    """Тесты для приёма уведомлений шлюза."""

    def test_settlement(self, client: TestClient, verifier: Sha512SignatureVerifier) -> None:
        order = place_order(client)
        number = order["order_number"]

        response = client.post(f"{API}/payment/webhook", json={
            "transaction_id": "tx-1",
            "order_id": number,
            "transaction_status": "settlement",
            "status_code": "200",
            "gross_amount": "138200.00",
            "signature_key": verifier.sign(number, "200", "138200.00"),
        })

        assert response.status_code == 200
        assert response.json()["processed"] is True
        assert client.get(f"{API}/orders/{order['id']}").json()["status"] == "CONFIRMED"

    def test_bad_signature_still_ok(self, client: TestClient) -> None:
        order = place_order(client)

        response = client.post(f"{API}/payment/webhook", json={
            "transaction_id": "tx-1",
            "order_id": order["order_number"],
            "transaction_status": "settlement",
            "signature_key": "forged",
        })

        assert response.status_code == 200
        assert response.json() == {"status": "ok", "processed": False, "message": "Invalid signature"}

    def test_malformed_body_still_ok(self, client: TestClient) -> None:
        response = client.post(
            f"{API}/payment/webhook", content=b"not json", headers={"Content-Type": "application/json"}
        )

        assert response.status_code == 200
        assert response.json() == {"status": "ok", "processed": False}
