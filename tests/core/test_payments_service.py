# tests/core/test_payments_service.py
"""
Тесты для обработки уведомлений платёжного шлюза.
"""

from __future__ import annotations

import hashlib
from typing import Optional
from unittest.mock import AsyncMock

import pytest

from fulfillment.common.constants import OrderStatus, PaymentStatus
from fulfillment.core.orders.models import Order
from fulfillment.core.orders.service import OrderService
from fulfillment.core.payments.gateway import AcceptAllVerifier, Sha512SignatureVerifier
from fulfillment.core.payments.models import GatewayNotification
from fulfillment.core.payments.service import PaymentService, map_gateway_status
from tests.fakes import CUSTOMER_ID, NOW, SERVER_KEY, InMemoryStorage, make_cart


def notification(
    verifier: Sha512SignatureVerifier,
    order_number: str,
    status: str,
    transaction_id: str = "tx-1",
    fraud_status: Optional[str] = None,
    gross_amount: str = "138200.00",
    status_code: str = "200",
) -> GatewayNotification:
    return GatewayNotification(
        transaction_id=transaction_id,
        order_id=order_number,
        transaction_status=status,
        fraud_status=fraud_status,
        status_code=status_code,
        gross_amount=gross_amount,
        signature_key=verifier.sign(order_number, status_code, gross_amount),
    )


async def place_order(order_service: OrderService) -> Order:
    return await order_service.create_order(CUSTOMER_ID, make_cart())


class TestMapGatewayStatus:
    """Тесты для перевода статусов шлюза."""

    @pytest.mark.parametrize(
        ("status", "fraud", "expected"),
        [
            ("capture", None, (PaymentStatus.SUCCESS, OrderStatus.CONFIRMED)),
            ("capture", "accept", (PaymentStatus.SUCCESS, OrderStatus.CONFIRMED)),
            ("capture", "challenge", (PaymentStatus.PROCESSING, OrderStatus.PAYMENT_PENDING)),
            ("settlement", None, (PaymentStatus.SUCCESS, OrderStatus.CONFIRMED)),
            ("SETTLEMENT", None, (PaymentStatus.SUCCESS, OrderStatus.CONFIRMED)),
            ("pending", None, (PaymentStatus.PENDING, OrderStatus.PAYMENT_PENDING)),
            ("deny", None, (PaymentStatus.FAILED, OrderStatus.PAYMENT_FAILED)),
            ("cancel", None, (PaymentStatus.FAILED, OrderStatus.CANCELLED)),
            ("expire", None, (PaymentStatus.EXPIRED, OrderStatus.CANCELLED)),
            ("refund", None, (PaymentStatus.REFUNDED, None)),
            ("partial_refund", None, (PaymentStatus.REFUNDED, None)),
        ],
    )
    def test_known(self, status: str, fraud: Optional[str], expected: tuple) -> None:
        assert map_gateway_status(status, fraud) == expected

    def test_unknown(self) -> None:
        assert map_gateway_status("authorize") is None


class TestSignature:
    """Тесты для подписи уведомлений."""

    def test_sign(self, verifier: Sha512SignatureVerifier) -> None:
        expected = hashlib.sha512(f"ORD-1200138200.00{SERVER_KEY}".encode()).hexdigest()
        assert verifier.sign("ORD-1", "200", "138200.00") == expected

    def test_verify_ignores_case(self, verifier: Sha512SignatureVerifier) -> None:
        note = notification(verifier, "ORD-1", "settlement")
        upper = note.model_copy(update={"signature_key": note.signature_key.upper()})
        assert verifier.verify(upper) is True

    def test_tampered_amount(self, verifier: Sha512SignatureVerifier) -> None:
        note = notification(verifier, "ORD-1", "settlement")
        tampered = note.model_copy(update={"gross_amount": "1.00"})
        assert verifier.verify(tampered) is False

    def test_accept_all(self) -> None:
        note = GatewayNotification(transaction_id="t", order_id="ORD-1", transaction_status="settlement")
        assert AcceptAllVerifier().verify(note) is True


class TestHandleNotification:
    """Тесты для обработки уведомления."""

    @pytest.mark.asyncio
    async def test_settlement_confirms_order(
        self,
        storage: InMemoryStorage,
        order_service: OrderService,
        payment_service: PaymentService,
        verifier: Sha512SignatureVerifier,
        mock_job_queue: AsyncMock,
    ) -> None:
        """PENDING -> PAYMENT_PENDING -> CONFIRMED одним уведомлением."""
        order = await place_order(order_service)
        mock_job_queue.enqueue.reset_mock()

        result = await payment_service.handle_notification(notification(verifier, order.order_number, "settlement"))

        assert result.processed is True
        assert result.order_status == "CONFIRMED"
        assert result.payment_status == "SUCCESS"

        payment = storage.state.payments[order.id]
        assert payment.status == PaymentStatus.SUCCESS
        assert payment.reference == "tx-1"
        assert payment.paid_at == NOW

        history = [(h.status, h.notes) for h in storage.state.history if h.order_id == order.id]
        assert history == [
            (OrderStatus.PENDING, "Order created"),
            (OrderStatus.PAYMENT_PENDING, "Payment settlement"),
            (OrderStatus.CONFIRMED, "Payment settlement"),
        ]
        job = mock_job_queue.enqueue.call_args.args[0]
        assert job.payload["user_id"] == CUSTOMER_ID
        assert job.payload["title"] == "Order confirmed"

    @pytest.mark.asyncio
    async def test_pending_then_settlement(
        self,
        storage: InMemoryStorage,
        order_service: OrderService,
        payment_service: PaymentService,
        verifier: Sha512SignatureVerifier,
    ) -> None:
        order = await place_order(order_service)

        first = await payment_service.handle_notification(notification(verifier, order.order_number, "pending"))
        assert first.order_status == "PAYMENT_PENDING"
        assert storage.state.payments[order.id].status == PaymentStatus.PENDING

        second = await payment_service.handle_notification(notification(verifier, order.order_number, "settlement"))
        assert second.order_status == "CONFIRMED"
        assert set(storage.state.notifications) == {"tx-1:pending", "tx-1:settlement"}

    @pytest.mark.asyncio
    async def test_replay_is_ignored(
        self,
        storage: InMemoryStorage,
        order_service: OrderService,
        payment_service: PaymentService,
        verifier: Sha512SignatureVerifier,
    ) -> None:
        order = await place_order(order_service)
        note = notification(verifier, order.order_number, "settlement")
        await payment_service.handle_notification(note)
        history_size = len(storage.state.history)

        result = await payment_service.handle_notification(note)

        assert result.processed is False
        assert result.duplicate is True
        assert len(storage.state.history) == history_size

    @pytest.mark.asyncio
    async def test_invalid_signature(
        self,
        storage: InMemoryStorage,
        order_service: OrderService,
        payment_service: PaymentService,
        verifier: Sha512SignatureVerifier,
    ) -> None:
        order = await place_order(order_service)
        note = notification(verifier, order.order_number, "settlement").model_copy(
            update={"signature_key": "0" * 128}
        )

        result = await payment_service.handle_notification(note)

        assert result.processed is False
        assert result.message == "Invalid signature"
        assert storage.state.notifications == {}
        assert storage.state.orders[order.id].status == OrderStatus.PENDING

    @pytest.mark.asyncio
    async def test_unknown_order(self, payment_service: PaymentService, verifier: Sha512SignatureVerifier) -> None:
        result = await payment_service.handle_notification(notification(verifier, "ORD-MISSING", "settlement"))
        assert result.processed is False
        assert result.message == "Order not found"

    @pytest.mark.asyncio
    async def test_unknown_status(
        self,
        storage: InMemoryStorage,
        order_service: OrderService,
        payment_service: PaymentService,
        verifier: Sha512SignatureVerifier,
    ) -> None:
        order = await place_order(order_service)

        result = await payment_service.handle_notification(notification(verifier, order.order_number, "authorize"))

        assert result.processed is False
        assert result.message == "Unknown transaction status"
        assert storage.state.orders[order.id].status == OrderStatus.PENDING

    @pytest.mark.asyncio
    async def test_fraud_challenge_waits(
        self,
        storage: InMemoryStorage,
        order_service: OrderService,
        payment_service: PaymentService,
        verifier: Sha512SignatureVerifier,
    ) -> None:
        order = await place_order(order_service)

        result = await payment_service.handle_notification(
            notification(verifier, order.order_number, "capture", fraud_status="challenge")
        )

        assert result.order_status == "PAYMENT_PENDING"
        assert storage.state.payments[order.id].status == PaymentStatus.PROCESSING
        assert storage.state.payments[order.id].paid_at is None

    @pytest.mark.asyncio
    async def test_deny_fails_payment(
        self,
        storage: InMemoryStorage,
        order_service: OrderService,
        payment_service: PaymentService,
        verifier: Sha512SignatureVerifier,
    ) -> None:
        order = await place_order(order_service)

        result = await payment_service.handle_notification(notification(verifier, order.order_number, "deny"))

        assert result.order_status == "PAYMENT_FAILED"
        assert storage.state.payments[order.id].status == PaymentStatus.FAILED

    @pytest.mark.asyncio
    async def test_expire_cancels_order(
        self,
        storage: InMemoryStorage,
        order_service: OrderService,
        payment_service: PaymentService,
        verifier: Sha512SignatureVerifier,
    ) -> None:
        order = await place_order(order_service)

        result = await payment_service.handle_notification(notification(verifier, order.order_number, "expire"))

        assert result.order_status == "CANCELLED"
        stored = storage.state.orders[order.id]
        assert stored.cancelled_at == NOW
        assert storage.state.payments[order.id].status == PaymentStatus.EXPIRED

    @pytest.mark.asyncio
    async def test_refunded_payment_not_downgraded(
        self,
        storage: InMemoryStorage,
        order_service: OrderService,
        payment_service: PaymentService,
        verifier: Sha512SignatureVerifier,
        mock_job_queue: AsyncMock,
    ) -> None:
        """Запоздавшее уведомление об оплате не меняет возвращённую оплату и отменённый заказ."""
        order = await place_order(order_service)
        storage.state.orders[order.id] = storage.state.orders[order.id].model_copy(
            update={"status": OrderStatus.CANCELLED}
        )
        storage.state.payments[order.id] = storage.state.payments[order.id].model_copy(
            update={"status": PaymentStatus.REFUNDED}
        )
        mock_job_queue.enqueue.reset_mock()

        result = await payment_service.handle_notification(notification(verifier, order.order_number, "settlement"))

        assert result.processed is True
        assert result.order_status == "CANCELLED"
        assert storage.state.payments[order.id].status == PaymentStatus.REFUNDED
        mock_job_queue.enqueue.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_already_confirmed(
        self,
        storage: InMemoryStorage,
        order_service: OrderService,
        payment_service: PaymentService,
        verifier: Sha512SignatureVerifier,
    ) -> None:
        order = await place_order(order_service)
        await payment_service.handle_notification(notification(verifier, order.order_number, "settlement"))
        history_size = len(storage.state.history)

        result = await payment_service.handle_notification(
            notification(verifier, order.order_number, "capture", transaction_id="tx-2")
        )

        assert result.order_status == "CONFIRMED"
        assert len(storage.state.history) == history_size
        assert storage.state.payments[order.id].reference == "tx-2"
