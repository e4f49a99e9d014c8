# fulfillment/core/payments/service.py
"""
Обработка уведомлений платёжного шлюза.

Каждое уведомление обрабатывается не более одного раза (ключ
идемпотентности в payment_notifications), статус шлюза переводится
в статус оплаты и, при необходимости, в переход заказа.
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Callable, Optional

from fulfillment.common.constants import OrderStatus, PaymentStatus, TypeMsg
from fulfillment.common.logger import log_info, log_warning
from fulfillment.common.timeutils import utc_now
from fulfillment.core.notifications.service import Notifier
from fulfillment.core.orders.models import Order
from fulfillment.core.orders.state_machine import OrderStateMachine, can_transition
from fulfillment.core.payments.gateway import SignatureVerifier
from fulfillment.core.payments.models import GatewayNotification, NotificationResult

if TYPE_CHECKING:
    from fulfillment.infra.storage import Storage, UnitOfWork


def map_gateway_status(
    transaction_status: str,
    fraud_status: Optional[str] = None,
) -> Optional[tuple[PaymentStatus, Optional[OrderStatus]]]:
    """
    Статус шлюза -> (статус оплаты, целевой статус заказа).

    Returns:
        None для неизвестного статуса
    """
    status = transaction_status.lower()
    if status == "capture":
        if (fraud_status or "").lower() == "challenge":
            return PaymentStatus.PROCESSING, OrderStatus.PAYMENT_PENDING
        return PaymentStatus.SUCCESS, OrderStatus.CONFIRMED
    if status == "settlement":
        return PaymentStatus.SUCCESS, OrderStatus.CONFIRMED
    if status == "pending":
        return PaymentStatus.PENDING, OrderStatus.PAYMENT_PENDING
    if status == "deny":
        return PaymentStatus.FAILED, OrderStatus.PAYMENT_FAILED
    if status == "cancel":
        return PaymentStatus.FAILED, OrderStatus.CANCELLED
    if status == "expire":
        return PaymentStatus.EXPIRED, OrderStatus.CANCELLED
    if status in ("refund", "partial_refund"):
        return PaymentStatus.REFUNDED, None
    return None


class PaymentService:
    """Сервис приёма уведомлений об оплате."""

    def __init__(
        self,
        storage: Storage,
        verifier: SignatureVerifier,
        notifier: Notifier,
        state_machine: Optional[OrderStateMachine] = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._storage = storage
        self._verifier = verifier
        self._notifier = notifier
        self._clock = clock
        self._machine = state_machine or OrderStateMachine(clock)

    async def _advance(self, uow: UnitOfWork, order: Order, target: OrderStatus, note: str) -> Order:
        """
        Ведёт заказ к target, при необходимости через PAYMENT_PENDING.
        Недостижимый статус пропускается с предупреждением.
        """
        if order.status == target:
            return order

        path = [target]
        if (
            not can_transition(order.status, target)
            and can_transition(order.status, OrderStatus.PAYMENT_PENDING)
            and can_transition(OrderStatus.PAYMENT_PENDING, target)
        ):
            path = [OrderStatus.PAYMENT_PENDING, target]

        for step in path:
            if not can_transition(order.status, step):
                await log_warning(
                    f"Заказ {order.order_number}: переход {order.status.value} -> {step.value} "
                    f"по уведомлению оплаты пропущен"
                )
                return order
            order = await self._machine.transition(uow, order, step, None, note)
        return order

    async def handle_notification(self, notification: GatewayNotification) -> NotificationResult:
        """
        Обрабатывает уведомление шлюза.

        Args:
            notification: Тело уведомления

        Returns:
            Итог обработки (повтор возвращает duplicate=True без изменений)
        """
        if not self._verifier.verify(notification):
            await log_warning(f"Неверная подпись уведомления для заказа {notification.order_id}")
            return NotificationResult(processed=False, message="Invalid signature")

        mapping = map_gateway_status(notification.transaction_status, notification.fraud_status)
        now = self._clock()

        async with self._storage.transaction() as uow:
            order = await uow.orders.get_by_number(notification.order_id)
            if order is None:
                await log_warning(f"Уведомление оплаты для неизвестного заказа {notification.order_id}")
                return NotificationResult(processed=False, message="Order not found")

            registered = await uow.payments.register_notification(
                notification.idempotency_key,
                notification.order_id,
                notification.transaction_status,
                now,
            )
            if not registered:
                await log_info(
                    f"Повторное уведомление {notification.idempotency_key} проигнорировано",
                    type_msg=TypeMsg.DEBUG,
                )
                return NotificationResult(processed=False, duplicate=True, message="Already processed")

            if mapping is None:
                await log_warning(f"Неизвестный статус шлюза: {notification.transaction_status}")
                return NotificationResult(processed=False, message="Unknown transaction status")

            payment_status, order_target = mapping
            payment = await uow.payments.get_by_order(order.id)
            if payment is None:
                await log_warning(f"У заказа {order.order_number} нет записи об оплате")
            elif payment.status == PaymentStatus.REFUNDED and payment_status != PaymentStatus.REFUNDED:
                await log_warning(f"Оплата заказа {order.order_number} уже возвращена, статус не меняется")
            else:
                await uow.payments.update_status(
                    payment.id,
                    payment_status,
                    now,
                    reference=notification.transaction_id,
                    paid_at=now if payment_status == PaymentStatus.SUCCESS else None,
                )

            previous = order.status
            if order_target is not None:
                order = await self._advance(
                    uow, order, order_target, f"Payment {notification.transaction_status.lower()}"
                )

        await log_info(
            f"Оплата заказа {order.order_number}: {notification.transaction_status} -> "
            f"{payment_status.value}, заказ {order.status.value}",
            type_msg=TypeMsg.INFO,
        )
        if order.status != previous:
            await self._notifier.notify_status_changed(
                order.id, order.order_number, order.status, [order.customer_id]
            )

        return NotificationResult(
            processed=True,
            order_status=order.status.value,
            payment_status=payment_status.value,
        )
