# fulfillment/core/notifications/service.py
"""
Сервис уведомлений.
Ставит задания на уведомление участников заказа в очередь задач.
Фактическая доставка (push, email) происходит во внешнем воркере.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterable, Optional

from fulfillment.common.constants import OrderStatus, TypeMsg
from fulfillment.common.logger import log_error, log_info
from fulfillment.infra.job_queue import Job, JobQueue, JobTypes


# Заголовок и текст уведомления для статусов, о которых сообщаем покупателю
STATUS_MESSAGES: dict[OrderStatus, tuple[str, str]] = {
    OrderStatus.CONFIRMED: ("Order confirmed", "Your order {number} has been confirmed"),
    OrderStatus.PAYMENT_FAILED: ("Payment failed", "Payment for order {number} has failed"),
    OrderStatus.PREPARING: ("Order is being prepared", "The merchant is preparing order {number}"),
    OrderStatus.READY_FOR_PICKUP: ("Order ready", "Order {number} is ready for pickup"),
    OrderStatus.DRIVER_ASSIGNED: ("Driver assigned", "A driver has been assigned to order {number}"),
    OrderStatus.DRIVER_AT_MERCHANT: ("Driver at merchant", "The driver has arrived at the merchant"),
    OrderStatus.PICKED_UP: ("Order picked up", "Order {number} has been picked up"),
    OrderStatus.ON_DELIVERY: ("On the way", "Order {number} is on the way"),
    OrderStatus.DRIVER_AT_LOCATION: ("Driver arrived", "The driver has arrived at your location"),
    OrderStatus.DELIVERED: ("Order delivered", "Order {number} has been delivered"),
    OrderStatus.COMPLETED: ("Order completed", "Thank you! Order {number} is completed"),
    OrderStatus.CANCELLED: ("Order cancelled", "Order {number} has been cancelled"),
    OrderStatus.REFUNDED: ("Order refunded", "Order {number} has been refunded"),
}


@dataclass
class NotificationData:
    """Данные для уведомления."""
    user_id: int
    title: str
    body: str
    data: dict[str, Any] = field(default_factory=dict)


class Notifier:
    """
    Сервис уведомлений.

    Ошибки очереди не влияют на бизнес-операцию: они логируются,
    а метод возвращает False.
    """

    def __init__(self, job_queue: JobQueue) -> None:
        """
        Args:
            job_queue: Очередь фоновых задач
        """
        self._job_queue = job_queue

    async def send_notification(self, data: NotificationData) -> bool:
        """
        Ставит уведомление в очередь.

        Returns:
            True если задание поставлено
        """
        try:
            await self._job_queue.enqueue(Job(
                job_type=JobTypes.NOTIFICATION,
                payload={
                    "user_id": data.user_id,
                    "title": data.title,
                    "body": data.body,
                    "data": data.data,
                },
            ))
            await log_info(
                f"Уведомление поставлено в очередь: user={data.user_id}, title={data.title}",
                type_msg=TypeMsg.DEBUG,
            )
            return True
        except Exception as e:
            await log_error(f"Ошибка постановки уведомления: {e}")
            return False

    async def notify_order_created(self, customer_id: int, merchant_owner_id: int, order_id: int, number: str) -> None:
        data = {"order_id": order_id, "order_number": number}
        await self.send_notification(NotificationData(
            user_id=customer_id,
            title="Order placed",
            body=f"Your order {number} has been placed",
            data=data,
        ))
        await self.send_notification(NotificationData(
            user_id=merchant_owner_id,
            title="New order",
            body=f"You have a new order {number}",
            data=data,
        ))

    async def notify_status_changed(
        self,
        order_id: int,
        number: str,
        status: OrderStatus,
        recipients: Iterable[Optional[int]],
    ) -> None:
        """
        Уведомление о смене статуса.

        Args:
            order_id: ID заказа
            number: Номер заказа
            status: Новый статус
            recipients: ID пользователей (None и повторы пропускаются)
        """
        message = STATUS_MESSAGES.get(status)
        if message is None:
            return

        title, body = message
        seen: set[int] = set()
        for user_id in recipients:
            if user_id is None or user_id in seen:
                continue
            seen.add(user_id)
            await self.send_notification(NotificationData(
                user_id=user_id,
                title=title,
                body=body.format(number=number),
                data={"order_id": order_id, "order_number": number, "status": status.value},
            ))

    async def notify_new_offer(self, customer_id: int, order_id: int, number: str, delivery_fee: int) -> bool:
        return await self.send_notification(NotificationData(
            user_id=customer_id,
            title="New driver offer",
            body=f"A driver offered to deliver order {number} for {delivery_fee}",
            data={"order_id": order_id, "order_number": number, "delivery_fee": delivery_fee},
        ))

    async def notify_offer_rejected(self, driver_id: int, order_id: int, number: str) -> bool:
        return await self.send_notification(NotificationData(
            user_id=driver_id,
            title="Offer not accepted",
            body=f"Another driver was chosen for order {number}",
            data={"order_id": order_id, "order_number": number},
        ))

    async def notify_refund(self, customer_id: int, order_id: int, number: str, amount: int) -> bool:
        return await self.send_notification(NotificationData(
            user_id=customer_id,
            title="Refund issued",
            body=f"{amount} has been refunded to your wallet for order {number}",
            data={"order_id": order_id, "order_number": number, "amount": amount},
        ))
