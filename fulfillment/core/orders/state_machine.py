# fulfillment/core/orders/state_machine.py
"""
Жизненный цикл заказа.

Статическая таблица допустимых переходов и единственная точка, через
которую меняется статус: условное обновление (от ожидаемого статуса)
плюс запись в журнал статусов в той же транзакции.
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Any, Callable, Optional

from fulfillment.common.constants import OrderStatus, TypeMsg
from fulfillment.common.errors import ConcurrentModificationError, InvalidOperation, InvalidTransition, NotFoundError
from fulfillment.common.logger import log_info
from fulfillment.common.timeutils import utc_now
from fulfillment.core.orders.models import Order, OrderStatusHistory
from fulfillment.infra.database import CasOutcome

if TYPE_CHECKING:
    from fulfillment.infra.storage import UnitOfWork


S = OrderStatus

TRANSITIONS: dict[OrderStatus, frozenset[OrderStatus]] = {
    S.PENDING: frozenset({S.PAYMENT_PENDING, S.CANCELLED}),
    S.PAYMENT_PENDING: frozenset({S.CONFIRMED, S.PAYMENT_FAILED, S.CANCELLED}),
    S.PAYMENT_FAILED: frozenset({S.PAYMENT_PENDING, S.CANCELLED}),
    S.CONFIRMED: frozenset({S.PREPARING, S.CANCELLED}),
    S.PREPARING: frozenset({S.READY_FOR_PICKUP, S.CANCELLED}),
    S.READY_FOR_PICKUP: frozenset({S.DRIVER_ASSIGNED, S.CANCELLED}),
    S.DRIVER_ASSIGNED: frozenset({S.DRIVER_AT_MERCHANT, S.CANCELLED}),
    S.DRIVER_AT_MERCHANT: frozenset({S.PICKED_UP, S.CANCELLED}),
    S.PICKED_UP: frozenset({S.ON_DELIVERY}),
    S.ON_DELIVERY: frozenset({S.DRIVER_AT_LOCATION}),
    S.DRIVER_AT_LOCATION: frozenset({S.DELIVERED}),
    S.DELIVERED: frozenset({S.COMPLETED}),
    S.COMPLETED: frozenset({S.REFUNDED}),
    S.CANCELLED: frozenset(),
    S.REFUNDED: frozenset(),
}

# Поле с временной меткой, которое заполняется при входе в статус
TIMESTAMP_FIELDS: dict[OrderStatus, str] = {
    S.CONFIRMED: "confirmed_at",
    S.PREPARING: "prepared_at",
    S.PICKED_UP: "picked_up_at",
    S.DELIVERED: "delivered_at",
    S.COMPLETED: "completed_at",
    S.CANCELLED: "cancelled_at",
}

# Статусы, из которых отмена невозможна в принципе
CANCEL_TERMINAL: frozenset[OrderStatus] = frozenset({S.COMPLETED, S.CANCELLED, S.REFUNDED})

# Статусы, в которых водителя можно переназначить
REASSIGNABLE: frozenset[OrderStatus] = frozenset({S.DRIVER_ASSIGNED, S.DRIVER_AT_MERCHANT})


def can_transition(current: OrderStatus, target: OrderStatus) -> bool:
    return target in TRANSITIONS.get(current, frozenset())


def ensure_transition(current: OrderStatus, target: OrderStatus) -> None:
    """
    Raises:
        InvalidTransition: перехода нет в таблице
    """
    if not can_transition(current, target):
        raise InvalidTransition(current.value, target.value)


def _raise_for_outcome(outcome: CasOutcome, order_id: int) -> None:
    if outcome == CasOutcome.MISSING:
        raise NotFoundError(f"Order {order_id} not found")
    if outcome == CasOutcome.STALE:
        raise ConcurrentModificationError(f"Order {order_id} was modified concurrently")


class OrderStateMachine:
    """Применение переходов статуса заказа."""

    def __init__(self, clock: Callable[[], datetime] = utc_now) -> None:
        self._clock = clock

    async def transition(
        self,
        uow: UnitOfWork,
        order: Order,
        target: OrderStatus,
        actor_id: Optional[int],
        note: Optional[str] = None,
        changes: Optional[dict[str, Any]] = None,
        expected: Optional[dict[str, Any]] = None,
    ) -> Order:
        """
        Переводит заказ в статус target.

        Args:
            uow: Текущая транзакция
            order: Заказ в том состоянии, в котором его прочитали
            target: Целевой статус
            actor_id: Кто инициировал переход
            note: Комментарий (для отмены это причина)
            changes: Дополнительные поля, меняющиеся вместе со статусом
            expected: Дополнительные условия условного обновления

        Returns:
            Заказ после перехода

        Raises:
            InvalidTransition: переход недопустим
            ConcurrentModificationError: заказ изменился после чтения
        """
        ensure_transition(order.status, target)

        now = self._clock()
        updates: dict[str, Any] = dict(changes or {})
        updates["status"] = target
        stamp = TIMESTAMP_FIELDS.get(target)
        if stamp:
            updates[stamp] = now
        if target == S.CANCELLED:
            updates["cancelled_by"] = actor_id
            updates["cancellation_reason"] = note

        conditions: dict[str, Any] = {"status": order.status}
        conditions.update(expected or {})

        outcome = await uow.orders.compare_and_set(order.id, conditions, updates, now)
        _raise_for_outcome(outcome, order.id)

        await uow.orders.append_history(OrderStatusHistory(
            order_id=order.id,
            status=target,
            notes=note,
            changed_by=actor_id,
            created_at=now,
        ))

        await log_info(
            f"Заказ {order.order_number}: {order.status.value} -> {target.value} (actor={actor_id})",
            type_msg=TypeMsg.INFO,
        )
        return order.model_copy(update={**updates, "updated_at": now})

    async def reassign(
        self,
        uow: UnitOfWork,
        order: Order,
        driver_id: int,
        actor_id: Optional[int],
        note: Optional[str] = None,
    ) -> Order:
        """
        Переназначает водителя. Заказ возвращается в DRIVER_ASSIGNED,
        в журнал пишется одна запись.
        """
        if order.status not in REASSIGNABLE:
            raise InvalidOperation(
                f"Cannot reassign driver in {order.status.value} status",
                details={"status": order.status.value},
            )

        now = self._clock()
        updates = {"status": S.DRIVER_ASSIGNED, "driver_id": driver_id}
        outcome = await uow.orders.compare_and_set(
            order.id,
            {"status": order.status, "driver_id": order.driver_id},
            updates,
            now,
        )
        _raise_for_outcome(outcome, order.id)

        await uow.orders.append_history(OrderStatusHistory(
            order_id=order.id,
            status=S.DRIVER_ASSIGNED,
            notes=note or f"Driver reassigned to {driver_id}",
            changed_by=actor_id,
            created_at=now,
        ))

        await log_info(
            f"Заказ {order.order_number}: водитель {order.driver_id} -> {driver_id}",
            type_msg=TypeMsg.INFO,
        )
        return order.model_copy(update={**updates, "updated_at": now})
