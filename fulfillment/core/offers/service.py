# fulfillment/core/offers/service.py
"""
Сервис подбора водителя.

Водители предлагают свою цену доставки по готовому заказу, покупатель
принимает одно предложение. Администратор может назначить водителя
напрямую или переназначить его.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Callable, Optional

from fulfillment.common.constants import DriverStatus, OfferStatus, OrderStatus, TypeMsg, VoucherType
from fulfillment.common.errors import (
    AlreadyAssigned,
    ConcurrentModificationError,
    DriverUnavailable,
    DuplicateOffer,
    ForbiddenError,
    InvalidTransition,
    NotFoundError,
    OfferExpired,
    OrderNotBiddable,
    SelfOrder,
    ValidationError,
)
from fulfillment.common.logger import log_info
from fulfillment.common.timeutils import utc_now
from fulfillment.core.notifications.service import Notifier
from fulfillment.core.offers.models import DriverOffer
from fulfillment.core.orders.models import Order
from fulfillment.core.orders.state_machine import REASSIGNABLE, OrderStateMachine
from fulfillment.core.pricing.calculator import PricingCalculator
from fulfillment.infra.database import CasOutcome

if TYPE_CHECKING:
    from fulfillment.infra.storage import Storage, UnitOfWork


@dataclass
class Acceptance:
    """Результат принятия предложения."""
    order: Order
    offer: DriverOffer
    rejected_driver_ids: list[int] = field(default_factory=list)


class OfferService:
    """Сервис предложений водителей."""

    def __init__(
        self,
        storage: Storage,
        pricing: PricingCalculator,
        notifier: Notifier,
        state_machine: Optional[OrderStateMachine] = None,
        offer_expiry_minutes: int = 30,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        """
        Args:
            storage: Хранилище (Dependency Injection)
            pricing: Калькулятор (пересчёт долей при новой цене доставки)
            notifier: Сервис уведомлений
            state_machine: Машина состояний заказа
            offer_expiry_minutes: Срок жизни предложения
            clock: Источник текущего времени
        """
        self._storage = storage
        self._pricing = pricing
        self._notifier = notifier
        self._clock = clock
        self._machine = state_machine or OrderStateMachine(clock)
        self._offer_ttl = timedelta(minutes=offer_expiry_minutes)

    async def _load_order(self, uow: UnitOfWork, order_id: int) -> Order:
        order = await uow.orders.get(order_id)
        if order is None:
            raise NotFoundError(f"Order {order_id} not found")
        return order

    # =========================================================================
    # ПРЕДЛОЖЕНИЯ
    # =========================================================================

    async def create_offer(self, order_id: int, driver_profile_id: int, proposed_fee: int) -> DriverOffer:
        """
        Создаёт (или переоткрывает) предложение водителя.

        Raises:
            ValidationError: цена не положительное целое
            NotFoundError: нет заказа или профиля водителя
            OrderNotBiddable: заказ не ждёт водителя
            SelfOrder: водитель является покупателем заказа
            DuplicateOffer: уже есть открытое предложение этого водителя
        """
        if not isinstance(proposed_fee, int) or isinstance(proposed_fee, bool) or proposed_fee <= 0:
            raise ValidationError("Proposed fee must be a positive integer")

        async with self._storage.transaction() as uow:
            order = await self._load_order(uow, order_id)
            driver = await uow.drivers.get_by_id(driver_profile_id)
            if driver is None:
                raise NotFoundError(f"Driver profile {driver_profile_id} not found")

            if order.status != OrderStatus.READY_FOR_PICKUP or order.driver_id is not None:
                raise OrderNotBiddable(
                    "Order is not open for driver offers",
                    details={"status": order.status.value},
                )
            if driver.user_id == order.customer_id:
                raise SelfOrder("You cannot make an offer on your own order")

            now = self._clock()
            expires_at = now + self._offer_ttl
            existing = await uow.offers.get_by_pair(order_id, driver_profile_id)
            if existing is not None:
                if existing.is_open(now):
                    raise DuplicateOffer("You already have a pending offer for this order")
                offer = await uow.offers.reopen(existing.id, proposed_fee, expires_at, now)
            else:
                offer = await uow.offers.insert(DriverOffer(
                    order_id=order_id,
                    driver_profile_id=driver.id,
                    driver_user_id=driver.user_id,
                    proposed_fee=proposed_fee,
                    status=OfferStatus.PENDING,
                    expires_at=expires_at,
                    created_at=now,
                    updated_at=now,
                ))

        await log_info(
            f"Предложение {offer.id}: водитель {driver.user_id} -> заказ {order.order_number}, цена {proposed_fee}",
            type_msg=TypeMsg.INFO,
        )
        await self._notifier.notify_new_offer(order.customer_id, order.id, order.order_number, proposed_fee)
        return offer

    async def _repriced(self, uow: UnitOfWork, order: Order, fee: int) -> dict[str, int]:
        """Денежные поля заказа при новой цене доставки."""
        discount = order.discount
        if order.voucher_id is not None:
            voucher = await uow.vouchers.get(order.voucher_id)
            if voucher is not None and voucher.type == VoucherType.FREE_DELIVERY:
                discount = discount - order.delivery_fee + fee

        gross = order.subtotal + fee + order.service_fee + order.platform_fee
        discount = max(0, min(discount, gross))
        driver_earnings = self._pricing.driver_share(fee)
        return {
            "delivery_fee": fee,
            "discount": discount,
            "total_amount": gross - discount,
            "driver_earnings": driver_earnings,
            "platform_earnings": (
                order.merchant_commission + order.service_fee + order.platform_fee + (fee - driver_earnings)
            ),
        }

    async def accept_offer(self, offer_id: int, customer_id: int) -> Acceptance:
        """
        Покупатель принимает предложение водителя.

        Raises:
            NotFoundError: нет предложения или заказа
            ForbiddenError: заказ принадлежит другому покупателю
            AlreadyAssigned: у заказа уже есть водитель
            OfferExpired: предложение не PENDING или истекло
        """
        async with self._storage.transaction() as uow:
            offer = await uow.offers.get(offer_id, for_update=True)
            if offer is None:
                raise NotFoundError(f"Offer {offer_id} not found")
            order = await self._load_order(uow, offer.order_id)

            if order.customer_id != customer_id:
                raise ForbiddenError("You can only accept offers for your own orders")
            if order.driver_id is not None:
                raise AlreadyAssigned("Order already has a driver")

            now = self._clock()
            if not offer.is_open(now):
                raise OfferExpired("Offer has expired or is no longer available")
            if order.status != OrderStatus.READY_FOR_PICKUP:
                raise OrderNotBiddable(
                    "Order is not open for driver offers",
                    details={"status": order.status.value},
                )

            changes: dict[str, object] = {"driver_id": offer.driver_user_id}
            changes.update(await self._repriced(uow, order, offer.proposed_fee))
            try:
                order = await self._machine.transition(
                    uow,
                    order,
                    OrderStatus.DRIVER_ASSIGNED,
                    customer_id,
                    f"Offer {offer.id} accepted",
                    changes=changes,
                    expected={"driver_id": None},
                )
            except ConcurrentModificationError:
                current = await uow.orders.get(order.id)
                if current is not None and current.driver_id is not None:
                    raise AlreadyAssigned("Order already has a driver") from None
                raise

            outcome = await uow.offers.set_status(offer.id, OfferStatus.ACCEPTED, OfferStatus.PENDING, now)
            if outcome != CasOutcome.APPLIED:
                raise OfferExpired("Offer has expired or is no longer available")
            rejected = await uow.offers.reject_pending(order.id, now, exclude_offer_id=offer.id)
            await uow.drivers.set_status(offer.driver_user_id, DriverStatus.BUSY)

        offer = offer.model_copy(update={"status": OfferStatus.ACCEPTED, "updated_at": now})
        await log_info(
            f"Заказ {order.order_number}: принято предложение {offer.id} (водитель {offer.driver_user_id})",
            type_msg=TypeMsg.INFO,
        )
        await self._notifier.notify_status_changed(
            order.id, order.order_number, OrderStatus.DRIVER_ASSIGNED, [order.customer_id, offer.driver_user_id]
        )
        for driver_id in rejected:
            await self._notifier.notify_offer_rejected(driver_id, order.id, order.order_number)

        return Acceptance(order=order, offer=offer, rejected_driver_ids=rejected)

    # =========================================================================
    # НАЗНАЧЕНИЕ АДМИНИСТРАТОРОМ
    # =========================================================================

    async def assign_driver(
        self,
        order_id: int,
        driver_user_id: int,
        admin_id: int,
        reason: Optional[str] = None,
    ) -> Order:
        """
        Назначает или переназначает водителя.

        Raises:
            NotFoundError: нет заказа или водителя
            DriverUnavailable: водитель не верифицирован или не на линии
            InvalidTransition: статус заказа не допускает назначения
        """
        async with self._storage.transaction() as uow:
            order = await self._load_order(uow, order_id)
            driver = await uow.drivers.get_by_user_id(driver_user_id)
            if driver is None:
                raise NotFoundError(f"Driver {driver_user_id} not found")
            if not driver.is_available:
                raise DriverUnavailable(
                    "Driver is not available",
                    details={"status": driver.status.value, "is_verified": driver.is_verified},
                )

            previous = order.driver_id
            if order.status == OrderStatus.READY_FOR_PICKUP:
                order = await self._machine.transition(
                    uow,
                    order,
                    OrderStatus.DRIVER_ASSIGNED,
                    admin_id,
                    reason or "Assigned by admin",
                    changes={"driver_id": driver_user_id},
                    expected={"driver_id": order.driver_id},
                )
            elif order.status in REASSIGNABLE:
                order = await self._machine.reassign(uow, order, driver_user_id, admin_id, reason)
            else:
                raise InvalidTransition(order.status.value, OrderStatus.DRIVER_ASSIGNED.value)

            if previous is not None and previous != driver_user_id:
                await uow.drivers.set_status(previous, DriverStatus.ONLINE)
            outcome = await uow.drivers.set_status(driver_user_id, DriverStatus.BUSY, expected=DriverStatus.ONLINE)
            if outcome != CasOutcome.APPLIED:
                raise DriverUnavailable("Driver is not available")

            await uow.offers.reject_pending(order.id, self._clock())

        await log_info(
            f"Заказ {order.order_number}: администратор {admin_id} назначил водителя {driver_user_id}"
            + (f" (предыдущий {previous})" if previous else ""),
            type_msg=TypeMsg.INFO,
        )
        await self._notifier.notify_status_changed(
            order.id, order.order_number, OrderStatus.DRIVER_ASSIGNED, [order.customer_id, driver_user_id, previous]
        )
        return order

    async def list_offers(self, order_id: int) -> list[DriverOffer]:
        """Предложения по заказу; истёкшие PENDING показываются как EXPIRED."""
        async with self._storage.transaction() as uow:
            await self._load_order(uow, order_id)
            offers = await uow.offers.list_by_order(order_id)

        now = self._clock()
        return [offer.as_seen_at(now) for offer in offers]
