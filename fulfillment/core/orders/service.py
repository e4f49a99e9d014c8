# fulfillment/core/orders/service.py
"""
Сервис для работы с заказами.
Оформление, смена статусов с побочными эффектами, отмена с возвратом.
"""

from __future__ import annotations

import secrets
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Awaitable, Callable, Optional

from fulfillment.common.constants import (
    DriverStatus,
    OrderStatus,
    PaymentMethod,
    PaymentStatus,
    ReferenceType,
    TypeMsg,
    VoucherType,
)
from fulfillment.common.errors import (
    ForbiddenError,
    InsufficientStock,
    InvalidOperation,
    MerchantClosed,
    MerchantUnavailable,
    MinimumOrder,
    NotFoundError,
    OutOfRange,
    ProductUnavailable,
)
from fulfillment.common.logger import log_info
from fulfillment.common.timeutils import utc_now
from fulfillment.core.catalog.models import Merchant, Product
from fulfillment.core.notifications.service import Notifier
from fulfillment.core.orders.models import (
    CancelResult,
    CreateOrderDTO,
    CreateOrderItemDTO,
    Order,
    OrderItem,
    OrderStatusHistory,
)
from fulfillment.core.orders.state_machine import CANCEL_TERMINAL, OrderStateMachine
from fulfillment.core.payments.models import Payment
from fulfillment.core.pricing.calculator import Point, PricingCalculator, distance, out_of_range
from fulfillment.core.pricing.zones import ZoneResolver
from fulfillment.core.vouchers.models import VoucherContext
from fulfillment.core.vouchers.service import VoucherService
from fulfillment.core.wallet.service import WalletLedger
from fulfillment.infra.job_queue import Job, JobQueue, JobTypes

if TYPE_CHECKING:
    from fulfillment.infra.storage import Storage, UnitOfWork


S = OrderStatus

# Статусы, которые участник заказа выставляет сам. Статусы оплаты приходят
# из платёжного шлюза, REFUNDED ставит администратор, DRIVER_ASSIGNED
# появляется только при принятии предложения или назначении водителя.
MERCHANT_TARGETS: frozenset[OrderStatus] = frozenset({S.PREPARING, S.READY_FOR_PICKUP})
DRIVER_TARGETS: frozenset[OrderStatus] = frozenset({
    S.DRIVER_AT_MERCHANT, S.PICKED_UP, S.ON_DELIVERY, S.DRIVER_AT_LOCATION, S.DELIVERED, S.COMPLETED,
})
CUSTOMER_TARGETS: frozenset[OrderStatus] = frozenset({S.COMPLETED})

_BASE36 = "0123456789abcdefghijklmnopqrstuvwxyz"


def _to_base36(value: int) -> str:
    if value == 0:
        return "0"
    digits = []
    while value:
        value, rem = divmod(value, 36)
        digits.append(_BASE36[rem])
    return "".join(reversed(digits))


def generate_order_number(now: datetime) -> str:
    """ORD-<метка времени в мс, base36>-<4 случайных символа>, в верхнем регистре."""
    millis = int(now.timestamp() * 1000)
    suffix = "".join(secrets.choice(_BASE36) for _ in range(4))
    return f"ORD-{_to_base36(millis)}-{suffix}".upper()


class OrderService:
    """Сервис бизнес-логики заказов."""

    def __init__(
        self,
        storage: Storage,
        pricing: PricingCalculator,
        zones: ZoneResolver,
        vouchers: VoucherService,
        wallet: WalletLedger,
        notifier: Notifier,
        job_queue: JobQueue,
        state_machine: Optional[OrderStateMachine] = None,
        payment_expiry_minutes: int = 15,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        """
        Args:
            storage: Хранилище (Dependency Injection)
            pricing: Калькулятор стоимости
            zones: Поиск тарифной зоны
            vouchers: Сервис ваучеров
            wallet: Журнал кошельков
            notifier: Сервис уведомлений
            job_queue: Очередь фоновых задач (возвраты через шлюз)
            state_machine: Машина состояний заказа
            payment_expiry_minutes: Время жизни записи об оплате
            clock: Источник текущего времени
        """
        self._storage = storage
        self._pricing = pricing
        self._zones = zones
        self._vouchers = vouchers
        self._wallet = wallet
        self._notifier = notifier
        self._job_queue = job_queue
        self._clock = clock
        self._machine = state_machine or OrderStateMachine(clock)
        self._payment_expiry = timedelta(minutes=payment_expiry_minutes)

        # Побочные эффекты входа в статус (в той же транзакции)
        self._side_effects: dict[OrderStatus, Callable[[UnitOfWork, Order], Awaitable[None]]] = {
            OrderStatus.DELIVERED: self._on_delivered,
            OrderStatus.COMPLETED: self._settle,
            OrderStatus.REFUNDED: self._on_refunded,
        }

    # =========================================================================
    # ОФОРМЛЕНИЕ
    # =========================================================================

    async def _build_items(
        self,
        uow: UnitOfWork,
        merchant: Merchant,
        lines: list[CreateOrderItemDTO],
    ) -> tuple[list[OrderItem], list[int]]:
        """Снимки позиций и категории товаров корзины."""
        products: dict[int, Product] = await uow.catalog.get_products(
            merchant.id, sorted({line.product_id for line in lines})
        )

        requested: dict[int, int] = {}
        for line in lines:
            requested[line.product_id] = requested.get(line.product_id, 0) + line.quantity

        items: list[OrderItem] = []
        categories: list[int] = []
        for line in lines:
            product = products.get(line.product_id)
            if product is None or not product.is_available:
                raise ProductUnavailable(
                    f"Product {line.product_id} is not available",
                    details={"product_id": line.product_id},
                )
            if product.stock is not None and product.stock < requested[product.id]:
                raise InsufficientStock(
                    f"Insufficient stock for {product.name}",
                    details={"product_id": product.id, "available": product.stock},
                )
            if product.category_id is not None and product.category_id not in categories:
                categories.append(product.category_id)

            items.append(OrderItem(
                product_id=product.id,
                product_name=product.name,
                product_image=product.image_url,
                unit_price=product.unit_price,
                quantity=line.quantity,
                subtotal=product.unit_price * line.quantity,
                notes=line.notes,
            ))
        return items, categories

    async def create_order(self, customer_id: int, dto: CreateOrderDTO) -> Order:
        """
        Оформляет заказ.

        Args:
            customer_id: ID покупателя
            dto: Данные корзины и доставки

        Returns:
            Созданный заказ с позициями

        Raises:
            NotFoundError: продавец или ваучер не найден
            MerchantUnavailable, MerchantClosed, OutOfRange, MinimumOrder,
            ProductUnavailable, InsufficientStock, InvalidVoucher
        """
        now = self._clock()

        async with self._storage.transaction() as uow:
            merchant = await uow.catalog.get_merchant(dto.merchant_id)
            if merchant is None:
                raise NotFoundError(f"Merchant {dto.merchant_id} not found")
            if not merchant.is_active:
                raise MerchantUnavailable("Merchant is not available")
            if not merchant.is_open:
                raise MerchantClosed("Merchant is currently closed")

            distance_km = distance(
                Point(merchant.latitude, merchant.longitude),
                Point(dto.delivery_latitude, dto.delivery_longitude),
            )
            if out_of_range(distance_km, merchant.delivery_radius_km):
                raise OutOfRange(
                    "Delivery address is outside the merchant delivery radius",
                    details={"distance_km": round(distance_km, 2), "radius_km": merchant.delivery_radius_km},
                )

            items, categories = await self._build_items(uow, merchant, dto.items)
            subtotal = sum(item.subtotal for item in items)
            if subtotal < merchant.minimum_order:
                raise MinimumOrder(
                    f"Minimum order amount is {merchant.minimum_order}",
                    details={"minimum_order": merchant.minimum_order, "subtotal": subtotal},
                )

            zone = await self._zones.resolve(uow, merchant.city, distance_km)
            quote = self._pricing.quote(subtotal, distance_km, zone, merchant.commission_rate)

            voucher = None
            voucher_discount = 0
            discount = 0
            if dto.voucher_code:
                voucher, voucher_discount = await self._vouchers.evaluate(
                    uow,
                    dto.voucher_code,
                    VoucherContext(
                        user_id=customer_id,
                        subtotal=subtotal,
                        item_count=sum(item.quantity for item in items),
                        merchant_id=merchant.id,
                        category_ids=categories,
                    ),
                    lock=True,
                )
                discount = voucher_discount
                if voucher.type == VoucherType.FREE_DELIVERY:
                    discount += quote.delivery_fee

            fees = self._pricing.apply_discount(quote, discount)

            order = await uow.orders.insert(Order(
                order_number=generate_order_number(now),
                customer_id=customer_id,
                merchant_id=merchant.id,
                voucher_id=voucher.id if voucher else None,
                delivery_address=dto.delivery_address,
                delivery_latitude=dto.delivery_latitude,
                delivery_longitude=dto.delivery_longitude,
                distance_km=round(distance_km, 2),
                subtotal=fees.subtotal,
                delivery_fee=fees.delivery_fee,
                service_fee=fees.service_fee,
                platform_fee=fees.platform_fee,
                discount=fees.discount,
                total_amount=fees.total_amount,
                merchant_commission=fees.merchant_commission,
                driver_earnings=fees.driver_earnings,
                platform_earnings=fees.platform_earnings,
                payment_method=dto.payment_method,
                status=OrderStatus.PENDING,
                notes=dto.notes,
                estimated_delivery_time=now + timedelta(
                    minutes=self._pricing.delivery_minutes(distance_km, merchant.preparation_time)
                ),
                created_at=now,
                updated_at=now,
            ), items)

            for item in order.items:
                if not await uow.catalog.decrement_stock(item.product_id, item.quantity):
                    raise InsufficientStock(
                        f"Insufficient stock for {item.product_name}",
                        details={"product_id": item.product_id},
                    )

            await uow.orders.append_history(OrderStatusHistory(
                order_id=order.id,
                status=OrderStatus.PENDING,
                notes="Order created",
                changed_by=customer_id,
                created_at=now,
            ))

            if voucher is not None:
                await self._vouchers.record_usage(uow, voucher, customer_id, order.id, voucher_discount)

            payment = await uow.payments.insert(Payment(
                order_id=order.id,
                method=dto.payment_method,
                amount=order.total_amount,
                status=PaymentStatus.PENDING,
                expired_at=now + self._payment_expiry,
                created_at=now,
                updated_at=now,
            ))

            if dto.payment_method == PaymentMethod.WALLET:
                order = await self._pay_from_wallet(uow, order, payment)

        await log_info(
            f"Заказ {order.order_number} создан: customer={customer_id}, merchant={merchant.id}, "
            f"total={order.total_amount}",
            type_msg=TypeMsg.INFO,
        )
        await self._notifier.notify_order_created(customer_id, merchant.owner_id, order.id, order.order_number)
        return order

    async def _pay_from_wallet(self, uow: UnitOfWork, order: Order, payment: Payment) -> Order:
        """Оплата с кошелька покупателя: списание и подтверждение заказа."""
        items = order.items
        if order.total_amount > 0:
            await self._wallet.debit(
                order.customer_id,
                order.total_amount,
                f"Payment for order {order.order_number}",
                ReferenceType.ORDER,
                order.id,
                uow=uow,
            )
        now = self._clock()
        await uow.payments.update_status(payment.id, PaymentStatus.SUCCESS, now, paid_at=now)

        order = await self._machine.transition(uow, order, OrderStatus.PAYMENT_PENDING, order.customer_id)
        order = await self._machine.transition(
            uow, order, OrderStatus.CONFIRMED, order.customer_id, "Paid from wallet"
        )
        return order.model_copy(update={"items": items})

    # =========================================================================
    # СМЕНА СТАТУСА
    # =========================================================================

    async def _load(self, uow: UnitOfWork, order_id: int) -> Order:
        order = await uow.orders.get(order_id)
        if order is None:
            raise NotFoundError(f"Order {order_id} not found")
        return order

    async def _merchant_of(self, uow: UnitOfWork, order: Order) -> Merchant:
        merchant = await uow.catalog.get_merchant(order.merchant_id)
        if merchant is None:
            raise NotFoundError(f"Merchant {order.merchant_id} not found")
        return merchant

    async def _authorize(self, uow: UnitOfWork, order: Order, actor_id: int, is_admin: bool) -> None:
        """Инициатор должен быть участником заказа (администратор — всегда)."""
        if is_admin or actor_id in (order.customer_id, order.driver_id):
            return
        merchant = await self._merchant_of(uow, order)
        if actor_id == merchant.owner_id:
            return
        driver = await uow.drivers.get_by_user_id(actor_id)
        if driver is not None:
            raise ForbiddenError("You are not the assigned driver for this order")
        raise ForbiddenError("You are not a party to this order")

    async def _ensure_may_set(self, uow: UnitOfWork, order: Order, actor_id: int, target: OrderStatus) -> None:
        """Участник может выставить только статусы своей роли."""
        allowed: set[OrderStatus] = set()
        if actor_id == order.customer_id:
            allowed |= CUSTOMER_TARGETS
        if order.driver_id is not None and actor_id == order.driver_id:
            allowed |= DRIVER_TARGETS
        merchant = await self._merchant_of(uow, order)
        if actor_id == merchant.owner_id:
            allowed |= MERCHANT_TARGETS

        if target not in allowed:
            raise ForbiddenError(
                f"You cannot set order status to {target.value}",
                details={"status": target.value},
            )

    async def update_status(
        self,
        order_id: int,
        target: OrderStatus,
        actor_id: int,
        note: Optional[str] = None,
        is_admin: bool = False,
    ) -> Order:
        """
        Переводит заказ в новый статус с побочными эффектами.

        Args:
            order_id: ID заказа
            target: Целевой статус
            actor_id: Инициатор
            note: Комментарий
            is_admin: Пропустить проверку участника и его роли

        Returns:
            Обновлённый заказ

        Raises:
            InvalidOperation: DRIVER_ASSIGNED запрошен напрямую
            ForbiddenError: инициатор не участник или статус не его роли
            InvalidTransition: перехода нет в таблице
        """
        if target == OrderStatus.CANCELLED:
            result = await self.cancel_order(order_id, actor_id, note, is_admin=is_admin)
            return result.order
        if target == OrderStatus.DRIVER_ASSIGNED:
            raise InvalidOperation(
                "Drivers are assigned by accepting an offer or by admin assignment",
                details={"status": target.value},
            )

        async with self._storage.transaction() as uow:
            order = await self._load(uow, order_id)
            await self._authorize(uow, order, actor_id, is_admin)
            if not is_admin:
                await self._ensure_may_set(uow, order, actor_id, target)

            order = await self._machine.transition(
                uow, order, target, actor_id, note, changes=self._entry_changes(order, target)
            )

            handler = self._side_effects.get(target)
            if handler is not None:
                await handler(uow, order)

        recipients: list[Optional[int]] = [order.customer_id]
        if target in (OrderStatus.PREPARING, OrderStatus.READY_FOR_PICKUP):
            recipients.append(order.driver_id)
        await self._notifier.notify_status_changed(order.id, order.order_number, target, recipients)
        return order

    def _entry_changes(self, order: Order, target: OrderStatus) -> Optional[dict]:
        """Поля, которые меняются вместе со статусом."""
        if target == OrderStatus.PICKED_UP:
            # заказ в пути: ожидаемое время доставки считается от момента забора
            minutes = self._pricing.travel_minutes(order.distance_km)
            return {"estimated_delivery_time": self._clock() + timedelta(minutes=minutes)}
        return None

    async def _on_delivered(self, uow: UnitOfWork, order: Order) -> None:
        """Водитель снова свободен, счётчик доставок растёт."""
        if order.driver_id is None:
            return
        await uow.drivers.set_status(order.driver_id, DriverStatus.ONLINE)
        await uow.drivers.increment_deliveries(order.driver_id)

    async def _settle(self, uow: UnitOfWork, order: Order) -> None:
        """
        Расчёт с участниками при завершении заказа.

        Продавец получает subtotal - комиссия, водитель получает свой заработок.
        По заказу с оплатой наличными водитель собрал всю сумму: долг
        total - заработок ложится на его кредитный баланс, который может
        уйти в минус и не блокирует завершение.
        """
        merchant = await self._merchant_of(uow, order)

        merchant_net = order.subtotal - order.merchant_commission
        if merchant_net > 0:
            await self._wallet.credit(
                merchant.owner_id,
                merchant_net,
                f"Sales from order {order.order_number}",
                ReferenceType.ORDER,
                order.id,
                uow=uow,
            )

        if order.driver_id is None:
            return

        if order.driver_earnings > 0:
            await self._wallet.credit(
                order.driver_id,
                order.driver_earnings,
                f"Earnings from order {order.order_number}",
                ReferenceType.ORDER,
                order.id,
                uow=uow,
            )

        cash_due = order.total_amount - order.driver_earnings
        if order.payment_method == PaymentMethod.CASH and cash_due > 0:
            credit_balance = await uow.drivers.adjust_credit_balance(order.driver_id, -cash_due)
            await log_info(
                f"Заказ {order.order_number}: наличные {cash_due} на кредитный баланс водителя "
                f"{order.driver_id} (баланс {credit_balance})",
                type_msg=TypeMsg.INFO,
            )

        await log_info(
            f"Заказ {order.order_number} рассчитан: merchant={merchant_net}, driver={order.driver_earnings}",
            type_msg=TypeMsg.INFO,
        )

    async def _on_refunded(self, uow: UnitOfWork, order: Order) -> None:
        """
        Возврат по завершённому заказу (спор): полная сумма покупателю.

        Выплаты продавцу и водителю не отзываются: убыток по спору
        несёт платформа, удержания с участников ведутся вне ядра.
        """
        await self._refund_payment(uow, order, order.total_amount, refund_to_wallet=True)

    async def _refund_payment(
        self,
        uow: UnitOfWork,
        order: Order,
        amount: int,
        refund_to_wallet: bool,
    ) -> tuple[int, Optional[int]]:
        """
        Компенсирующая операция по успешной оплате.

        Returns:
            (возвращённая сумма, ID проводки или None)
        """
        payment = await uow.payments.get_by_order(order.id)
        if payment is None or payment.status != PaymentStatus.SUCCESS:
            return 0, None

        amount = min(amount, order.total_amount)
        if amount <= 0:
            return 0, None

        entry_id = None
        if refund_to_wallet:
            entry = await self._wallet.credit(
                order.customer_id,
                amount,
                f"Refund for order {order.order_number}",
                ReferenceType.REFUND,
                order.id,
                uow=uow,
            )
            entry_id = entry.id

        await uow.payments.update_status(payment.id, PaymentStatus.REFUNDED, self._clock())
        return amount, entry_id

    # =========================================================================
    # ОТМЕНА
    # =========================================================================

    async def cancel_order(
        self,
        order_id: int,
        actor_id: int,
        reason: Optional[str] = None,
        refund_amount: Optional[int] = None,
        refund_to_wallet: bool = True,
        is_admin: bool = False,
    ) -> CancelResult:
        """
        Отменяет заказ и возвращает оплату.

        Args:
            order_id: ID заказа
            actor_id: Инициатор
            reason: Причина отмены
            refund_amount: Сумма возврата (по умолчанию total, не больше total)
            refund_to_wallet: Вернуть на кошелёк (иначе возврат через шлюз)
            is_admin: Пропустить проверку участника

        Raises:
            InvalidOperation: заказ уже в терминальном статусе
            InvalidTransition: отмена недопустима в текущем статусе
        """
        async with self._storage.transaction() as uow:
            order = await self._load(uow, order_id)
            await self._authorize(uow, order, actor_id, is_admin)

            if order.status in CANCEL_TERMINAL:
                raise InvalidOperation(
                    f"Cannot cancel order in {order.status.value} status",
                    details={"status": order.status.value},
                )

            order = await self._machine.transition(uow, order, OrderStatus.CANCELLED, actor_id, reason)

            if order.driver_id is not None:
                await uow.drivers.set_status(order.driver_id, DriverStatus.ONLINE)
            await uow.offers.reject_pending(order.id, self._clock())

            amount = order.total_amount if refund_amount is None else refund_amount
            refunded, entry_id = await self._refund_payment(uow, order, amount, refund_to_wallet)

        await log_info(
            f"Заказ {order.order_number} отменён (actor={actor_id}, возврат={refunded})",
            type_msg=TypeMsg.INFO,
        )

        await self._notifier.notify_status_changed(
            order.id, order.order_number, OrderStatus.CANCELLED, [order.customer_id, order.driver_id]
        )
        if refunded and refund_to_wallet:
            await self._notifier.notify_refund(order.customer_id, order.id, order.order_number, refunded)
        elif refunded:
            await self._job_queue.enqueue(Job(
                job_type=JobTypes.PAYMENT_REFUND,
                payload={"order_id": order.id, "order_number": order.order_number, "amount": refunded},
            ))

        return CancelResult(order=order, refunded_amount=refunded, refund_transaction_id=entry_id)

    # =========================================================================
    # ЧТЕНИЕ
    # =========================================================================

    async def get_order(self, order_id: int) -> Order:
        """Заказ с позициями."""
        async with self._storage.transaction() as uow:
            order = await self._load(uow, order_id)
            items = await uow.orders.get_items(order_id)
        return order.model_copy(update={"items": items})

    async def get_history(self, order_id: int) -> list[OrderStatusHistory]:
        async with self._storage.transaction() as uow:
            await self._load(uow, order_id)
            return await uow.orders.list_history(order_id)
