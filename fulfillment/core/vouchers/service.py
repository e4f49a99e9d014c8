# fulfillment/core/vouchers/service.py
"""
Сервис ваучеров.
Загружает счётчики применений, проверяет правила и фиксирует применение.
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Callable, Optional

from fulfillment.common.constants import TypeMsg, VoucherType
from fulfillment.common.errors import InvalidVoucher, NotFoundError
from fulfillment.common.logger import log_info
from fulfillment.common.timeutils import start_of_day, utc_now
from fulfillment.core.vouchers import engine
from fulfillment.core.vouchers.models import (
    UsageStats,
    Voucher,
    VoucherContext,
    VoucherQuote,
    VoucherUsage,
)

if TYPE_CHECKING:
    from fulfillment.infra.storage import Storage, UnitOfWork


class VoucherService:
    """Сервис ваучеров."""

    def __init__(self, storage: Storage, clock: Callable[[], datetime] = utc_now) -> None:
        """
        Args:
            storage: Хранилище (Dependency Injection)
            clock: Источник текущего времени
        """
        self._storage = storage
        self._clock = clock

    async def _usage_stats(self, uow: UnitOfWork, voucher: Voucher, user_id: int, now: datetime) -> UsageStats:
        stats = UsageStats(
            user_usage=await uow.vouchers.count_usage(voucher.id, user_id=user_id),
        )
        if voucher.daily_limit is not None:
            stats.today_usage = await uow.vouchers.count_usage(voucher.id, since=start_of_day(now))
        if voucher.is_for_new_users:
            stats.completed_orders = await uow.orders.count_completed_by_customer(user_id)
        return stats

    async def evaluate(
        self,
        uow: UnitOfWork,
        code: str,
        context: VoucherContext,
        lock: bool = False,
    ) -> tuple[Voucher, int]:
        """
        Находит ваучер, проверяет его и считает скидку.

        Args:
            uow: Текущая транзакция
            code: Код ваучера
            context: Контекст проверки
            lock: Заблокировать строку ваучера (при оформлении заказа)

        Returns:
            (ваучер, скидка на сумму товаров)

        Raises:
            NotFoundError: ваучер не существует
            InvalidVoucher: одно из правил не выполнено
        """
        voucher = await uow.vouchers.get_by_code(code, for_update=lock)
        if voucher is None:
            raise NotFoundError(f"Voucher {code.strip().upper()} not found")

        now = self._clock()
        usage = await self._usage_stats(uow, voucher, context.user_id, now)
        check = engine.validate(voucher, context, usage, now)
        if not check.valid:
            raise InvalidVoucher(check.reason.value, check.message)

        return voucher, engine.compute_discount(voucher, context.subtotal)

    async def check(self, code: str, context: VoucherContext) -> VoucherQuote:
        """Предварительная проверка ваучера перед оформлением заказа."""
        async with self._storage.transaction() as uow:
            voucher, discount = await self.evaluate(uow, code, context)

        return VoucherQuote(
            code=voucher.code,
            type=voucher.type,
            discount=discount,
            free_delivery=voucher.type == VoucherType.FREE_DELIVERY,
        )

    async def record_usage(
        self,
        uow: UnitOfWork,
        voucher: Voucher,
        user_id: int,
        order_id: int,
        discount: int,
    ) -> VoucherUsage:
        """
        Фиксирует применение в той же транзакции, что и создание заказа.
        """
        usage = await uow.vouchers.record_usage(VoucherUsage(
            voucher_id=voucher.id,
            user_id=user_id,
            order_id=order_id,
            discount_amount=discount,
            used_at=self._clock(),
        ))
        await log_info(
            f"Ваучер {voucher.code} применён к заказу {order_id} (user={user_id}, скидка={discount})",
            type_msg=TypeMsg.INFO,
        )
        return usage

    async def available_for(self, user_id: int, merchant_id: Optional[int] = None) -> list[Voucher]:
        """Активные ваучеры, которые пользователь может применить сейчас."""
        now = self._clock()
        context = VoucherContext(user_id=user_id, merchant_id=merchant_id, for_listing=True)

        result: list[Voucher] = []
        async with self._storage.transaction() as uow:
            for voucher in await uow.vouchers.list_active(now):
                usage = await self._usage_stats(uow, voucher, user_id, now)
                if engine.validate(voucher, context, usage, now).valid:
                    result.append(voucher)
        return result
