# fulfillment/core/wallet/service.py
"""
Журнал кошелька (ledger).

Единственный способ изменить баланс: каждая операция в одной транзакции
блокирует строку кошелька, пишет проводку с балансом до и после
и обновляет кэшированный баланс.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from datetime import datetime
from typing import TYPE_CHECKING, AsyncIterator, Callable, Optional

from fulfillment.common.constants import ReferenceType, TypeMsg, WalletTransactionType
from fulfillment.common.errors import ConcurrentModificationError, InsufficientBalance, ValidationError
from fulfillment.common.logger import log_info
from fulfillment.common.timeutils import start_of_day, utc_now
from fulfillment.core.wallet.models import BalanceInfo, WalletTransaction
from fulfillment.infra.database import CasOutcome

if TYPE_CHECKING:
    from fulfillment.infra.storage import Storage, UnitOfWork


class WalletLedger:
    """Операции с кошельками пользователей."""

    def __init__(
        self,
        storage: Storage,
        min_withdrawal: int = 50000,
        max_withdrawal_per_day: int = 2000000,
        currency: str = "IDR",
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        """
        Args:
            storage: Хранилище (Dependency Injection)
            min_withdrawal: Минимальная сумма вывода
            max_withdrawal_per_day: Лимит вывода за сутки
            currency: Валюта (для ответов API)
            clock: Источник текущего времени
        """
        self._storage = storage
        self.min_withdrawal = min_withdrawal
        self.max_withdrawal_per_day = max_withdrawal_per_day
        self.currency = currency
        self._clock = clock

    @classmethod
    def from_settings(cls, storage: Storage) -> WalletLedger:
        from fulfillment.config import settings

        return cls(
            storage,
            min_withdrawal=settings.wallet.MIN_WITHDRAWAL,
            max_withdrawal_per_day=settings.wallet.MAX_WITHDRAWAL_PER_DAY,
            currency=settings.pricing.CURRENCY,
        )

    @asynccontextmanager
    async def _unit(self, uow: Optional[UnitOfWork]) -> AsyncIterator[UnitOfWork]:
        """Присоединяется к транзакции вызывающего кода или открывает свою."""
        if uow is not None:
            yield uow
            return
        async with self._storage.transaction() as own:
            yield own

    async def _post(
        self,
        uow: UnitOfWork,
        user_id: int,
        tx_type: WalletTransactionType,
        signed_amount: int,
        description: str,
        reference_type: Optional[ReferenceType],
        reference_id: Optional[int],
    ) -> WalletTransaction:
        wallet = await uow.wallets.lock_or_create(user_id)

        balance_after = wallet.balance + signed_amount
        if balance_after < 0:
            raise InsufficientBalance(
                "Insufficient wallet balance",
                details={"balance": wallet.balance, "requested": -signed_amount},
            )

        outcome, entry = await uow.wallets.apply_entry(WalletTransaction(
            wallet_id=wallet.id,
            type=tx_type,
            amount=signed_amount,
            balance_before=wallet.balance,
            balance_after=balance_after,
            description=description,
            reference_type=reference_type,
            reference_id=reference_id,
            created_at=self._clock(),
        ))
        if outcome != CasOutcome.APPLIED or entry is None:
            raise ConcurrentModificationError(f"Wallet of user {user_id} was modified concurrently")

        await log_info(
            f"Кошелёк user={user_id}: {tx_type.value} {signed_amount:+d} ({wallet.balance} -> {balance_after})",
            type_msg=TypeMsg.INFO,
        )
        return entry

    @staticmethod
    def _require_positive(amount: int) -> None:
        if not isinstance(amount, int) or isinstance(amount, bool) or amount <= 0:
            raise ValidationError("Amount must be a positive integer")

    # =========================================================================
    # ОПЕРАЦИИ
    # =========================================================================

    async def credit(
        self,
        user_id: int,
        amount: int,
        description: str,
        reference_type: Optional[ReferenceType] = None,
        reference_id: Optional[int] = None,
        uow: Optional[UnitOfWork] = None,
    ) -> WalletTransaction:
        """
        Зачисление (заработок, возврат).

        Args:
            user_id: Владелец кошелька
            amount: Положительная сумма
            description: Описание проводки
            reference_type: Тип связанной сущности
            reference_id: ID связанной сущности
            uow: Транзакция вызывающего кода (если None — своя)

        Returns:
            Сохранённая проводка
        """
        self._require_positive(amount)
        async with self._unit(uow) as unit:
            return await self._post(
                unit, user_id, WalletTransactionType.CREDIT, amount, description, reference_type, reference_id
            )

    async def debit(
        self,
        user_id: int,
        amount: int,
        description: str,
        reference_type: Optional[ReferenceType] = None,
        reference_id: Optional[int] = None,
        uow: Optional[UnitOfWork] = None,
    ) -> WalletTransaction:
        """
        Списание. InsufficientBalance, если сумма больше баланса.
        """
        self._require_positive(amount)
        async with self._unit(uow) as unit:
            return await self._post(
                unit, user_id, WalletTransactionType.DEBIT, -amount, description, reference_type, reference_id
            )

    async def topup(
        self,
        user_id: int,
        amount: int,
        reference_id: Optional[int] = None,
        uow: Optional[UnitOfWork] = None,
    ) -> WalletTransaction:
        """Пополнение кошелька после подтверждённого платежа."""
        self._require_positive(amount)
        async with self._unit(uow) as unit:
            return await self._post(
                unit, user_id, WalletTransactionType.TOPUP, amount, "Wallet top up",
                ReferenceType.PAYMENT, reference_id,
            )

    async def withdraw(
        self,
        user_id: int,
        amount: int,
        description: str = "Withdrawal",
        uow: Optional[UnitOfWork] = None,
    ) -> WalletTransaction:
        """
        Вывод средств с проверкой минимальной суммы и суточного лимита.
        """
        self._require_positive(amount)
        if amount < self.min_withdrawal:
            raise ValidationError(
                f"Minimum withdrawal amount is {self.min_withdrawal}",
                details={"min_withdrawal": self.min_withdrawal},
            )

        async with self._unit(uow) as unit:
            wallet = await unit.wallets.lock_or_create(user_id)
            withdrawn_today = await unit.wallets.sum_amount_since(
                wallet.id, WalletTransactionType.WITHDRAW, start_of_day(self._clock())
            )
            if withdrawn_today + amount > self.max_withdrawal_per_day:
                raise ValidationError(
                    "Daily withdrawal limit exceeded",
                    details={"limit": self.max_withdrawal_per_day, "withdrawn_today": withdrawn_today},
                )
            return await self._post(
                unit, user_id, WalletTransactionType.WITHDRAW, -amount, description, ReferenceType.PAYOUT, None
            )

    # =========================================================================
    # ЧТЕНИЕ
    # =========================================================================

    async def get_balance(self, user_id: int) -> BalanceInfo:
        """Баланс пользователя; без кошелька — нулевой."""
        async with self._storage.transaction() as uow:
            wallet = await uow.wallets.get_by_user(user_id)

        if wallet is None:
            return BalanceInfo(user_id=user_id, balance=0, pending_balance=0, currency=self.currency)
        return BalanceInfo(
            user_id=user_id,
            balance=wallet.balance,
            pending_balance=wallet.pending_balance,
            currency=self.currency,
        )

    async def get_transactions(
        self,
        user_id: int,
        limit: int = 20,
        offset: int = 0,
        tx_type: Optional[WalletTransactionType] = None,
    ) -> list[WalletTransaction]:
        """Страница журнала (новые сверху)."""
        async with self._storage.transaction() as uow:
            wallet = await uow.wallets.get_by_user(user_id)
            if wallet is None:
                return []
            return await uow.wallets.list_transactions(wallet.id, limit=limit, offset=offset, tx_type=tx_type)
