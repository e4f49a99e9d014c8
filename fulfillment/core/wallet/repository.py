# fulfillment/core/wallet/repository.py
"""
Репозиторий кошельков и журнала операций.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from asyncpg import Connection

from fulfillment.common.constants import WalletTransactionType
from fulfillment.core.wallet.models import Wallet, WalletTransaction
from fulfillment.infra.database import CasOutcome


_WALLET_COLUMNS = "id, user_id, balance, pending_balance, created_at, updated_at"


class WalletRepository:
    """Кошельки: блокировка строки, запись проводки, чтение журнала."""

    def __init__(self, conn: Connection) -> None:
        self._conn = conn

    async def get_by_user(self, user_id: int) -> Optional[Wallet]:
        row = await self._conn.fetchrow(f"SELECT {_WALLET_COLUMNS} FROM wallets WHERE user_id = $1", user_id)
        return Wallet.model_validate(dict(row)) if row else None

    async def lock_or_create(self, user_id: int) -> Wallet:
        """
        Возвращает кошелёк пользователя, заблокированный до конца транзакции.
        Создаёт нулевой кошелёк, если его ещё нет.
        """
        await self._conn.execute(
            "INSERT INTO wallets (user_id) VALUES ($1) ON CONFLICT (user_id) DO NOTHING",
            user_id,
        )
        row = await self._conn.fetchrow(
            f"SELECT {_WALLET_COLUMNS} FROM wallets WHERE user_id = $1 FOR UPDATE",
            user_id,
        )
        return Wallet.model_validate(dict(row))

    async def apply_entry(self, entry: WalletTransaction) -> tuple[CasOutcome, Optional[WalletTransaction]]:
        """
        Обновляет баланс (условно, от balance_before) и пишет проводку.

        Returns:
            (результат условного обновления, сохранённая проводка или None)
        """
        updated = await self._conn.fetchrow(
            """
            UPDATE wallets SET balance = $3, updated_at = $4
            WHERE id = $1 AND balance = $2
            RETURNING id
            """,
            entry.wallet_id,
            entry.balance_before,
            entry.balance_after,
            entry.created_at,
        )
        if updated is None:
            exists = await self._conn.fetchval("SELECT 1 FROM wallets WHERE id = $1", entry.wallet_id)
            return (CasOutcome.STALE if exists else CasOutcome.MISSING), None

        row = await self._conn.fetchrow(
            """
            INSERT INTO wallet_transactions (
                wallet_id, type, amount, balance_before, balance_after,
                description, reference_type, reference_id, created_at
            ) VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9)
            RETURNING id
            """,
            entry.wallet_id,
            entry.type.value,
            entry.amount,
            entry.balance_before,
            entry.balance_after,
            entry.description,
            entry.reference_type.value if entry.reference_type else None,
            entry.reference_id,
            entry.created_at,
        )
        return CasOutcome.APPLIED, entry.model_copy(update={"id": row["id"]})

    async def list_transactions(
        self,
        wallet_id: int,
        limit: int = 20,
        offset: int = 0,
        tx_type: Optional[WalletTransactionType] = None,
    ) -> list[WalletTransaction]:
        rows = await self._conn.fetch(
            """
            SELECT id, wallet_id, type, amount, balance_before, balance_after,
                   description, reference_type, reference_id, created_at
            FROM wallet_transactions
            WHERE wallet_id = $1 AND ($2::text IS NULL OR type = $2)
            ORDER BY created_at DESC, id DESC
            LIMIT $3 OFFSET $4
            """,
            wallet_id,
            tx_type.value if tx_type else None,
            limit,
            offset,
        )
        return [WalletTransaction.model_validate(dict(row)) for row in rows]

    async def sum_amount_since(self, wallet_id: int, tx_type: WalletTransactionType, since: datetime) -> int:
        """Сумма (по модулю) операций типа tx_type с момента since."""
        total = await self._conn.fetchval(
            """
            SELECT COALESCE(SUM(ABS(amount)), 0) FROM wallet_transactions
            WHERE wallet_id = $1 AND type = $2 AND created_at >= $3
            """,
            wallet_id,
            tx_type.value,
            since,
        )
        return int(total)
