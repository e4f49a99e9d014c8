# fulfillment/core/vouchers/repository.py
"""
Репозиторий ваучеров и журнала их применений.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from asyncpg import Connection, Record

from fulfillment.core.vouchers.models import Voucher, VoucherUsage


_COLUMNS = """
    id, code, name, type, value, max_discount, min_purchase, min_items,
    applicability, user_ids, merchant_ids, category_ids, is_for_new_users,
    max_usage, max_usage_per_user, daily_limit, current_usage,
    start_date, end_date, is_active
"""


class VoucherRepository:
    """Ваучеры: чтение и запись применений."""

    def __init__(self, conn: Connection) -> None:
        self._conn = conn

    async def get(self, voucher_id: int) -> Optional[Voucher]:
        row = await self._conn.fetchrow(f"SELECT {_COLUMNS} FROM vouchers WHERE id = $1", voucher_id)
        return self._row_to_voucher(row) if row else None

    async def get_by_code(self, code: str, for_update: bool = False) -> Optional[Voucher]:
        """
        Ваучер по коду (без учёта регистра).

        Args:
            code: Код ваучера
            for_update: Заблокировать строку до конца транзакции
        """
        query = f"SELECT {_COLUMNS} FROM vouchers WHERE code = $1"
        if for_update:
            query += " FOR UPDATE"
        row = await self._conn.fetchrow(query, code.strip().upper())
        return self._row_to_voucher(row) if row else None

    async def list_active(self, now: datetime) -> list[Voucher]:
        rows = await self._conn.fetch(
            f"""
            SELECT {_COLUMNS} FROM vouchers
            WHERE is_active AND start_date <= $1 AND end_date >= $1
            ORDER BY end_date
            """,
            now,
        )
        return [self._row_to_voucher(row) for row in rows]

    async def count_usage(
        self,
        voucher_id: int,
        user_id: Optional[int] = None,
        since: Optional[datetime] = None,
    ) -> int:
        """Число применений ваучера (опционально: пользователем и/или с момента since)."""
        return await self._conn.fetchval(
            """
            SELECT COUNT(*) FROM voucher_usages
            WHERE voucher_id = $1
              AND ($2::bigint IS NULL OR user_id = $2)
              AND ($3::timestamptz IS NULL OR used_at >= $3)
            """,
            voucher_id,
            user_id,
            since,
        )

    async def record_usage(self, usage: VoucherUsage) -> VoucherUsage:
        """
        Добавляет запись применения и увеличивает current_usage.
        Единственное место, где меняется счётчик.
        """
        row = await self._conn.fetchrow(
            """
            INSERT INTO voucher_usages (voucher_id, user_id, order_id, discount_amount, used_at)
            VALUES ($1, $2, $3, $4, $5)
            RETURNING id
            """,
            usage.voucher_id,
            usage.user_id,
            usage.order_id,
            usage.discount_amount,
            usage.used_at,
        )
        await self._conn.execute(
            "UPDATE vouchers SET current_usage = current_usage + 1 WHERE id = $1",
            usage.voucher_id,
        )
        return usage.model_copy(update={"id": row["id"]})

    def _row_to_voucher(self, row: Record) -> Voucher:
        return Voucher.model_validate(dict(row))
