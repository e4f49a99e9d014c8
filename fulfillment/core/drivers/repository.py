# fulfillment/core/drivers/repository.py
"""
Репозиторий профилей водителей.
"""

from __future__ import annotations

from typing import Optional

from asyncpg import Connection

from fulfillment.common.constants import DriverStatus
from fulfillment.core.drivers.models import DriverProfile
from fulfillment.infra.database import CasOutcome


_COLUMNS = "id, user_id, status, is_verified, total_deliveries, credit_balance"


class DriverRepository:
    """Чтение профилей и смена статуса водителя."""

    def __init__(self, conn: Connection) -> None:
        self._conn = conn

    async def get_by_id(self, profile_id: int) -> Optional[DriverProfile]:
        row = await self._conn.fetchrow(f"SELECT {_COLUMNS} FROM driver_profiles WHERE id = $1", profile_id)
        return DriverProfile.model_validate(dict(row)) if row else None

    async def get_by_user_id(self, user_id: int) -> Optional[DriverProfile]:
        row = await self._conn.fetchrow(f"SELECT {_COLUMNS} FROM driver_profiles WHERE user_id = $1", user_id)
        return DriverProfile.model_validate(dict(row)) if row else None

    async def set_status(
        self,
        user_id: int,
        status: DriverStatus,
        expected: Optional[DriverStatus] = None,
    ) -> CasOutcome:
        """
        Меняет статус водителя.

        Args:
            user_id: ID пользователя-водителя
            status: Новый статус
            expected: Если задан, обновление выполняется только при этом текущем статусе

        Returns:
            Результат условного обновления
        """
        if expected is None:
            row = await self._conn.fetchrow(
                "UPDATE driver_profiles SET status = $2 WHERE user_id = $1 RETURNING id",
                user_id,
                status.value,
            )
        else:
            row = await self._conn.fetchrow(
                "UPDATE driver_profiles SET status = $2 WHERE user_id = $1 AND status = $3 RETURNING id",
                user_id,
                status.value,
                expected.value,
            )
        if row is not None:
            return CasOutcome.APPLIED

        exists = await self._conn.fetchval("SELECT 1 FROM driver_profiles WHERE user_id = $1", user_id)
        return CasOutcome.STALE if exists else CasOutcome.MISSING

    async def increment_deliveries(self, user_id: int) -> None:
        await self._conn.execute(
            "UPDATE driver_profiles SET total_deliveries = total_deliveries + 1 WHERE user_id = $1",
            user_id,
        )

    async def adjust_credit_balance(self, user_id: int, delta: int) -> Optional[int]:
        """
        Сдвигает кредитный баланс водителя на delta (баланс может стать отрицательным).

        Returns:
            Новый баланс или None, если профиля нет
        """
        return await self._conn.fetchval(
            """
            UPDATE driver_profiles SET credit_balance = credit_balance + $2
            WHERE user_id = $1
            RETURNING credit_balance
            """,
            user_id,
            delta,
        )
