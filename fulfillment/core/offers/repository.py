# fulfillment/core/offers/repository.py
"""
Репозиторий предложений водителей.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from asyncpg import Connection

from fulfillment.common.constants import OfferStatus
from fulfillment.core.offers.models import DriverOffer
from fulfillment.infra.database import CasOutcome


_COLUMNS = """
    id, order_id, driver_profile_id, driver_user_id, proposed_fee,
    status, expires_at, created_at, updated_at
"""


class OfferRepository:
    """Предложения: одна строка на пару (заказ, водитель)."""

    def __init__(self, conn: Connection) -> None:
        self._conn = conn

    async def get(self, offer_id: int, for_update: bool = False) -> Optional[DriverOffer]:
        query = f"SELECT {_COLUMNS} FROM driver_offers WHERE id = $1"
        if for_update:
            query += " FOR UPDATE"
        row = await self._conn.fetchrow(query, offer_id)
        return DriverOffer.model_validate(dict(row)) if row else None

    async def get_by_pair(self, order_id: int, driver_profile_id: int) -> Optional[DriverOffer]:
        row = await self._conn.fetchrow(
            f"SELECT {_COLUMNS} FROM driver_offers WHERE order_id = $1 AND driver_profile_id = $2 FOR UPDATE",
            order_id,
            driver_profile_id,
        )
        return DriverOffer.model_validate(dict(row)) if row else None

    async def insert(self, offer: DriverOffer) -> DriverOffer:
        offer_id = await self._conn.fetchval(
            """
            INSERT INTO driver_offers (
                order_id, driver_profile_id, driver_user_id, proposed_fee,
                status, expires_at, created_at, updated_at
            ) VALUES ($1, $2, $3, $4, $5, $6, $7, $7)
            RETURNING id
            """,
            offer.order_id,
            offer.driver_profile_id,
            offer.driver_user_id,
            offer.proposed_fee,
            offer.status.value,
            offer.expires_at,
            offer.created_at,
        )
        return offer.model_copy(update={"id": offer_id})

    async def reopen(self, offer_id: int, proposed_fee: int, expires_at: datetime, now: datetime) -> DriverOffer:
        """Возвращает завершённое или истёкшее предложение в PENDING с новой ценой."""
        row = await self._conn.fetchrow(
            f"""
            UPDATE driver_offers
            SET proposed_fee = $2, status = $3, expires_at = $4, updated_at = $5
            WHERE id = $1
            RETURNING {_COLUMNS}
            """,
            offer_id,
            proposed_fee,
            OfferStatus.PENDING.value,
            expires_at,
            now,
        )
        return DriverOffer.model_validate(dict(row))

    async def set_status(
        self,
        offer_id: int,
        status: OfferStatus,
        expected: OfferStatus,
        now: datetime,
    ) -> CasOutcome:
        row = await self._conn.fetchrow(
            """
            UPDATE driver_offers SET status = $2, updated_at = $4
            WHERE id = $1 AND status = $3
            RETURNING id
            """,
            offer_id,
            status.value,
            expected.value,
            now,
        )
        if row is not None:
            return CasOutcome.APPLIED
        exists = await self._conn.fetchval("SELECT 1 FROM driver_offers WHERE id = $1", offer_id)
        return CasOutcome.STALE if exists else CasOutcome.MISSING

    async def reject_pending(
        self,
        order_id: int,
        now: datetime,
        exclude_offer_id: Optional[int] = None,
    ) -> list[int]:
        """
        Отклоняет все PENDING предложения по заказу.

        Returns:
            ID пользователей-водителей, чьи предложения отклонены
        """
        rows = await self._conn.fetch(
            """
            UPDATE driver_offers SET status = $2, updated_at = $3
            WHERE order_id = $1 AND status = $4 AND ($5::bigint IS NULL OR id <> $5)
            RETURNING driver_user_id
            """,
            order_id,
            OfferStatus.REJECTED.value,
            now,
            OfferStatus.PENDING.value,
            exclude_offer_id,
        )
        return [row["driver_user_id"] for row in rows]

    async def list_by_order(self, order_id: int) -> list[DriverOffer]:
        rows = await self._conn.fetch(
            f"SELECT {_COLUMNS} FROM driver_offers WHERE order_id = $1 ORDER BY proposed_fee, created_at",
            order_id,
        )
        return [DriverOffer.model_validate(dict(row)) for row in rows]
