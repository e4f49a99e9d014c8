# fulfillment/core/catalog/repository.py
"""
Репозиторий справочных данных (продавцы, товары, зоны).
"""

from __future__ import annotations

from typing import Optional

from asyncpg import Connection, Record

from fulfillment.core.catalog.models import DeliveryZone, Merchant, Product


class CatalogRepository:
    """Чтение справочников и условное списание остатков."""

    def __init__(self, conn: Connection) -> None:
        """
        Args:
            conn: Соединение в контексте текущей транзакции
        """
        self._conn = conn

    async def get_merchant(self, merchant_id: int) -> Optional[Merchant]:
        row = await self._conn.fetchrow(
            """
            SELECT id, owner_id, name, city, latitude, longitude, delivery_radius_km,
                   minimum_order, commission_rate, preparation_time, is_active, is_open
            FROM merchants
            WHERE id = $1
            """,
            merchant_id,
        )
        return Merchant.model_validate(dict(row)) if row else None

    async def get_products(self, merchant_id: int, product_ids: list[int]) -> dict[int, Product]:
        """
        Товары продавца по списку ID.

        Returns:
            Словарь product_id -> Product (отсутствующие и чужие товары не попадают)
        """
        rows = await self._conn.fetch(
            """
            SELECT id, merchant_id, category_id, name, image_url,
                   base_price, discount_price, stock, is_available
            FROM products
            WHERE merchant_id = $1 AND id = ANY($2::bigint[])
            """,
            merchant_id,
            product_ids,
        )
        return {row["id"]: self._row_to_product(row) for row in rows}

    async def decrement_stock(self, product_id: int, quantity: int) -> bool:
        """
        Списывает остаток, только если его хватает.

        Returns:
            True если списание выполнено (или остаток не ограничен)
        """
        row = await self._conn.fetchrow(
            """
            UPDATE products
            SET stock = CASE WHEN stock IS NULL THEN NULL ELSE stock - $2 END
            WHERE id = $1 AND (stock IS NULL OR stock >= $2)
            RETURNING id
            """,
            product_id,
            quantity,
        )
        return row is not None

    async def list_active_zones(self, city: str) -> list[DeliveryZone]:
        rows = await self._conn.fetch(
            """
            SELECT id, city, min_distance, max_distance, base_fee, per_km_fee, is_active
            FROM delivery_zones
            WHERE city = $1 AND is_active
            ORDER BY min_distance
            """,
            city,
        )
        return [DeliveryZone.model_validate(dict(row)) for row in rows]

    def _row_to_product(self, row: Record) -> Product:
        return Product.model_validate(dict(row))
