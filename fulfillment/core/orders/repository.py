# fulfillment/core/orders/repository.py
"""
Репозиторий для работы с заказами в БД.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Optional

from asyncpg import Connection, Record

from fulfillment.common.constants import OrderStatus
from fulfillment.core.orders.models import Order, OrderItem, OrderStatusHistory
from fulfillment.infra.database import CasOutcome


_ORDER_COLUMNS = """
    id, order_number, customer_id, merchant_id, driver_id, voucher_id,
    delivery_address, delivery_latitude, delivery_longitude, distance_km,
    subtotal, delivery_fee, service_fee, platform_fee, discount, total_amount,
    merchant_commission, driver_earnings, platform_earnings,
    payment_method, status, notes, estimated_delivery_time,
    created_at, updated_at, confirmed_at, prepared_at, picked_up_at,
    delivered_at, completed_at, cancelled_at, cancelled_by, cancellation_reason
"""

# Колонки, которые разрешено читать/менять через compare_and_set
MUTABLE_COLUMNS = frozenset({
    "status", "driver_id", "delivery_fee", "discount", "total_amount", "driver_earnings", "platform_earnings",
    "estimated_delivery_time",
    "confirmed_at", "prepared_at", "picked_up_at", "delivered_at", "completed_at",
    "cancelled_at", "cancelled_by", "cancellation_reason",
})


def _db_value(value: Any) -> Any:
    return value.value if isinstance(value, Enum) else value


class OrderRepository:
    """Репозиторий заказов."""

    def __init__(self, conn: Connection) -> None:
        """
        Args:
            conn: Соединение в контексте текущей транзакции
        """
        self._conn = conn

    async def get(self, order_id: int, for_update: bool = False) -> Optional[Order]:
        """
        Заказ по ID (без позиций).

        Args:
            order_id: ID заказа
            for_update: Заблокировать строку до конца транзакции
        """
        query = f"SELECT {_ORDER_COLUMNS} FROM orders WHERE id = $1"
        if for_update:
            query += " FOR UPDATE"
        row = await self._conn.fetchrow(query, order_id)
        return self._row_to_order(row) if row else None

    async def get_by_number(self, order_number: str) -> Optional[Order]:
        row = await self._conn.fetchrow(f"SELECT {_ORDER_COLUMNS} FROM orders WHERE order_number = $1", order_number)
        return self._row_to_order(row) if row else None

    async def get_items(self, order_id: int) -> list[OrderItem]:
        rows = await self._conn.fetch(
            """
            SELECT id, order_id, product_id, product_name, product_image,
                   unit_price, quantity, subtotal, notes
            FROM order_items
            WHERE order_id = $1
            ORDER BY id
            """,
            order_id,
        )
        return [OrderItem.model_validate(dict(row)) for row in rows]

    async def insert(self, order: Order, items: list[OrderItem]) -> Order:
        """
        Сохраняет новый заказ вместе с позициями.

        Returns:
            Заказ с присвоенными ID
        """
        order_id = await self._conn.fetchval(
            """
            INSERT INTO orders (
                order_number, customer_id, merchant_id, driver_id, voucher_id,
                delivery_address, delivery_latitude, delivery_longitude, distance_km,
                subtotal, delivery_fee, service_fee, platform_fee, discount, total_amount,
                merchant_commission, driver_earnings, platform_earnings,
                payment_method, status, notes, estimated_delivery_time, created_at, updated_at
            ) VALUES (
                $1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11, $12,
                $13, $14, $15, $16, $17, $18, $19, $20, $21, $22, $23, $23
            )
            RETURNING id
            """,
            order.order_number, order.customer_id, order.merchant_id, order.driver_id, order.voucher_id,
            order.delivery_address, order.delivery_latitude, order.delivery_longitude, order.distance_km,
            order.subtotal, order.delivery_fee, order.service_fee, order.platform_fee, order.discount,
            order.total_amount, order.merchant_commission, order.driver_earnings, order.platform_earnings,
            order.payment_method.value, order.status.value, order.notes, order.estimated_delivery_time,
            order.created_at,
        )

        saved_items: list[OrderItem] = []
        for item in items:
            item_id = await self._conn.fetchval(
                """
                INSERT INTO order_items (
                    order_id, product_id, product_name, product_image,
                    unit_price, quantity, subtotal, notes
                ) VALUES ($1, $2, $3, $4, $5, $6, $7, $8)
                RETURNING id
                """,
                order_id, item.product_id, item.product_name, item.product_image,
                item.unit_price, item.quantity, item.subtotal, item.notes,
            )
            saved_items.append(item.model_copy(update={"id": item_id, "order_id": order_id}))

        return order.model_copy(update={"id": order_id, "items": saved_items})

    async def compare_and_set(
        self,
        order_id: int,
        expected: dict[str, Any],
        changes: dict[str, Any],
        updated_at: datetime,
    ) -> CasOutcome:
        """
        Условное обновление: применяет changes, только если текущие
        значения колонок совпадают с expected (None означает IS NULL).

        Args:
            order_id: ID заказа
            expected: Ожидаемые текущие значения
            changes: Новые значения
            updated_at: Время изменения

        Returns:
            APPLIED, STALE (строка есть, но изменилась) или MISSING
        """
        unknown = (set(expected) | set(changes)) - MUTABLE_COLUMNS
        if unknown:
            raise ValueError(f"Unsupported order columns: {sorted(unknown)}")

        args: list[Any] = [order_id, updated_at]
        set_parts = ["updated_at = $2"]
        for column, value in changes.items():
            args.append(_db_value(value))
            set_parts.append(f"{column} = ${len(args)}")

        where_parts = ["id = $1"]
        for column, value in expected.items():
            if value is None:
                where_parts.append(f"{column} IS NULL")
            else:
                args.append(_db_value(value))
                where_parts.append(f"{column} = ${len(args)}")

        row = await self._conn.fetchrow(
            f"UPDATE orders SET {', '.join(set_parts)} WHERE {' AND '.join(where_parts)} RETURNING id",
            *args,
        )
        if row is not None:
            return CasOutcome.APPLIED

        exists = await self._conn.fetchval("SELECT 1 FROM orders WHERE id = $1", order_id)
        return CasOutcome.STALE if exists else CasOutcome.MISSING

    async def append_history(self, entry: OrderStatusHistory) -> OrderStatusHistory:
        entry_id = await self._conn.fetchval(
            """
            INSERT INTO order_status_history (order_id, status, notes, changed_by, created_at)
            VALUES ($1, $2, $3, $4, $5)
            RETURNING id
            """,
            entry.order_id,
            entry.status.value,
            entry.notes,
            entry.changed_by,
            entry.created_at,
        )
        return entry.model_copy(update={"id": entry_id})

    async def list_history(self, order_id: int) -> list[OrderStatusHistory]:
        rows = await self._conn.fetch(
            """
            SELECT id, order_id, status, notes, changed_by, created_at
            FROM order_status_history
            WHERE order_id = $1
            ORDER BY id
            """,
            order_id,
        )
        return [OrderStatusHistory.model_validate(dict(row)) for row in rows]

    async def count_completed_by_customer(self, customer_id: int) -> int:
        return await self._conn.fetchval(
            "SELECT COUNT(*) FROM orders WHERE customer_id = $1 AND status = $2",
            customer_id,
            OrderStatus.COMPLETED.value,
        )

    def _row_to_order(self, row: Record) -> Order:
        """Преобразует запись БД в модель Order."""
        return Order.model_validate(dict(row))
