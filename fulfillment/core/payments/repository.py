# fulfillment/core/payments/repository.py
"""
Репозиторий оплат и журнала уведомлений шлюза.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from asyncpg import Connection

from fulfillment.common.constants import PaymentStatus
from fulfillment.core.payments.models import Payment


_COLUMNS = "id, order_id, method, amount, status, reference, paid_at, expired_at, created_at, updated_at"


class PaymentRepository:
    """Оплаты и дедупликация уведомлений."""

    def __init__(self, conn: Connection) -> None:
        self._conn = conn

    async def get_by_order(self, order_id: int) -> Optional[Payment]:
        row = await self._conn.fetchrow(f"SELECT {_COLUMNS} FROM payments WHERE order_id = $1", order_id)
        return Payment.model_validate(dict(row)) if row else None

    async def insert(self, payment: Payment) -> Payment:
        payment_id = await self._conn.fetchval(
            """
            INSERT INTO payments (order_id, method, amount, status, reference, paid_at, expired_at, created_at, updated_at)
            VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $8)
            RETURNING id
            """,
            payment.order_id,
            payment.method.value,
            payment.amount,
            payment.status.value,
            payment.reference,
            payment.paid_at,
            payment.expired_at,
            payment.created_at,
        )
        return payment.model_copy(update={"id": payment_id})

    async def update_status(
        self,
        payment_id: int,
        status: PaymentStatus,
        updated_at: datetime,
        reference: Optional[str] = None,
        paid_at: Optional[datetime] = None,
    ) -> None:
        """Меняет статус оплаты; reference и paid_at перезаписываются, только если заданы."""
        await self._conn.execute(
            """
            UPDATE payments
            SET status = $2,
                reference = COALESCE($3, reference),
                paid_at = COALESCE($4, paid_at),
                updated_at = $5
            WHERE id = $1
            """,
            payment_id,
            status.value,
            reference,
            paid_at,
            updated_at,
        )

    async def register_notification(
        self,
        idempotency_key: str,
        order_number: str,
        transaction_status: str,
        received_at: datetime,
    ) -> bool:
        """
        Регистрирует уведомление шлюза.

        Returns:
            False, если уведомление с таким ключом уже обрабатывалось
        """
        row = await self._conn.fetchrow(
            """
            INSERT INTO payment_notifications (idempotency_key, order_number, transaction_status, received_at)
            VALUES ($1, $2, $3, $4)
            ON CONFLICT (idempotency_key) DO NOTHING
            RETURNING idempotency_key
            """,
            idempotency_key,
            order_number,
            transaction_status,
            received_at,
        )
        return row is not None
