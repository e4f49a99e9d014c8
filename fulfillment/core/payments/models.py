# fulfillment/core/payments/models.py
"""
Модели оплаты и уведомлений платёжного шлюза.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from fulfillment.common.constants import PaymentMethod, PaymentStatus
from fulfillment.common.timeutils import utc_now


class Payment(BaseModel):
    """Запись об оплате заказа (одна на заказ)."""

    id: Optional[int] = None
    order_id: int
    method: PaymentMethod
    amount: int = Field(..., ge=0)
    status: PaymentStatus = PaymentStatus.PENDING
    reference: Optional[str] = Field(None, description="ID транзакции в шлюзе")
    paid_at: Optional[datetime] = None
    expired_at: Optional[datetime] = None
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    class Config:
        from_attributes = True


class GatewayNotification(BaseModel):
    """
    Асинхронное уведомление шлюза о статусе транзакции.
    order_id шлюза содержит номер заказа.
    """

    transaction_id: str
    order_id: str = Field(..., description="Номер заказа (order_number)")
    transaction_status: str
    fraud_status: Optional[str] = None
    status_code: str = ""
    gross_amount: str = ""
    signature_key: str = ""
    payment_type: Optional[str] = None

    @property
    def idempotency_key(self) -> str:
        return f"{self.transaction_id}:{self.transaction_status}"


class NotificationResult(BaseModel):
    """Итог обработки уведомления (для логов и ответа)."""
    processed: bool
    duplicate: bool = False
    order_status: Optional[str] = None
    payment_status: Optional[str] = None
    message: str = ""
