# fulfillment/core/orders/models.py
"""
Модели данных заказов.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from fulfillment.common.constants import OrderStatus, PaymentMethod
from fulfillment.common.timeutils import utc_now


class OrderItem(BaseModel):
    """Позиция заказа: снимок товара на момент покупки."""

    id: Optional[int] = None
    order_id: Optional[int] = None
    product_id: int
    product_name: str = Field(..., description="Название товара на момент заказа")
    product_image: Optional[str] = None
    unit_price: int = Field(..., ge=0, description="Цена за единицу на момент заказа")
    quantity: int = Field(..., gt=0)
    subtotal: int = Field(..., ge=0)
    notes: Optional[str] = None

    class Config:
        from_attributes = True


class Order(BaseModel):
    """Модель заказа доставки."""

    id: Optional[int] = Field(None, description="Числовой ID")
    order_number: str = Field(..., description="Человекочитаемый уникальный номер")

    # Участники
    customer_id: int
    merchant_id: int
    driver_id: Optional[int] = Field(None, description="ID пользователя-водителя")
    voucher_id: Optional[int] = None

    # Доставка
    delivery_address: str
    delivery_latitude: float = Field(..., ge=-90.0, le=90.0)
    delivery_longitude: float = Field(..., ge=-180.0, le=180.0)
    distance_km: float = Field(0.0, ge=0.0)

    # Деньги (минимальные единицы валюты)
    subtotal: int = Field(..., ge=0)
    delivery_fee: int = Field(..., ge=0)
    service_fee: int = Field(0, ge=0)
    platform_fee: int = Field(0, ge=0)
    discount: int = Field(0, ge=0)
    total_amount: int = Field(..., ge=0)
    merchant_commission: int = Field(0, ge=0)
    driver_earnings: int = Field(0, ge=0)
    platform_earnings: int = Field(0, ge=0)

    payment_method: PaymentMethod = PaymentMethod.GATEWAY
    status: OrderStatus = OrderStatus.PENDING
    notes: Optional[str] = None
    estimated_delivery_time: Optional[datetime] = None

    # Временные метки
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)
    confirmed_at: Optional[datetime] = None
    prepared_at: Optional[datetime] = None
    picked_up_at: Optional[datetime] = None
    delivered_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    cancelled_by: Optional[int] = None
    cancellation_reason: Optional[str] = None

    items: list[OrderItem] = Field(default_factory=list)

    class Config:
        from_attributes = True

    @property
    def totals_consistent(self) -> bool:
        """Выполняется ли total = subtotal + сборы - скидка."""
        return self.total_amount == (
            self.subtotal + self.delivery_fee + self.service_fee + self.platform_fee - self.discount
        )


class OrderStatusHistory(BaseModel):
    """Запись журнала смены статусов (только добавление)."""

    id: Optional[int] = None
    order_id: int
    status: OrderStatus
    notes: Optional[str] = None
    changed_by: Optional[int] = None
    created_at: datetime = Field(default_factory=utc_now)

    class Config:
        from_attributes = True


# =============================================================================
# DTO
# =============================================================================

class CreateOrderItemDTO(BaseModel):
    """Позиция корзины."""
    product_id: int
    quantity: int = Field(..., gt=0)
    notes: Optional[str] = None


class CreateOrderDTO(BaseModel):
    """DTO для оформления заказа."""
    merchant_id: int
    items: list[CreateOrderItemDTO] = Field(..., min_length=1)
    delivery_address: str = Field(..., min_length=1)
    delivery_latitude: float = Field(..., ge=-90.0, le=90.0)
    delivery_longitude: float = Field(..., ge=-180.0, le=180.0)
    payment_method: PaymentMethod = PaymentMethod.GATEWAY
    voucher_code: Optional[str] = None
    notes: Optional[str] = None


class CancelResult(BaseModel):
    """Результат отмены заказа."""
    order: Order
    refunded_amount: int = 0
    refund_transaction_id: Optional[int] = None
