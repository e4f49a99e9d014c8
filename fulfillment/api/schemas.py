# fulfillment/api/schemas.py
"""
Схемы запросов и ответов HTTP API.
"""

from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, Field

from fulfillment.common.constants import OrderStatus, VoucherType
from fulfillment.core.offers.models import DriverOffer
from fulfillment.core.orders.models import Order


class ErrorResponse(BaseModel):
    """Стандартный ответ с ошибкой."""
    error: str
    message: str
    details: dict[str, Any] = Field(default_factory=dict)


class HealthStatus(BaseModel):
    """Статус здоровья сервиса."""
    service: str
    status: str = "healthy"  # healthy, degraded
    version: Optional[str] = None
    dependencies: dict[str, str] = Field(default_factory=dict)


# =============================================================================
# ЗАКАЗЫ
# =============================================================================

class UpdateStatusRequest(BaseModel):
    status: OrderStatus
    note: Optional[str] = None


class AssignDriverRequest(BaseModel):
    driver_id: int = Field(..., description="ID пользователя-водителя")
    reason: Optional[str] = None


class CancelOrderRequest(BaseModel):
    reason: Optional[str] = None
    refund_amount: Optional[int] = Field(None, ge=0)
    refund_to_wallet: bool = True


class CancelOrderResponse(BaseModel):
    order: Order
    refunded_amount: int = 0


# =============================================================================
# ПРЕДЛОЖЕНИЯ
# =============================================================================

class CreateOfferRequest(BaseModel):
    order_id: int
    driver_profile_id: int
    proposed_fee: int


class AcceptOfferResponse(BaseModel):
    order: Order
    offer: DriverOffer


# =============================================================================
# ВАУЧЕРЫ
# =============================================================================

class ValidateVoucherRequest(BaseModel):
    code: str = Field(..., min_length=1)
    subtotal: int = Field(..., ge=0)
    item_count: int = Field(0, ge=0)
    merchant_id: Optional[int] = None
    category_ids: list[int] = Field(default_factory=list)


class VoucherSummary(BaseModel):
    """Ваучер в списке доступных."""
    code: str
    name: str
    type: VoucherType
    value: int
    max_discount: Optional[int] = None
    min_purchase: int = 0

    class Config:
        from_attributes = True


# =============================================================================
# КОШЕЛЁК
# =============================================================================

class WithdrawRequest(BaseModel):
    amount: int = Field(..., gt=0)
    description: str = "Withdrawal"


class TopupRequest(BaseModel):
    amount: int = Field(..., gt=0)
    payment_id: Optional[int] = Field(None, description="ID подтверждённого платежа")

