# fulfillment/core/vouchers/models.py
"""
Модели ваучеров и их применений.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from fulfillment.common.constants import VoucherApplicability, VoucherRejection, VoucherType
from fulfillment.common.timeutils import utc_now


class Voucher(BaseModel):
    """Ваучер (промокод)."""

    id: int
    code: str = Field(..., description="Уникальный код (хранится в верхнем регистре)")
    name: str = ""
    type: VoucherType
    value: int = Field(..., ge=0, description="Процент или сумма скидки")
    max_discount: Optional[int] = Field(None, ge=0, description="Потолок скидки для процентного типа")
    min_purchase: int = Field(0, ge=0)
    min_items: int = Field(0, ge=0)

    applicability: VoucherApplicability = VoucherApplicability.ALL
    user_ids: list[int] = Field(default_factory=list)
    merchant_ids: list[int] = Field(default_factory=list)
    category_ids: list[int] = Field(default_factory=list)
    is_for_new_users: bool = False

    max_usage: Optional[int] = Field(None, ge=0, description="Глобальный лимит применений")
    max_usage_per_user: int = Field(1, ge=0)
    daily_limit: Optional[int] = Field(None, ge=0)
    current_usage: int = Field(0, ge=0, description="Счётчик применений (равен числу VoucherUsage)")

    start_date: datetime
    end_date: datetime
    is_active: bool = True

    class Config:
        from_attributes = True

    @field_validator("code", mode="before")
    @classmethod
    def normalize_code(cls, v: str) -> str:
        return v.strip().upper() if isinstance(v, str) else v

    @field_validator("user_ids", "merchant_ids", "category_ids", mode="before")
    @classmethod
    def none_to_list(cls, v: Optional[list[int]]) -> list[int]:
        return list(v) if v else []


class VoucherUsage(BaseModel):
    """Запись о применении ваучера (неизменяемая)."""

    id: Optional[int] = None
    voucher_id: int
    user_id: int
    order_id: int
    discount_amount: int = 0
    used_at: datetime = Field(default_factory=utc_now)

    class Config:
        from_attributes = True


@dataclass
class VoucherContext:
    """Контекст проверки ваучера."""
    user_id: int
    subtotal: int = 0
    item_count: int = 0
    merchant_id: Optional[int] = None
    category_ids: list[int] = field(default_factory=list)
    # Режим списка доступных ваучеров: минимальная сумма не проверяется
    for_listing: bool = False


@dataclass
class UsageStats:
    """Счётчики применений, нужные для проверки лимитов."""
    user_usage: int = 0
    today_usage: int = 0
    completed_orders: int = 0


@dataclass(frozen=True)
class VoucherCheck:
    """Результат проверки ваучера."""
    valid: bool
    reason: Optional[VoucherRejection] = None
    message: str = ""

    @classmethod
    def ok(cls) -> VoucherCheck:
        return cls(valid=True)

    @classmethod
    def fail(cls, reason: VoucherRejection, message: str) -> VoucherCheck:
        return cls(valid=False, reason=reason, message=message)


class VoucherQuote(BaseModel):
    """Ответ предварительного расчёта скидки."""
    code: str
    type: VoucherType
    discount: int
    free_delivery: bool = False
