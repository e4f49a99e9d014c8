# fulfillment/core/wallet/models.py
"""
Модели кошелька и журнала операций.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from fulfillment.common.constants import ReferenceType, WalletTransactionType
from fulfillment.common.timeutils import utc_now


class Wallet(BaseModel):
    """Кошелёк пользователя. balance — проекция суммы операций журнала."""

    id: int
    user_id: int
    balance: int = Field(0, ge=0, description="Доступный баланс")
    pending_balance: int = Field(0, description="Средства в ожидании")
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    class Config:
        from_attributes = True


class WalletTransaction(BaseModel):
    """Запись журнала кошелька (неизменяемая)."""

    id: Optional[int] = None
    wallet_id: int
    type: WalletTransactionType
    amount: int = Field(..., description="Сумма со знаком")
    balance_before: int
    balance_after: int
    description: str
    reference_type: Optional[ReferenceType] = None
    reference_id: Optional[int] = None
    created_at: datetime = Field(default_factory=utc_now)

    class Config:
        from_attributes = True


class BalanceInfo(BaseModel):
    """Баланс пользователя для API."""
    user_id: int
    balance: int
    pending_balance: int
    currency: str
