# fulfillment/core/offers/models.py
"""
Модель предложения водителя на доставку заказа.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from fulfillment.common.constants import OfferStatus
from fulfillment.common.timeutils import utc_now


class DriverOffer(BaseModel):
    """Предложение водителя: своя цена доставки для конкретного заказа."""

    id: Optional[int] = None
    order_id: int
    driver_profile_id: int
    driver_user_id: int
    proposed_fee: int = Field(..., gt=0)
    status: OfferStatus = OfferStatus.PENDING
    expires_at: datetime
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    class Config:
        from_attributes = True

    def is_open(self, now: datetime) -> bool:
        """PENDING и срок ещё не истёк."""
        return self.status == OfferStatus.PENDING and self.expires_at > now

    def as_seen_at(self, now: datetime) -> DriverOffer:
        """Истёкшее PENDING предложение отображается как EXPIRED."""
        if self.status == OfferStatus.PENDING and self.expires_at <= now:
            return self.model_copy(update={"status": OfferStatus.EXPIRED})
        return self


class CreateOfferDTO(BaseModel):
    """DTO для создания предложения."""
    driver_profile_id: int
    proposed_fee: int
