# fulfillment/core/drivers/models.py
"""
Модель профиля водителя-курьера.
"""

from __future__ import annotations

from pydantic import BaseModel, Field

from fulfillment.common.constants import DriverStatus


class DriverProfile(BaseModel):
    """Профиль водителя."""

    id: int = Field(..., description="ID профиля")
    user_id: int = Field(..., description="ID пользователя-водителя")
    status: DriverStatus = Field(DriverStatus.OFFLINE, description="Статус на линии")
    is_verified: bool = Field(False, description="Прошёл ли верификацию")
    total_deliveries: int = Field(0, ge=0)
    credit_balance: int = Field(0, description="Долг за собранные наличные (может быть отрицательным)")

    class Config:
        from_attributes = True

    @property
    def is_available(self) -> bool:
        """Можно ли назначить водителя на заказ."""
        return self.is_verified and self.status == DriverStatus.ONLINE
