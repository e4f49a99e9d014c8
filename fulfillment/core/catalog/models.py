# fulfillment/core/catalog/models.py
"""
Справочные модели: продавцы, товары, зоны доставки.
Ядро их только читает; управление ими вне зоны ответственности.
"""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field


class Merchant(BaseModel):
    """Продавец (ресторан, магазин)."""

    id: int
    owner_id: int = Field(..., description="ID пользователя-владельца (получатель выплат)")
    name: str
    city: str
    latitude: float
    longitude: float
    delivery_radius_km: float = Field(10.0, ge=0.0, description="Радиус доставки в км")
    minimum_order: int = Field(0, ge=0, description="Минимальная сумма заказа")
    commission_rate: float = Field(15.0, ge=0.0, le=100.0, description="Комиссия платформы, %")
    preparation_time: int = Field(15, ge=0, description="Время приготовления, мин")
    is_active: bool = True
    is_open: bool = True

    class Config:
        from_attributes = True


class Product(BaseModel):
    """Товар продавца."""

    id: int
    merchant_id: int
    category_id: Optional[int] = None
    name: str
    image_url: Optional[str] = None
    base_price: int = Field(..., ge=0)
    discount_price: Optional[int] = Field(None, ge=0)
    stock: Optional[int] = Field(None, ge=0, description="Остаток; None — без ограничений")
    is_available: bool = True

    class Config:
        from_attributes = True

    @property
    def unit_price(self) -> int:
        """Цена продажи: со скидкой, если она задана."""
        return self.discount_price if self.discount_price is not None else self.base_price


class DeliveryZone(BaseModel):
    """Тарифная зона доставки (город + диапазон расстояний)."""

    id: int
    city: str
    min_distance: float = 0.0
    max_distance: float
    base_fee: int = Field(..., ge=0)
    per_km_fee: int = Field(..., ge=0)
    is_active: bool = True

    class Config:
        from_attributes = True

    def covers(self, distance_km: float) -> bool:
        """Попадает ли расстояние в диапазон зоны (границы включительно)."""
        return self.min_distance <= distance_km <= self.max_distance
