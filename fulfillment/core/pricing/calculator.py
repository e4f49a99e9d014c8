# fulfillment/core/pricing/calculator.py
"""
Калькулятор расстояния и стоимости доставки.

Чистые функции без обращения к сети и БД. Все суммы — целые числа
в минимальных единицах валюты.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, replace
from typing import Optional, Protocol


EARTH_RADIUS_KM = 6371.0


class FeeSchedule(Protocol):
    """Тариф: фиксированная часть + цена за каждый начатый километр."""
    base_fee: int
    per_km_fee: int


@dataclass(frozen=True)
class Point:
    """Географическая точка (широта, долгота в градусах)."""
    latitude: float
    longitude: float


@dataclass(frozen=True)
class DefaultFeeSchedule:
    """Тариф платформы по умолчанию, если зона не найдена."""
    base_fee: int
    per_km_fee: int


@dataclass(frozen=True)
class FeeBreakdown:
    """Разбивка стоимости заказа."""
    subtotal: int
    delivery_fee: int
    service_fee: int
    platform_fee: int
    discount: int
    total_amount: int
    merchant_commission: int
    driver_earnings: int
    platform_earnings: int


# =============================================================================
# ЧИСТЫЕ ФУНКЦИИ
# =============================================================================

def distance(a: Point, b: Point) -> float:
    """
    Расстояние между двумя точками (в км) по формуле Haversine.

    Args:
        a: Первая точка
        b: Вторая точка

    Returns:
        Расстояние по дуге большого круга, км
    """
    dlat = math.radians(b.latitude - a.latitude)
    dlon = math.radians(b.longitude - a.longitude)

    h = (math.sin(dlat / 2) ** 2 +
         math.cos(math.radians(a.latitude)) * math.cos(math.radians(b.latitude)) *
         math.sin(dlon / 2) ** 2)

    c = 2 * math.atan2(math.sqrt(h), math.sqrt(1 - h))

    return EARTH_RADIUS_KM * c


def delivery_fee(distance_km: float, schedule: FeeSchedule) -> int:
    """
    Стоимость доставки: base + ceil(distance) * per_km.
    Неполный километр оплачивается как целый.
    """
    if distance_km < 0:
        raise ValueError("distance_km must be non-negative")
    return schedule.base_fee + math.ceil(distance_km) * schedule.per_km_fee


def out_of_range(distance_km: float, radius_km: float) -> bool:
    """Находится ли точка за пределами радиуса доставки продавца."""
    return distance_km > radius_km


def estimate_duration_minutes(distance_km: float, average_speed_kmh: float = 30.0) -> int:
    """Оценка времени в пути при средней скорости, в целых минутах (вверх)."""
    return math.ceil(distance_km / average_speed_kmh * 60)


# =============================================================================
# КАЛЬКУЛЯТОР ЗАКАЗА
# =============================================================================

class PricingCalculator:
    """
    Сводный расчёт денежных полей заказа.

    Комиссия продавца и сбор платформы округляются вниз;
    водитель получает DRIVER_DELIVERY_SHARE_PERCENT от стоимости доставки,
    остаток доставки уходит в доход платформы.
    """

    def __init__(
        self,
        default_schedule: DefaultFeeSchedule,
        service_fee: int,
        platform_fee_percent: int,
        driver_delivery_share_percent: int = 100,
        minutes_per_km: int = 5,
        average_speed_kmh: float = 30.0,
    ) -> None:
        self.default_schedule = default_schedule
        self.service_fee = service_fee
        self.platform_fee_percent = platform_fee_percent
        self.driver_delivery_share_percent = driver_delivery_share_percent
        self.minutes_per_km = minutes_per_km
        self.average_speed_kmh = average_speed_kmh

    @classmethod
    def from_settings(cls) -> PricingCalculator:
        """Создаёт калькулятор по секции pricing конфигурации."""
        from fulfillment.config import settings

        pricing = settings.pricing
        return cls(
            default_schedule=DefaultFeeSchedule(
                base_fee=pricing.DEFAULT_BASE_FEE,
                per_km_fee=pricing.DEFAULT_PER_KM_FEE,
            ),
            service_fee=pricing.SERVICE_FEE,
            platform_fee_percent=pricing.PLATFORM_FEE_PERCENT,
            driver_delivery_share_percent=pricing.DRIVER_DELIVERY_SHARE_PERCENT,
            minutes_per_km=pricing.MINUTES_PER_KM,
            average_speed_kmh=pricing.AVERAGE_SPEED_KMH,
        )

    def delivery_fee(self, distance_km: float, zone: Optional[FeeSchedule] = None) -> int:
        """Стоимость доставки по зоне или по тарифу по умолчанию."""
        return delivery_fee(distance_km, zone if zone is not None else self.default_schedule)

    def platform_fee(self, subtotal: int) -> int:
        return math.floor(subtotal * self.platform_fee_percent / 100)

    def driver_share(self, fee: int) -> int:
        """Часть стоимости доставки, причитающаяся водителю."""
        return math.floor(fee * self.driver_delivery_share_percent / 100)

    def delivery_minutes(self, distance_km: float, preparation_time: int) -> int:
        """Ожидаемое время до доставки: приготовление + дорога."""
        return preparation_time + math.ceil(distance_km * self.minutes_per_km)

    def travel_minutes(self, distance_km: float) -> int:
        """Время в пути от продавца до покупателя при средней скорости."""
        return estimate_duration_minutes(distance_km, self.average_speed_kmh)

    def breakdown(
        self,
        *,
        subtotal: int,
        delivery_fee: int,
        discount: int,
        commission_rate: float,
        service_fee: Optional[int] = None,
        platform_fee: Optional[int] = None,
    ) -> FeeBreakdown:
        """
        Полная разбивка стоимости.

        Args:
            subtotal: Сумма товаров
            delivery_fee: Стоимость доставки (уже рассчитанная или принятая из предложения)
            discount: Итоговая скидка (ваучер + компенсация доставки)
            commission_rate: Комиссия продавца, %
            service_fee: Сервисный сбор (по умолчанию из настроек)
            platform_fee: Сбор платформы (по умолчанию процент от subtotal)

        Returns:
            FeeBreakdown, где total = subtotal + delivery + service + platform - discount
        """
        service = self.service_fee if service_fee is None else service_fee
        platform = self.platform_fee(subtotal) if platform_fee is None else platform_fee
        gross = subtotal + delivery_fee + service + platform
        if discount < 0 or discount > gross:
            raise ValueError("discount must be between 0 and the gross amount")

        merchant_commission = math.floor(subtotal * commission_rate / 100)
        driver_earnings = self.driver_share(delivery_fee)
        platform_earnings = merchant_commission + service + platform + (delivery_fee - driver_earnings)

        return FeeBreakdown(
            subtotal=subtotal,
            delivery_fee=delivery_fee,
            service_fee=service,
            platform_fee=platform,
            discount=discount,
            total_amount=gross - discount,
            merchant_commission=merchant_commission,
            driver_earnings=driver_earnings,
            platform_earnings=platform_earnings,
        )

    def quote(
        self,
        subtotal: int,
        distance_km: float,
        zone: Optional[FeeSchedule],
        commission_rate: float,
    ) -> FeeBreakdown:
        """Разбивка без скидки: доставка по зоне (или по умолчанию) и все сборы."""
        return self.breakdown(
            subtotal=subtotal,
            delivery_fee=self.delivery_fee(distance_km, zone),
            discount=0,
            commission_rate=commission_rate,
        )

    @staticmethod
    def apply_discount(fees: FeeBreakdown, discount: int) -> FeeBreakdown:
        """Применяет скидку к разбивке; доли участников не меняются."""
        gross = fees.subtotal + fees.delivery_fee + fees.service_fee + fees.platform_fee
        if discount < 0 or discount > gross:
            raise ValueError("discount must be between 0 and the gross amount")
        return replace(fees, discount=discount, total_amount=gross - discount)
