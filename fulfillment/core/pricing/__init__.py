# fulfillment/core/pricing/__init__.py
"""
Домен ценообразования.
Расстояние, стоимость доставки, сборы и доли участников.
"""

from fulfillment.core.pricing.calculator import (
    DefaultFeeSchedule,
    FeeBreakdown,
    Point,
    PricingCalculator,
    delivery_fee,
    distance,
    estimate_duration_minutes,
    out_of_range,
)
from fulfillment.core.pricing.zones import ZoneResolver

__all__ = [
    "DefaultFeeSchedule",
    "FeeBreakdown",
    "Point",
    "PricingCalculator",
    "ZoneResolver",
    "delivery_fee",
    "distance",
    "estimate_duration_minutes",
    "out_of_range",
]
