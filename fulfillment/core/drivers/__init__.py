# fulfillment/core/drivers/__init__.py
from fulfillment.core.drivers.models import DriverProfile
from fulfillment.core.drivers.repository import DriverRepository

__all__ = ["DriverProfile", "DriverRepository"]
