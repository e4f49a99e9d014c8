# fulfillment/core/catalog/__init__.py
from fulfillment.core.catalog.models import DeliveryZone, Merchant, Product
from fulfillment.core.catalog.repository import CatalogRepository

__all__ = ["CatalogRepository", "DeliveryZone", "Merchant", "Product"]
