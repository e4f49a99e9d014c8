# fulfillment/core/offers/__init__.py
"""
Домен предложений водителей.
"""

from fulfillment.core.offers.models import CreateOfferDTO, DriverOffer
from fulfillment.core.offers.repository import OfferRepository
from fulfillment.core.offers.service import Acceptance, OfferService

__all__ = [
    "Acceptance",
    "CreateOfferDTO",
    "DriverOffer",
    "OfferRepository",
    "OfferService",
]
