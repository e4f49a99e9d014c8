# fulfillment/core/payments/__init__.py
"""
Домен оплат: записи об оплате и уведомления шлюза.
"""

from fulfillment.core.payments.gateway import AcceptAllVerifier, Sha512SignatureVerifier, SignatureVerifier
from fulfillment.core.payments.models import GatewayNotification, NotificationResult, Payment
from fulfillment.core.payments.repository import PaymentRepository
from fulfillment.core.payments.service import PaymentService, map_gateway_status

__all__ = [
    "AcceptAllVerifier",
    "GatewayNotification",
    "NotificationResult",
    "Payment",
    "PaymentRepository",
    "PaymentService",
    "Sha512SignatureVerifier",
    "SignatureVerifier",
    "map_gateway_status",
]
