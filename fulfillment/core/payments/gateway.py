# fulfillment/core/payments/gateway.py
"""
Проверка подписи уведомлений платёжного шлюза.
"""

from __future__ import annotations

import hashlib
import hmac
from typing import Protocol

from fulfillment.core.payments.models import GatewayNotification


class SignatureVerifier(Protocol):
    """Порт проверки подписи."""

    def verify(self, notification: GatewayNotification) -> bool:
        ...


class Sha512SignatureVerifier:
    """
    Подпись = SHA-512(order_id + status_code + gross_amount + server_key).
    """

    def __init__(self, server_key: str) -> None:
        self._server_key = server_key

    def sign(self, order_id: str, status_code: str, gross_amount: str) -> str:
        payload = f"{order_id}{status_code}{gross_amount}{self._server_key}"
        return hashlib.sha512(payload.encode("utf-8")).hexdigest()

    def verify(self, notification: GatewayNotification) -> bool:
        expected = self.sign(notification.order_id, notification.status_code, notification.gross_amount)
        return hmac.compare_digest(expected, notification.signature_key.lower())


class AcceptAllVerifier:
    """Используется, когда проверка подписи отключена в конфигурации."""

    def verify(self, notification: GatewayNotification) -> bool:
        return True
