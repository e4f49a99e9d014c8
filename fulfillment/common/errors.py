# fulfillment/common/errors.py
"""
Иерархия доменных ошибок.

Каждая ошибка несёт машинный код, текст для клиента и HTTP статус,
в который её переводит слой API.
"""

from __future__ import annotations

from typing import Any


class FulfillmentError(Exception):
    """Базовая ошибка ядра доставки."""

    status_code: int = 500
    code: str = "INTERNAL_ERROR"

    def __init__(self, message: str, *, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        """Тело ответа API."""
        return {"error": self.code, "message": self.message, "details": self.details}


# =============================================================================
# 400: НЕКОРРЕКТНЫЕ ВХОДНЫЕ ДАННЫЕ
# =============================================================================

class ValidationError(FulfillmentError):
    status_code = 400
    code = "VALIDATION_ERROR"


class MerchantUnavailable(ValidationError):
    code = "MERCHANT_UNAVAILABLE"


class MerchantClosed(ValidationError):
    code = "MERCHANT_CLOSED"


class OutOfRange(ValidationError):
    code = "OUT_OF_RANGE"


class MinimumOrder(ValidationError):
    code = "MINIMUM_ORDER"


class ProductUnavailable(ValidationError):
    code = "PRODUCT_UNAVAILABLE"


class InsufficientStock(ValidationError):
    code = "INSUFFICIENT_STOCK"


class InvalidVoucher(ValidationError):
    """Ваучер не прошёл проверку. reason содержит код правила."""

    code = "INVALID_VOUCHER"

    def __init__(self, reason: str, message: str) -> None:
        super().__init__(message, details={"reason": reason})
        self.reason = reason


# =============================================================================
# 404 / 403
# =============================================================================

class NotFoundError(FulfillmentError):
    status_code = 404
    code = "NOT_FOUND"


class ForbiddenError(FulfillmentError):
    status_code = 403
    code = "FORBIDDEN"


# =============================================================================
# КОНФЛИКТЫ СОСТОЯНИЯ
# =============================================================================

class ConflictError(FulfillmentError):
    status_code = 400
    code = "CONFLICT"


class InvalidTransition(ConflictError):
    """Переход статуса отсутствует в таблице допустимых переходов."""

    code = "INVALID_TRANSITION"

    def __init__(self, current: str, requested: str) -> None:
        super().__init__(
            f"Cannot change order status from {current} to {requested}",
            details={"current": current, "requested": requested},
        )
        self.current = current
        self.requested = requested


class InvalidOperation(ConflictError):
    code = "INVALID_OPERATION"


class OrderNotBiddable(ConflictError):
    code = "ORDER_NOT_BIDDABLE"


class DuplicateOffer(ConflictError):
    code = "DUPLICATE_OFFER"


class SelfOrder(ConflictError):
    code = "SELF_ORDER"


class AlreadyAssigned(ConflictError):
    code = "ALREADY_ASSIGNED"


class OfferExpired(ConflictError):
    code = "OFFER_EXPIRED"


class DriverUnavailable(ConflictError):
    code = "DRIVER_UNAVAILABLE"


class InsufficientBalance(ConflictError):
    code = "INSUFFICIENT_BALANCE"


class ConcurrentModificationError(ConflictError):
    """Условное обновление проиграло гонку. Запрос можно повторить."""

    status_code = 409
    code = "CONCURRENT_MODIFICATION"
