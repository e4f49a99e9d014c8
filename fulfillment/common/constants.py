# fulfillment/common/constants.py
"""
Общие константы и перечисления.
"""

from enum import Enum


class TypeMsg(str, Enum):
    """Типы сообщений для логирования."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class OrderStatus(str, Enum):
    """Статусы заказа доставки."""
    PENDING = "PENDING"
    PAYMENT_PENDING = "PAYMENT_PENDING"
    PAYMENT_FAILED = "PAYMENT_FAILED"
    CONFIRMED = "CONFIRMED"
    PREPARING = "PREPARING"
    READY_FOR_PICKUP = "READY_FOR_PICKUP"
    DRIVER_ASSIGNED = "DRIVER_ASSIGNED"
    DRIVER_AT_MERCHANT = "DRIVER_AT_MERCHANT"
    PICKED_UP = "PICKED_UP"
    ON_DELIVERY = "ON_DELIVERY"
    DRIVER_AT_LOCATION = "DRIVER_AT_LOCATION"
    DELIVERED = "DELIVERED"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"
    REFUNDED = "REFUNDED"


class DriverStatus(str, Enum):
    """Статусы водителя."""
    OFFLINE = "OFFLINE"
    ONLINE = "ONLINE"
    BUSY = "BUSY"


class OfferStatus(str, Enum):
    """Статусы предложения водителя."""
    PENDING = "PENDING"
    ACCEPTED = "ACCEPTED"
    REJECTED = "REJECTED"
    EXPIRED = "EXPIRED"


class PaymentStatus(str, Enum):
    """Статусы оплаты."""
    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"
    EXPIRED = "EXPIRED"
    REFUNDED = "REFUNDED"


class PaymentMethod(str, Enum):
    """Способы оплаты."""
    WALLET = "WALLET"
    CASH = "CASH"
    GATEWAY = "GATEWAY"


class VoucherType(str, Enum):
    """Типы ваучеров."""
    PERCENTAGE = "PERCENTAGE"
    FIXED_AMOUNT = "FIXED_AMOUNT"
    FREE_DELIVERY = "FREE_DELIVERY"
    CASHBACK = "CASHBACK"


class VoucherApplicability(str, Enum):
    """Область применения ваучера."""
    ALL = "ALL"
    SPECIFIC_USERS = "SPECIFIC_USERS"
    MERCHANT_SPECIFIC = "MERCHANT_SPECIFIC"
    CATEGORY_SPECIFIC = "CATEGORY_SPECIFIC"


class VoucherRejection(str, Enum):
    """Причины отказа в применении ваучера (в порядке проверки)."""
    INACTIVE = "INACTIVE"
    NOT_STARTED = "NOT_STARTED"
    EXPIRED = "EXPIRED"
    USAGE_LIMIT_REACHED = "USAGE_LIMIT_REACHED"
    USER_LIMIT_REACHED = "USER_LIMIT_REACHED"
    DAILY_LIMIT_REACHED = "DAILY_LIMIT_REACHED"
    NEW_USERS_ONLY = "NEW_USERS_ONLY"
    MIN_PURCHASE_NOT_MET = "MIN_PURCHASE_NOT_MET"
    MIN_ITEMS_NOT_MET = "MIN_ITEMS_NOT_MET"
    USER_NOT_ELIGIBLE = "USER_NOT_ELIGIBLE"
    MERCHANT_NOT_ELIGIBLE = "MERCHANT_NOT_ELIGIBLE"
    CATEGORY_NOT_ELIGIBLE = "CATEGORY_NOT_ELIGIBLE"


class WalletTransactionType(str, Enum):
    """Типы операций кошелька."""
    CREDIT = "CREDIT"
    DEBIT = "DEBIT"
    TOPUP = "TOPUP"
    WITHDRAW = "WITHDRAW"


class ReferenceType(str, Enum):
    """Типы ссылок в записях журнала кошелька."""
    ORDER = "order"
    REFUND = "refund"
    PAYMENT = "payment"
    PAYOUT = "payout"
