# fulfillment/core/vouchers/__init__.py
"""
Домен ваучеров.
Проверка правил, расчёт скидки и учёт применений.
"""

from fulfillment.core.vouchers.engine import compute_discount, validate
from fulfillment.core.vouchers.models import UsageStats, Voucher, VoucherCheck, VoucherContext, VoucherUsage
from fulfillment.core.vouchers.repository import VoucherRepository
from fulfillment.core.vouchers.service import VoucherService

__all__ = [
    "UsageStats",
    "Voucher",
    "VoucherCheck",
    "VoucherContext",
    "VoucherRepository",
    "VoucherService",
    "VoucherUsage",
    "compute_discount",
    "validate",
]
