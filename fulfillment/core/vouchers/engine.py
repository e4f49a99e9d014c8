# fulfillment/core/vouchers/engine.py
"""
Правила ваучеров: проверка применимости и расчёт скидки.

Функции чистые: счётчики применений передаются снаружи.
Проверки выполняются строго по порядку, первая неудачная побеждает.
"""

from __future__ import annotations

import math
from datetime import datetime

from fulfillment.common.constants import VoucherApplicability, VoucherRejection, VoucherType
from fulfillment.core.vouchers.models import UsageStats, Voucher, VoucherCheck, VoucherContext


def validate(voucher: Voucher, context: VoucherContext, usage: UsageStats, now: datetime) -> VoucherCheck:
    """
    Проверяет, можно ли применить ваучер.

    Args:
        voucher: Ваучер
        context: Пользователь, продавец, сумма и количество товаров
        usage: Счётчики применений пользователя и за текущие сутки
        now: Текущее время (UTC)

    Returns:
        VoucherCheck с кодом причины отказа
    """
    if not voucher.is_active:
        return VoucherCheck.fail(VoucherRejection.INACTIVE, "Voucher is no longer active")

    if now < voucher.start_date:
        return VoucherCheck.fail(VoucherRejection.NOT_STARTED, "Voucher is not yet valid")

    if now > voucher.end_date:
        return VoucherCheck.fail(VoucherRejection.EXPIRED, "Voucher has expired")

    if voucher.max_usage is not None and voucher.current_usage >= voucher.max_usage:
        return VoucherCheck.fail(VoucherRejection.USAGE_LIMIT_REACHED, "Voucher usage limit has been reached")

    if usage.user_usage >= voucher.max_usage_per_user:
        return VoucherCheck.fail(VoucherRejection.USER_LIMIT_REACHED, "You have already used this voucher")

    if voucher.daily_limit is not None and usage.today_usage >= voucher.daily_limit:
        return VoucherCheck.fail(VoucherRejection.DAILY_LIMIT_REACHED, "Daily limit for this voucher has been reached")

    if voucher.is_for_new_users and usage.completed_orders > 0:
        return VoucherCheck.fail(VoucherRejection.NEW_USERS_ONLY, "This voucher is only for new users")

    if not context.for_listing and context.subtotal < voucher.min_purchase:
        return VoucherCheck.fail(
            VoucherRejection.MIN_PURCHASE_NOT_MET,
            f"Minimum purchase of {voucher.min_purchase} required",
        )

    if not context.for_listing and context.item_count < voucher.min_items:
        return VoucherCheck.fail(
            VoucherRejection.MIN_ITEMS_NOT_MET,
            f"Minimum of {voucher.min_items} items required",
        )

    return _check_scope(voucher, context)


def _check_scope(voucher: Voucher, context: VoucherContext) -> VoucherCheck:
    match voucher.applicability:
        case VoucherApplicability.SPECIFIC_USERS:
            if context.user_id not in voucher.user_ids:
                return VoucherCheck.fail(VoucherRejection.USER_NOT_ELIGIBLE, "This voucher is not available for you")
        case VoucherApplicability.MERCHANT_SPECIFIC:
            # Без продавца в контексте (список ваучеров) ограничение не проверяется
            if context.merchant_id is not None and context.merchant_id not in voucher.merchant_ids:
                return VoucherCheck.fail(
                    VoucherRejection.MERCHANT_NOT_ELIGIBLE,
                    "This voucher is not valid for this merchant",
                )
        case VoucherApplicability.CATEGORY_SPECIFIC:
            if context.category_ids and not set(context.category_ids) & set(voucher.category_ids):
                return VoucherCheck.fail(
                    VoucherRejection.CATEGORY_NOT_ELIGIBLE,
                    "This voucher is not valid for these products",
                )
    return VoucherCheck.ok()


def compute_discount(voucher: Voucher, subtotal: int) -> int:
    """
    Скидка по ваучеру на сумму товаров.

    Бесплатная доставка и кэшбэк дают 0: доставку компенсирует вызывающий код,
    кэшбэк выплачивается после завершения заказа.
    """
    match voucher.type:
        case VoucherType.PERCENTAGE:
            discount = math.floor(subtotal * voucher.value / 100)
            if voucher.max_discount is not None:
                discount = min(discount, voucher.max_discount)
        case VoucherType.FIXED_AMOUNT:
            discount = voucher.value
        case _:
            discount = 0

    return max(0, min(discount, subtotal))
