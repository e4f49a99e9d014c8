# fulfillment/api/dependencies.py
"""
Зависимости HTTP API.
Сборка сервисов и доступ к ним из обработчиков через app.state.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from fastapi import Header, Request

from fulfillment.config import Settings
from fulfillment.core.notifications.service import Notifier
from fulfillment.core.offers.service import OfferService
from fulfillment.core.orders.service import OrderService
from fulfillment.core.orders.state_machine import OrderStateMachine
from fulfillment.core.payments.gateway import AcceptAllVerifier, Sha512SignatureVerifier, SignatureVerifier
from fulfillment.core.payments.service import PaymentService
from fulfillment.core.pricing.calculator import PricingCalculator
from fulfillment.core.pricing.zones import ZoneResolver
from fulfillment.core.vouchers.service import VoucherService
from fulfillment.core.wallet.service import WalletLedger
from fulfillment.infra.job_queue import JobQueue
from fulfillment.infra.redis_client import RedisClient
from fulfillment.infra.storage import Storage


@dataclass
class Actor:
    """Инициатор запроса (заголовки выставляет внешний шлюз)."""
    user_id: int
    is_admin: bool = False


@dataclass
class ServiceContainer:
    """Собранные сервисы приложения."""
    orders: OrderService
    offers: OfferService
    vouchers: VoucherService
    wallet: WalletLedger
    payments: PaymentService


def build_services(
    storage: Storage,
    job_queue: JobQueue,
    settings: Settings,
    redis: Optional[RedisClient] = None,
    verifier: Optional[SignatureVerifier] = None,
) -> ServiceContainer:
    """
    Собирает граф сервисов.

    Args:
        storage: Хранилище
        job_queue: Очередь фоновых задач
        settings: Конфигурация
        redis: Клиент Redis для кэша зон (None — без кэша)
        verifier: Проверка подписи шлюза (по умолчанию из конфигурации)
    """
    pricing = PricingCalculator.from_settings()
    notifier = Notifier(job_queue)
    machine = OrderStateMachine()
    vouchers = VoucherService(storage)
    wallet = WalletLedger.from_settings(storage)

    if verifier is None:
        verifier = (
            Sha512SignatureVerifier(settings.payments.GATEWAY_SERVER_KEY)
            if settings.payments.VERIFY_SIGNATURE
            else AcceptAllVerifier()
        )

    return ServiceContainer(
        orders=OrderService(
            storage,
            pricing=pricing,
            zones=ZoneResolver(redis, ttl=settings.redis_ttl.ZONE_TTL),
            vouchers=vouchers,
            wallet=wallet,
            notifier=notifier,
            job_queue=job_queue,
            state_machine=machine,
            payment_expiry_minutes=settings.payments.PAYMENT_EXPIRY_MINUTES,
        ),
        offers=OfferService(
            storage,
            pricing=pricing,
            notifier=notifier,
            state_machine=machine,
            offer_expiry_minutes=settings.offers.OFFER_EXPIRY_MINUTES,
        ),
        vouchers=vouchers,
        wallet=wallet,
        payments=PaymentService(storage, verifier=verifier, notifier=notifier, state_machine=machine),
    )


def get_services(request: Request) -> ServiceContainer:
    services = getattr(request.app.state, "services", None)
    if services is None:
        raise RuntimeError("Сервисы не инициализированы")
    return services


def get_order_service(request: Request) -> OrderService:
    return get_services(request).orders


def get_offer_service(request: Request) -> OfferService:
    return get_services(request).offers


def get_voucher_service(request: Request) -> VoucherService:
    return get_services(request).vouchers


def get_wallet(request: Request) -> WalletLedger:
    return get_services(request).wallet


def get_payment_service(request: Request) -> PaymentService:
    return get_services(request).payments


def get_actor(
    x_user_id: int = Header(..., alias="X-User-Id"),
    x_user_role: Optional[str] = Header(None, alias="X-User-Role"),
) -> Actor:
    """Инициатор из заголовков X-User-Id и X-User-Role."""
    return Actor(user_id=x_user_id, is_admin=(x_user_role or "").lower() == "admin")
