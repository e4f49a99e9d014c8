# tests/conftest.py
"""
Общие фикстуры и настройки для тестов.
"""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any
from unittest.mock import AsyncMock

import pytest

# Устанавливаем переменные окружения перед импортом модулей
os.environ.setdefault("DB_PASSWORD", "test_password")
os.environ.setdefault("REDIS_PASSWORD", "")

from fulfillment.common.constants import DriverStatus, VoucherType  # noqa: E402
from fulfillment.core.catalog.models import Merchant, Product  # noqa: E402
from fulfillment.core.drivers.models import DriverProfile  # noqa: E402
from fulfillment.core.notifications.service import Notifier  # noqa: E402
from fulfillment.core.offers.service import OfferService  # noqa: E402
from fulfillment.core.orders.service import OrderService  # noqa: E402
from fulfillment.core.orders.state_machine import OrderStateMachine  # noqa: E402
from fulfillment.core.payments.gateway import Sha512SignatureVerifier  # noqa: E402
from fulfillment.core.payments.service import PaymentService  # noqa: E402
from fulfillment.core.pricing.calculator import DefaultFeeSchedule, PricingCalculator  # noqa: E402
from fulfillment.core.pricing.zones import ZoneResolver  # noqa: E402
from fulfillment.core.vouchers.models import Voucher  # noqa: E402
from fulfillment.core.vouchers.service import VoucherService  # noqa: E402
from fulfillment.core.wallet.service import WalletLedger  # noqa: E402
from tests.fakes import (  # noqa: E402
    DRIVER_USER_ID,
    MERCHANT_ID,
    MERCHANT_LAT,
    MERCHANT_LON,
    MERCHANT_OWNER_ID,
    SECOND_DRIVER_USER_ID,
    SERVER_KEY,
    UNVERIFIED_DRIVER_USER_ID,
    FakeClock,
    InMemoryStorage,
    make_voucher,
)


# =============================================================================
# ФИКСТУРЫ КОНФИГУРАЦИИ
# =============================================================================

@pytest.fixture(scope="session")
def project_root() -> Path:
    """Корневая директория проекта."""
    return Path(__file__).parent.parent


@pytest.fixture(scope="session")
def config_path(project_root: Path) -> Path:
    """Путь к файлу конфигурации."""
    return project_root / "config" / "config.json"


@pytest.fixture
def mock_config() -> dict[str, Any]:
    """Мок конфигурации для тестов."""
    return {
        "_comment_system": "Системные настройки",
        "PROJECT_NAME": "delivery_test",
        "VERSION": "1.0.0-test",
        "DEBUG": True,
        "API_PORT": 8080,
        "API_PREFIX": "/api/test",
        "LOG_LEVEL": "DEBUG",
        "DB_HOST": "db.local",
        "DB_NAME": "delivery_test",
        "DB_USER": "tester",
        "REDIS_DB": 1,
        "ZONE_TTL": 60,
        "RABBITMQ_EXCHANGE": "delivery.test",
        "DEFAULT_BASE_FEE": 8000,
        "DEFAULT_PER_KM_FEE": 1500,
        "SERVICE_FEE": 500,
        "PLATFORM_FEE_PERCENT": 2,
        "DRIVER_DELIVERY_SHARE_PERCENT": 80,
        "OFFER_EXPIRY_MINUTES": 10,
        "MIN_WITHDRAWAL": 10000,
        "MAX_WITHDRAWAL_PER_DAY": 100000,
        "VERIFY_SIGNATURE": False,
        "PAYMENT_EXPIRY_MINUTES": 30,
    }


@pytest.fixture
def temp_config_file(tmp_path: Path, mock_config: dict[str, Any]) -> Path:
    """Создаёт временный файл конфигурации."""
    config_file = tmp_path / "config.json"
    config_file.write_text(json.dumps(mock_config, ensure_ascii=False, indent=2), encoding="utf-8")
    return config_file


# =============================================================================
# ФИКСТУРЫ ИНФРАСТРУКТУРЫ (МОКИ)
# =============================================================================

@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def mock_job_queue() -> AsyncMock:
    """Мок очереди фоновых задач."""
    queue = AsyncMock()
    queue.enqueue = AsyncMock(return_value=None)
    return queue


@pytest.fixture
def mock_redis() -> AsyncMock:
    """Мок клиента Redis."""
    redis = AsyncMock()
    redis.get_json = AsyncMock(return_value=None)
    redis.set_json = AsyncMock(return_value=True)
    redis.health_check = AsyncMock(return_value=True)
    return redis


@pytest.fixture
def mock_event_bus() -> AsyncMock:
    """Мок шины событий."""
    event_bus = AsyncMock()
    event_bus.publish = AsyncMock(return_value=None)
    event_bus.is_connected = True
    return event_bus


# =============================================================================
# ТЕСТОВЫЕ ДАННЫЕ
# =============================================================================

@pytest.fixture
def sample_merchant() -> Merchant:
    return Merchant(
        id=MERCHANT_ID,
        owner_id=MERCHANT_OWNER_ID,
        name="Warung Sederhana",
        city="Jakarta",
        latitude=MERCHANT_LAT,
        longitude=MERCHANT_LON,
        delivery_radius_km=10.0,
        minimum_order=20000,
        commission_rate=15.0,
        preparation_time=20,
    )


@pytest.fixture
def sample_products() -> list[Product]:
    return [
        Product(id=10, merchant_id=MERCHANT_ID, category_id=3, name="Nasi Goreng",
                base_price=65000, discount_price=60000, stock=5),
        Product(id=11, merchant_id=MERCHANT_ID, category_id=4, name="Es Teh", base_price=20000),
        Product(id=12, merchant_id=MERCHANT_ID, category_id=3, name="Sate", base_price=40000, is_available=False),
    ]


@pytest.fixture
def sample_drivers() -> list[DriverProfile]:
    return [
        DriverProfile(id=1, user_id=DRIVER_USER_ID, status=DriverStatus.ONLINE, is_verified=True),
        DriverProfile(id=2, user_id=SECOND_DRIVER_USER_ID, status=DriverStatus.ONLINE, is_verified=True),
        DriverProfile(id=3, user_id=UNVERIFIED_DRIVER_USER_ID, status=DriverStatus.ONLINE, is_verified=False),
    ]


@pytest.fixture
def sample_vouchers() -> list[Voucher]:
    return [
        make_voucher(),
        make_voucher(id=2, code="FREESHIP", name="Бесплатная доставка", type=VoucherType.FREE_DELIVERY,
                     value=0, max_discount=None, min_purchase=0),
        make_voucher(id=3, code="FLAT5K", name="Минус 5000", type=VoucherType.FIXED_AMOUNT,
                     value=5000, max_discount=None, min_purchase=0, max_usage_per_user=5),
    ]


@pytest.fixture
def storage(
    sample_merchant: Merchant,
    sample_products: list[Product],
    sample_drivers: list[DriverProfile],
    sample_vouchers: list[Voucher],
) -> InMemoryStorage:
    """Хранилище в памяти с продавцом, товарами, водителями и ваучерами."""
    store = InMemoryStorage()
    store.state.merchants[sample_merchant.id] = sample_merchant
    for product in sample_products:
        store.state.products[product.id] = product
    for driver in sample_drivers:
        store.state.drivers[driver.id] = driver
    for voucher in sample_vouchers:
        store.state.vouchers[voucher.id] = voucher
    return store


# =============================================================================
# СЕРВИСЫ
# =============================================================================

@pytest.fixture
def pricing() -> PricingCalculator:
    return PricingCalculator(
        default_schedule=DefaultFeeSchedule(base_fee=10000, per_km_fee=2000),
        service_fee=1000,
        platform_fee_percent=1,
    )


@pytest.fixture
def notifier(mock_job_queue: AsyncMock) -> Notifier:
    return Notifier(mock_job_queue)


@pytest.fixture
def state_machine(clock: FakeClock) -> OrderStateMachine:
    return OrderStateMachine(clock)


@pytest.fixture
def voucher_service(storage: InMemoryStorage, clock: FakeClock) -> VoucherService:
    return VoucherService(storage, clock=clock)


@pytest.fixture
def wallet(storage: InMemoryStorage, clock: FakeClock) -> WalletLedger:
    return WalletLedger(storage, min_withdrawal=50000, max_withdrawal_per_day=2000000, clock=clock)


@pytest.fixture
def order_service(
    storage: InMemoryStorage,
    pricing: PricingCalculator,
    voucher_service: VoucherService,
    wallet: WalletLedger,
    notifier: Notifier,
    mock_job_queue: AsyncMock,
    state_machine: OrderStateMachine,
    clock: FakeClock,
) -> OrderService:
    return OrderService(
        storage,
        pricing=pricing,
        zones=ZoneResolver(),
        vouchers=voucher_service,
        wallet=wallet,
        notifier=notifier,
        job_queue=mock_job_queue,
        state_machine=state_machine,
        clock=clock,
    )


@pytest.fixture
def offer_service(
    storage: InMemoryStorage,
    pricing: PricingCalculator,
    notifier: Notifier,
    state_machine: OrderStateMachine,
    clock: FakeClock,
) -> OfferService:
    return OfferService(storage, pricing=pricing, notifier=notifier, state_machine=state_machine, clock=clock)


@pytest.fixture
def verifier() -> Sha512SignatureVerifier:
    return Sha512SignatureVerifier(SERVER_KEY)


@pytest.fixture
def payment_service(
    storage: InMemoryStorage,
    verifier: Sha512SignatureVerifier,
    notifier: Notifier,
    state_machine: OrderStateMachine,
    clock: FakeClock,
) -> PaymentService:
    return PaymentService(storage, verifier=verifier, notifier=notifier, state_machine=state_machine, clock=clock)
