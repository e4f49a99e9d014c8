# fulfillment/infra/storage.py
"""
Единица работы (Unit of Work) поверх PostgreSQL.

Сервисы открывают транзакцию через Storage.transaction() и получают
репозитории, привязанные к одному соединению. Commit при успехе,
rollback при любом исключении.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncContextManager, AsyncIterator, Protocol

from asyncpg import Connection

from fulfillment.core.catalog.repository import CatalogRepository
from fulfillment.core.drivers.repository import DriverRepository
from fulfillment.core.offers.repository import OfferRepository
from fulfillment.core.orders.repository import OrderRepository
from fulfillment.core.payments.repository import PaymentRepository
from fulfillment.core.vouchers.repository import VoucherRepository
from fulfillment.core.wallet.repository import WalletRepository
from fulfillment.infra.database import CasOutcome, DatabaseManager

__all__ = ["CasOutcome", "PostgresStorage", "Storage", "UnitOfWork"]


class UnitOfWork:
    """Набор репозиториев одной транзакции."""

    def __init__(self, conn: Connection) -> None:
        self.connection = conn
        self.orders = OrderRepository(conn)
        self.offers = OfferRepository(conn)
        self.vouchers = VoucherRepository(conn)
        self.wallets = WalletRepository(conn)
        self.drivers = DriverRepository(conn)
        self.catalog = CatalogRepository(conn)
        self.payments = PaymentRepository(conn)


class Storage(Protocol):
    """Порт хранилища: выдаёт единицу работы в рамках транзакции."""

    def transaction(self) -> AsyncContextManager[UnitOfWork]:
        ...


class PostgresStorage:
    """Хранилище на пуле asyncpg."""

    def __init__(self, db: DatabaseManager) -> None:
        self._db = db

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[UnitOfWork]:
        async with self._db.transaction() as conn:
            yield UnitOfWork(conn)
