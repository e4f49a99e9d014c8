# fulfillment/infra/database.py
"""
Менеджер базы данных PostgreSQL.
Реализует пул соединений, автоматический retry и транзакции.
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from enum import Enum
from functools import wraps
from typing import Any, AsyncGenerator, Callable, TypeVar

import asyncpg
from asyncpg import Connection, Pool, Record

from fulfillment.common.constants import TypeMsg
from fulfillment.common.logger import log_error, log_info, log_warning

T = TypeVar("T")


class CasOutcome(str, Enum):
    """
    Результат условного обновления строки.

    STALE означает, что строка существует, но её текущее значение
    уже не совпадает с ожидаемым; MISSING означает, что строки нет.
    """
    APPLIED = "applied"
    STALE = "stale"
    MISSING = "missing"


def retry_on_connection_error(
    max_attempts: int = 3,
    delay: float = 1.0,
) -> Callable[[Callable[..., T]], Callable[..., T]]:
    """
    Декоратор для автоматического ретрая при ошибках подключения.

    Args:
        max_attempts: Максимальное количество попыток
        delay: Задержка между попытками (секунды)
    """
    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        @wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> T:
            last_error: Exception | None = None

            for attempt in range(1, max_attempts + 1):
                try:
                    return await func(*args, **kwargs)
                except (
                    asyncpg.PostgresConnectionError,
                    asyncpg.InterfaceError,
                    ConnectionRefusedError,
                    OSError,
                ) as e:
                    last_error = e
                    if attempt < max_attempts:
                        await log_info(
                            f"Ошибка подключения к БД (попытка {attempt}/{max_attempts}): {e}",
                            type_msg=TypeMsg.WARNING,
                        )
                        await asyncio.sleep(delay * attempt)
                    else:
                        await log_error(f"Не удалось подключиться к БД после {max_attempts} попыток: {e}")

            raise last_error  # type: ignore

        return wrapper  # type: ignore

    return decorator


class DatabaseManager:
    """
    Менеджер подключений к PostgreSQL.

    Экземпляр создаётся точкой входа процесса и передаётся в хранилище
    явно; жизненным циклом пула (connect/disconnect) управляет она же.
    """

    def __init__(self, dsn: str, min_size: int = 5, max_size: int = 20, command_timeout: int = 60) -> None:
        self._dsn = dsn
        self._min_size = min_size
        self._max_size = max_size
        self._command_timeout = command_timeout
        self._pool: Pool | None = None

    @classmethod
    def from_settings(cls) -> DatabaseManager:
        """Создаёт менеджер по секции database конфигурации."""
        from fulfillment.config import settings

        return cls(
            dsn=settings.database.dsn,
            min_size=settings.database.DB_MIN_POOL_SIZE,
            max_size=settings.database.DB_MAX_POOL_SIZE,
            command_timeout=settings.database.DB_COMMAND_TIMEOUT,
        )

    @property
    def pool(self) -> Pool:
        """Возвращает пул соединений."""
        if self._pool is None:
            raise RuntimeError("Пул соединений не инициализирован. Вызовите connect() сначала.")
        return self._pool

    @retry_on_connection_error(max_attempts=3, delay=1.0)
    async def connect(self) -> None:
        """Создаёт пул соединений к PostgreSQL."""
        if self._pool is not None:
            return

        await log_info("Подключение к PostgreSQL...", type_msg=TypeMsg.INFO)

        self._pool = await asyncpg.create_pool(
            dsn=self._dsn,
            min_size=self._min_size,
            max_size=self._max_size,
            command_timeout=self._command_timeout,
        )

        await log_info("Подключение к PostgreSQL установлено", type_msg=TypeMsg.INFO)

    async def disconnect(self) -> None:
        """Закрывает пул соединений."""
        if self._pool is not None:
            await self._pool.close()
            self._pool = None
            await log_info("Соединение с PostgreSQL закрыто", type_msg=TypeMsg.INFO)

    @asynccontextmanager
    async def acquire(self) -> AsyncGenerator[Connection, None]:
        """
        Контекстный менеджер для получения соединения из пула.

        Yields:
            Соединение с БД
        """
        async with self.pool.acquire() as connection:
            yield connection

    @asynccontextmanager
    async def transaction(self) -> AsyncGenerator[Connection, None]:
        """
        Контекстный менеджер для транзакции.
        Commit при успехе, rollback при любом исключении.

        Yields:
            Соединение с БД в контексте транзакции

        Example:
            async with db.transaction() as conn:
                await conn.execute("UPDATE orders ...")
                await conn.execute("INSERT INTO order_status_history ...")
        """
        async with self.pool.acquire() as connection:
            async with connection.transaction():
                yield connection

    @retry_on_connection_error()
    async def fetch(self, query: str, *args: Any) -> list[Record]:
        """Выполняет SQL запрос и возвращает все строки."""
        async with self.acquire() as conn:
            return await conn.fetch(query, *args)

    @retry_on_connection_error()
    async def fetchval(self, query: str, *args: Any, column: int = 0) -> Any:
        """Выполняет SQL запрос и возвращает одно значение."""
        async with self.acquire() as conn:
            return await conn.fetchval(query, *args, column=column)

    async def health_check(self) -> bool:
        """
        Проверяет здоровье подключения к БД.

        Returns:
            True если подключение работает
        """
        try:
            result = await self.fetchval("SELECT 1")
            return result == 1
        except Exception as e:
            await log_error(f"Health check PostgreSQL failed: {e}")
            return False

    async def apply_schema(self) -> None:
        """Выполняет начальную миграцию из migrations/init.sql."""
        from fulfillment.config.loader import get_project_root

        schema_path = get_project_root() / "migrations" / "init.sql"
        if not schema_path.exists():
            await log_error(f"Файл схемы БД не найден: {schema_path}")
            return

        with open(schema_path, "r", encoding="utf-8") as f:
            schema_sql = f.read()

        await log_info("Применение схемы БД...", type_msg=TypeMsg.INFO)
        try:
            # advisory lock защищает от одновременного запуска миграций несколькими процессами
            async with self.transaction() as conn:
                await conn.execute("SELECT pg_advisory_xact_lock(424242)")
                await conn.execute(schema_sql)
        except asyncpg.PostgresError as e:
            if "deadlock detected" in str(e) or "already exists" in str(e):
                await log_warning(f"Игнорируем ошибку инициализации (гонка процессов): {e}")
                return
            await log_error(f"Ошибка при инициализации схемы БД: {e}", exc_info=True)
            raise

        await log_info("Схема БД успешно применена", type_msg=TypeMsg.INFO)
