# fulfillment/infra/redis_client.py
"""
Клиент Redis для кэширования справочных данных (зоны доставки).
"""

from __future__ import annotations

import json

import redis.asyncio as redis

from fulfillment.common.constants import TypeMsg
from fulfillment.common.logger import log_error, log_info


class RedisClient:
    """
    Асинхронный клиент Redis с префиксом пространства имён.

    Экземпляр создаётся точкой входа процесса и передаётся явно.
    """

    def __init__(self, url: str, namespace: str = "delivery", max_connections: int = 50) -> None:
        self._url = url
        self._namespace = namespace
        self._max_connections = max_connections
        self._client: redis.Redis | None = None

    @classmethod
    def from_settings(cls) -> RedisClient:
        """Создаёт клиент по секции redis конфигурации."""
        from fulfillment.config import settings

        return cls(
            url=settings.redis.url,
            namespace=settings.redis.REDIS_NAMESPACE,
            max_connections=settings.redis.REDIS_MAX_CONNECTIONS,
        )

    @property
    def client(self) -> redis.Redis:
        """Возвращает клиент Redis."""
        if self._client is None:
            raise RuntimeError("Redis клиент не инициализирован. Вызовите connect() сначала.")
        return self._client

    def _make_key(self, key: str) -> str:
        """Добавляет namespace к ключу."""
        return f"{self._namespace}:{key}"

    async def connect(self) -> None:
        """Подключается к Redis и проверяет соединение."""
        if self._client is not None:
            return

        await log_info("Подключение к Redis...", type_msg=TypeMsg.INFO)

        self._client = redis.from_url(
            self._url,
            max_connections=self._max_connections,
            decode_responses=True,
        )
        await self._client.ping()

        await log_info("Подключение к Redis установлено", type_msg=TypeMsg.INFO)

    async def disconnect(self) -> None:
        """Закрывает соединение с Redis."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None
            await log_info("Соединение с Redis закрыто", type_msg=TypeMsg.INFO)

    # =========================================================================
    # БАЗОВЫЕ ОПЕРАЦИИ
    # =========================================================================

    async def get(self, key: str) -> str | None:
        """Получает значение по ключу."""
        return await self.client.get(self._make_key(key))

    async def set(self, key: str, value: str, ttl: int | None = None) -> bool:
        """
        Устанавливает значение.

        Args:
            key: Ключ
            value: Значение
            ttl: Время жизни в секундах

        Returns:
            True если успешно
        """
        return await self.client.set(self._make_key(key), value, ex=ttl)

    async def delete(self, key: str) -> int:
        """Удаляет ключ."""
        return await self.client.delete(self._make_key(key))

    # =========================================================================
    # JSON ОПЕРАЦИИ
    # =========================================================================

    async def get_json(self, key: str) -> dict | list | None:
        """Получает и парсит JSON."""
        data = await self.get(key)
        if data is None:
            return None

        try:
            return json.loads(data)
        except json.JSONDecodeError:
            return None

    async def set_json(self, key: str, data: dict | list, ttl: int | None = None) -> bool:
        """Сериализует и сохраняет JSON."""
        return await self.set(key, json.dumps(data, ensure_ascii=False, default=str), ttl=ttl)

    async def health_check(self) -> bool:
        """Проверяет здоровье подключения к Redis."""
        try:
            return await self.client.ping()
        except Exception as e:
            await log_error(f"Health check Redis failed: {e}")
            return False
