# fulfillment/core/pricing/zones.py
"""
Выбор тарифной зоны доставки по городу и расстоянию.
Активные зоны города кэшируются в Redis.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional

from fulfillment.common.logger import log_warning
from fulfillment.core.catalog.models import DeliveryZone
from fulfillment.infra.redis_client import RedisClient

if TYPE_CHECKING:
    from fulfillment.infra.storage import UnitOfWork


class ZoneResolver:
    """Поиск зоны доставки с кэшированием справочника."""

    def __init__(self, redis: Optional[RedisClient] = None, ttl: int = 600) -> None:
        """
        Args:
            redis: Клиент Redis (None — без кэша)
            ttl: Время жизни кэша зон, секунды
        """
        self._redis = redis
        self._ttl = ttl

    @staticmethod
    def _cache_key(city: str) -> str:
        return f"zones:{city.lower()}"

    async def _load_zones(self, uow: UnitOfWork, city: str) -> list[DeliveryZone]:
        if self._redis is not None:
            try:
                cached = await self._redis.get_json(self._cache_key(city))
                if isinstance(cached, list):
                    return [DeliveryZone.model_validate(item) for item in cached]
            except Exception as e:
                await log_warning(f"Кэш зон недоступен ({city}): {e}")

        zones = await uow.catalog.list_active_zones(city)

        if self._redis is not None:
            try:
                await self._redis.set_json(
                    self._cache_key(city),
                    [zone.model_dump() for zone in zones],
                    ttl=self._ttl,
                )
            except Exception as e:
                await log_warning(f"Не удалось обновить кэш зон ({city}): {e}")

        return zones

    async def resolve(self, uow: UnitOfWork, city: str, distance_km: float) -> Optional[DeliveryZone]:
        """
        Возвращает первую активную зону города, покрывающую расстояние.

        Returns:
            Зона или None (тогда применяется тариф по умолчанию)
        """
        for zone in await self._load_zones(uow, city):
            if zone.is_active and zone.covers(distance_km):
                return zone
        return None
