# fulfillment/infra/event_bus.py
"""
Шина событий на базе RabbitMQ.
Публикует доменные события и задания в topic exchange; потребители
(воркеры уведомлений, email, отчётов) живут за пределами ядра.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any
from uuid import uuid4

import aio_pika
from aio_pika import ExchangeType, Message
from aio_pika.abc import AbstractChannel, AbstractConnection, AbstractExchange
from aio_pika.exceptions import AMQPError

from fulfillment.common.constants import TypeMsg
from fulfillment.common.logger import log_error, log_info
from fulfillment.common.timeutils import utc_now


# =============================================================================
# ДОМЕННЫЕ СОБЫТИЯ
# =============================================================================

@dataclass
class DomainEvent:
    """Сообщение, публикуемое в шину."""
    event_id: str = field(default_factory=lambda: str(uuid4()))
    event_type: str = ""
    timestamp: str = field(default_factory=lambda: utc_now().isoformat().replace("+00:00", "Z"))
    payload: dict[str, Any] = field(default_factory=dict)

    def to_json(self) -> str:
        """Сериализует событие в JSON."""
        return json.dumps({
            "event_id": self.event_id,
            "event_type": self.event_type,
            "timestamp": self.timestamp,
            "payload": self.payload,
        }, ensure_ascii=False, default=str)

    @classmethod
    def from_json(cls, data: str) -> DomainEvent:
        """Десериализует событие из JSON."""
        parsed = json.loads(data)
        return cls(
            event_id=parsed.get("event_id", str(uuid4())),
            event_type=parsed.get("event_type", ""),
            timestamp=parsed.get("timestamp", ""),
            payload=parsed.get("payload", {}),
        )


class EventBus:
    """
    Издатель событий в RabbitMQ (topic exchange, routing_key = event_type).
    """

    def __init__(self, url: str, exchange_name: str = "delivery.jobs") -> None:
        self._url = url
        self._exchange_name = exchange_name
        self._connection: AbstractConnection | None = None
        self._channel: AbstractChannel | None = None
        self._exchange: AbstractExchange | None = None

    @classmethod
    def from_settings(cls) -> EventBus:
        """Создаёт шину по секции rabbitmq конфигурации."""
        from fulfillment.config import settings

        return cls(url=settings.rabbitmq.url, exchange_name=settings.rabbitmq.RABBITMQ_EXCHANGE)

    @property
    def is_connected(self) -> bool:
        """Проверяет, активно ли соединение."""
        return self._connection is not None and not self._connection.is_closed

    async def connect(self) -> None:
        """Подключается к RabbitMQ и объявляет exchange."""
        if self.is_connected:
            return

        await log_info("Подключение к RabbitMQ...", type_msg=TypeMsg.INFO)

        self._connection = await aio_pika.connect_robust(self._url)
        self._channel = await self._connection.channel()
        self._exchange = await self._channel.declare_exchange(
            self._exchange_name,
            ExchangeType.TOPIC,
            durable=True,
        )

        await log_info("Подключение к RabbitMQ установлено", type_msg=TypeMsg.INFO)

    async def disconnect(self) -> None:
        """Закрывает соединение с RabbitMQ."""
        if self._connection is not None:
            await self._connection.close()
            self._connection = None
            self._channel = None
            self._exchange = None
            await log_info("Соединение с RabbitMQ закрыто", type_msg=TypeMsg.INFO)

    async def publish(self, event: DomainEvent) -> None:
        """
        Публикует событие в exchange.

        Raises:
            RuntimeError: нет соединения с брокером
        """
        if not self.is_connected or self._exchange is None:
            await log_error(f"Не удалось опубликовать событие {event.event_type}: нет соединения с RabbitMQ")
            raise RuntimeError("Нет соединения с RabbitMQ")

        message = Message(
            body=event.to_json().encode(),
            content_type="application/json",
            message_id=event.event_id,
            timestamp=utc_now(),
            delivery_mode=aio_pika.DeliveryMode.PERSISTENT,
        )
        try:
            await self._exchange.publish(message, routing_key=event.event_type)
        except AMQPError as e:
            await log_error(f"Ошибка публикации события {event.event_type}: {e}")
            raise

        await log_info(f"Событие опубликовано: {event.event_type}", type_msg=TypeMsg.DEBUG)

    async def health_check(self) -> bool:
        """Проверяет здоровье подключения к RabbitMQ."""
        return self.is_connected
