# fulfillment/infra/job_queue.py
"""
Исходящий порт очереди фоновых задач.

Ядро только ставит задания в очередь и не ждёт результата;
повторы и выполнение — забота внешних воркеров.
"""

from __future__ import annotations

from typing import Any, Protocol

from pydantic import BaseModel, Field

from fulfillment.common.logger import log_error
from fulfillment.infra.event_bus import DomainEvent, EventBus


class JobTypes:
    """Типы заданий."""
    NOTIFICATION = "notification"
    EMAIL = "email"
    REPORT = "report"
    PAYMENT_REFUND = "payment_refund"


class Job(BaseModel):
    """Задание для внешнего воркера."""
    job_type: str = Field(..., description="Тип задания (routing key job.<type>)")
    payload: dict[str, Any] = Field(default_factory=dict)


class JobQueue(Protocol):
    """Порт постановки задания в очередь."""

    async def enqueue(self, job: Job) -> None:
        ...


class EventBusJobQueue:
    """Очередь заданий поверх RabbitMQ EventBus."""

    def __init__(self, event_bus: EventBus) -> None:
        self._event_bus = event_bus

    async def enqueue(self, job: Job) -> None:
        """
        Публикует задание. Ошибки брокера логируются и не пробрасываются.

        Args:
            job: Задание
        """
        try:
            await self._event_bus.publish(DomainEvent(
                event_type=f"job.{job.job_type}",
                payload=job.payload,
            ))
        except Exception as e:
            await log_error(f"Не удалось поставить задание {job.job_type} в очередь: {e}")
