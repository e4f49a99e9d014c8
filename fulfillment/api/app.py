# fulfillment/api/app.py
"""
FastAPI приложение ядра доставки.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from fulfillment.api.dependencies import build_services
from fulfillment.api.routes import offers, orders, payments, vouchers, wallet
from fulfillment.api.schemas import HealthStatus
from fulfillment.common.constants import TypeMsg
from fulfillment.common.errors import FulfillmentError, ValidationError
from fulfillment.common.logger import log_info, log_warning
from fulfillment.config import settings
from fulfillment.infra.database import DatabaseManager
from fulfillment.infra.event_bus import EventBus
from fulfillment.infra.job_queue import EventBusJobQueue
from fulfillment.infra.redis_client import RedisClient
from fulfillment.infra.storage import PostgresStorage


# =============================================================================
# LIFESPAN
# =============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Жизненный цикл: подключение инфраструктуры и сборка сервисов."""
    await log_info("Сервис доставки запускается...", type_msg=TypeMsg.INFO)

    db = DatabaseManager.from_settings()
    await db.connect()
    if settings.database.DB_APPLY_SCHEMA:
        await db.apply_schema()

    redis = RedisClient.from_settings()
    await redis.connect()

    event_bus = EventBus.from_settings()
    await event_bus.connect()

    app.state.db = db
    app.state.redis = redis
    app.state.event_bus = event_bus
    app.state.services = build_services(
        PostgresStorage(db),
        EventBusJobQueue(event_bus),
        settings,
        redis=redis,
    )
    await log_info("Сервис доставки инициализирован", type_msg=TypeMsg.INFO)

    try:
        yield
    finally:
        await event_bus.disconnect()
        await redis.disconnect()
        await db.disconnect()
        await log_info("Сервис доставки остановлен", type_msg=TypeMsg.INFO)


# =============================================================================
# ПРИЛОЖЕНИЕ
# =============================================================================

def create_app() -> FastAPI:
    """Создаёт приложение с маршрутами и обработчиками ошибок."""
    app = FastAPI(
        title=settings.system.PROJECT_NAME,
        description="Ядро выполнения заказов доставки",
        version=settings.system.VERSION,
        lifespan=lifespan,
    )

    @app.exception_handler(FulfillmentError)
    async def fulfillment_error_handler(request: Request, exc: FulfillmentError) -> JSONResponse:
        await log_warning(f"{request.method} {request.url.path}: {exc.code} {exc.message}")
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        error = ValidationError("Invalid request", details={"errors": exc.errors()})
        return JSONResponse(status_code=error.status_code, content=jsonable_encoder(error.to_dict()))

    @app.get("/health", response_model=HealthStatus, tags=["Health"])
    async def health_check(request: Request) -> HealthStatus:
        """Проверка здоровья сервиса."""
        deps: dict[str, str] = {}
        checks = {
            "postgres": getattr(request.app.state, "db", None),
            "redis": getattr(request.app.state, "redis", None),
            "rabbitmq": getattr(request.app.state, "event_bus", None),
        }
        for name, client in checks.items():
            if client is None:
                continue
            deps[name] = "healthy" if await client.health_check() else "unhealthy"

        overall = "healthy" if all(v == "healthy" for v in deps.values()) else "degraded"
        return HealthStatus(
            service="fulfillment",
            status=overall,
            version=settings.system.VERSION,
            dependencies=deps,
        )

    prefix = settings.api.API_PREFIX
    for module in (orders, offers, vouchers, payments, wallet):
        app.include_router(module.router, prefix=prefix)

    return app


app = create_app()
