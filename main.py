#!/usr/bin/env python3
# main.py
"""
Главная точка входа сервиса доставки.
Настраивает логирование и запускает HTTP API через uvicorn.
"""

from __future__ import annotations

import asyncio

import uvicorn

from fulfillment.common.constants import TypeMsg
from fulfillment.common.logger import log_info, setup_logging
from fulfillment.config import settings


async def run_api() -> None:
    """Запускает HTTP API."""
    await log_info(
        f"Запуск API на {settings.api.API_HOST}:{settings.api.API_PORT}...",
        type_msg=TypeMsg.INFO,
    )

    config = uvicorn.Config(
        "fulfillment.api.app:app",
        host=settings.api.API_HOST,
        port=settings.api.API_PORT,
        reload=settings.system.DEBUG,
        log_level="debug" if settings.system.DEBUG else "info",
    )

    server = uvicorn.Server(config)
    try:
        await server.serve()
    except asyncio.CancelledError:
        await log_info("API: graceful shutdown", type_msg=TypeMsg.DEBUG)
        await server.shutdown()


def main() -> None:
    setup_logging()
    try:
        asyncio.run(run_api())
    except KeyboardInterrupt:
        print("\nПолучен сигнал остановки, завершение работы...")


if __name__ == "__main__":
    main()
