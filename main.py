#!/usr/bin/env python3
# main.py
"""
Точка входа: запускает Dispatch API через uvicorn.
Подключения к PostgreSQL и Redis открываются в lifespan приложения.
"""

from __future__ import annotations

import asyncio

import uvicorn

from src.common.constants import TypeMsg
from src.common.logger import log_info, setup_logging
from src.config import settings


async def run_dispatch_api() -> None:
    """Запускает Dispatch API (водители, доставки, магазины)."""
    await log_info(
        f"Запуск Dispatch API v{settings.system.VERSION} на порту {settings.deployment.API_PORT}...",
        type_msg=TypeMsg.INFO,
    )

    config = uvicorn.Config(
        "src.services.dispatch_api.app:app",
        host=settings.deployment.API_HOST,
        port=settings.deployment.API_PORT,
        reload=settings.system.DEBUG,
        log_level="debug" if settings.system.DEBUG else "info",
    )

    server = uvicorn.Server(config)
    try:
        await server.serve()
    except asyncio.CancelledError:
        await log_info("Dispatch API: graceful shutdown", type_msg=TypeMsg.DEBUG)
        await server.shutdown()


if __name__ == "__main__":
    setup_logging()
    try:
        asyncio.run(run_dispatch_api())
    except KeyboardInterrupt:
        print("\nОстановлено пользователем")
