# src/services/dispatch_api/app.py
"""
FastAPI приложение Dispatch API.

Водители, доставки и магазины как гео-точки; поиск ближайшего водителя.
Гео-индекс в Redis, хранилище документов в PostgreSQL.
"""

from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from src.common.constants import TypeMsg
from src.common.exceptions import (
    DispatchError,
    DuplicateIdError,
    EntityNotFoundError,
    GeoIndexError,
    InvalidEntityError,
    StoreError,
)
from src.common.logger import log_error, log_info, setup_logging
from src.config import settings
from src.infra.database import close_db, get_db, init_db
from src.infra.redis_client import close_redis, get_redis, init_redis
from src.services.dispatch_api.routes import router
from src.services.dispatch_api.schemas import HealthStatus

SERVICE_NAME = "dispatch_api"

# Сопоставление ошибок координатора с HTTP-кодами
ERROR_STATUS: dict[type[DispatchError], int] = {
    InvalidEntityError: status.HTTP_400_BAD_REQUEST,
    DuplicateIdError: status.HTTP_400_BAD_REQUEST,
    EntityNotFoundError: status.HTTP_404_NOT_FOUND,
    StoreError: status.HTTP_500_INTERNAL_SERVER_ERROR,
    GeoIndexError: status.HTTP_500_INTERNAL_SERVER_ERROR,
}


# === LIFESPAN ===

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Жизненный цикл: подключения к хранилищам открываются и закрываются здесь."""
    setup_logging()
    await log_info(f"Starting {SERVICE_NAME}...", type_msg=TypeMsg.INFO)
    await init_db()
    await init_redis()

    yield

    await log_info(f"Shutting down {SERVICE_NAME}...", type_msg=TypeMsg.INFO)
    await close_redis()
    await close_db()


# === APP ===

app = FastAPI(
    title="Dispatch API",
    description="Водители, доставки и магазины на карте; поиск ближайшего водителя.",
    version=settings.system.VERSION,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.deployment.CORS_ORIGINS,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(router)


# === ERROR HANDLERS ===

@app.exception_handler(DispatchError)
async def dispatch_error_handler(request: Request, exc: DispatchError) -> JSONResponse:
    status_code = next(
        (code for error_cls, code in ERROR_STATUS.items() if isinstance(exc, error_cls)),
        status.HTTP_500_INTERNAL_SERVER_ERROR,
    )
    if status_code >= 500:
        await log_error(f"{request.method} {request.url.path}: {exc}")
    return JSONResponse(status_code=status_code, content={"error": str(exc)})


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = exc.errors()
    message = "; ".join(
        f"{'.'.join(str(part) for part in error.get('loc', ()))}: {error.get('msg')}"
        for error in errors
    ) or "Invalid request"
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"error": message})


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content={"error": exc.detail})


# === HEALTH CHECK ===

@app.get("/health", response_model=HealthStatus, tags=["Health"])
async def health_check() -> HealthStatus:
    """Проверка доступности Redis и PostgreSQL."""
    dependencies = {
        "redis": "healthy" if await get_redis().health_check() else "unhealthy",
        "postgres": "healthy" if await get_db().health_check() else "unhealthy",
    }
    return HealthStatus(
        service=SERVICE_NAME,
        status="healthy" if all(v == "healthy" for v in dependencies.values()) else "degraded",
        version=settings.system.VERSION,
        dependencies=dependencies,
    )


# === STARTUP ===

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host=settings.deployment.API_HOST, port=settings.deployment.API_PORT)
