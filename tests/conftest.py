# tests/conftest.py
"""
Общие фикстуры и настройки для тестов.
"""

from __future__ import annotations

import asyncio
import json
import os
from pathlib import Path
from typing import Any, AsyncIterator, Mapping
from unittest.mock import AsyncMock, MagicMock

import pytest

# Устанавливаем переменные окружения перед импортом модулей
os.environ.setdefault("DB_PASSWORD", "test_password")
os.environ.setdefault("REDIS_PASSWORD", "")

from src.common.constants import EntityCategory
from src.common.exceptions import DuplicateIdError
from src.core.locations.models import (
    LocationDocument,
    NearbyFilters,
    NearbyMatch,
    Position,
)


# =============================================================================
# ФИКСТУРЫ КОНФИГУРАЦИИ
# =============================================================================

@pytest.fixture(scope="session")
def project_root() -> Path:
    """Корневая директория проекта."""
    return Path(__file__).parent.parent


@pytest.fixture(scope="session")
def config_path(project_root: Path) -> Path:
    """Путь к файлу конфигурации."""
    return project_root / "config" / "config.json"


@pytest.fixture
def mock_config() -> dict[str, Any]:
    """Мок конфигурации для тестов."""
    return {
        "_comment_system": "Системные настройки",
        "PROJECT_NAME": "geo_dispatch_test",
        "VERSION": "1.0.0-test",
        "DEBUG": True,
        "LOG_LEVEL": "DEBUG",
        "ENVIRONMENT": "test",
        "API_HOST": "127.0.0.1",
        "API_PORT": 9000,
        "CORS_ORIGINS": ["http://localhost:5173"],
        "LOG_TO_FILE": False,
        "LOG_FILE_PATH": "logs/test.log",
        "LOG_FORMAT": "json",
        "DB_HOST": "db.local",
        "DB_PORT": 5433,
        "DB_NAME": "geo_db_test",
        "DB_USER": "tester",
        "DB_PASSWORD": "secret",
        "DB_MIN_POOL_SIZE": 1,
        "DB_MAX_POOL_SIZE": 5,
        "DB_COMMAND_TIMEOUT": 10,
        "REDIS_HOST": "redis.local",
        "REDIS_PORT": 6380,
        "REDIS_DB": 2,
        "REDIS_PASSWORD": "",
        "REDIS_NAMESPACE": "dispatch_test",
        "REDIS_MAX_CONNECTIONS": 10,
        "REDIS_SOCKET_TIMEOUT": 1.5,
        "NEAREST_DRIVER_RADIUS_M": 5000,
        "DRIVER_SPEED_MIN": 10,
        "DRIVER_SPEED_MAX": 80,
        "DRIVER_ID_PATTERN": "truck*",
        "DEMO_STORE_ID": "store_test",
        "DEMO_STORE_LAT": 50.45,
        "DEMO_STORE_LNG": 30.52,
    }


@pytest.fixture
def temp_config_file(tmp_path: Path, mock_config: dict[str, Any]) -> Path:
    """Создаёт временный файл конфигурации."""
    config_file = tmp_path / "config.json"
    config_file.write_text(json.dumps(mock_config, ensure_ascii=False, indent=2))
    return config_file


# =============================================================================
# ФИКСТУРЫ ИНФРАСТРУКТУРЫ (МОКИ)
# =============================================================================

@pytest.fixture
def mock_db() -> AsyncMock:
    """Мок менеджера базы данных."""
    db = AsyncMock()
    db.fetchrow = AsyncMock(return_value=None)
    db.execute = AsyncMock(return_value="INSERT 0 1")
    db.fetchval = AsyncMock(return_value=None)
    return db


@pytest.fixture
def mock_pipeline() -> MagicMock:
    """Мок пайплайна Redis: команды буферизуются синхронно, execute асинхронный."""
    pipe = MagicMock()
    pipe.execute = AsyncMock(return_value=[])
    return pipe


@pytest.fixture
def mock_redis(mock_pipeline: MagicMock) -> MagicMock:
    """Мок RedisClient с клиентом redis.asyncio внутри."""
    client = AsyncMock()
    client.incr = AsyncMock(return_value=1)
    client.geosearch = AsyncMock(return_value=[])
    client.zmscore = AsyncMock(return_value=[])
    client.geopos = AsyncMock(return_value=[None])
    client.zcard = AsyncMock(return_value=0)
    client.ping = AsyncMock(return_value=True)
    client.hgetall = AsyncMock(return_value={})
    client.hget = AsyncMock(return_value=None)
    client.hlen = AsyncMock(return_value=0)

    redis = MagicMock()
    redis.client = client
    redis.namespace = "dispatch"
    redis.make_key = lambda *parts: ":".join(("dispatch", *parts))
    redis.pipeline = MagicMock(return_value=mock_pipeline)
    return redis


# =============================================================================
# IN-MEMORY ХРАНИЛИЩА
# =============================================================================

class FakeGeoIndex:
    """
    Гео-индекс в памяти с тем же контрактом, что GeoIndex.
    Расстояние евклидово: градусы * 111 км.
    """

    def __init__(self) -> None:
        self.points: dict[EntityCategory, dict[str, Position]] = {c: {} for c in EntityCategory}
        self.fields: dict[tuple[EntityCategory, str], dict[str, float]] = {}
        self.order: dict[tuple[EntityCategory, str], int] = {}
        self._seq = 0
        self.fail_with: Exception | None = None

    def _check(self) -> None:
        if self.fail_with is not None:
            raise self.fail_with

    async def upsert(
        self,
        category: EntityCategory,
        entity_id: str,
        position: Position,
        fields: Mapping[str, float] | None = None,
    ) -> None:
        self._check()
        self._seq += 1
        self.points[category][entity_id] = position
        self.order.setdefault((category, entity_id), self._seq)
        self.fields[(category, entity_id)] = dict(fields or {})

    async def delete(self, category: EntityCategory, entity_id: str) -> bool:
        self._check()
        self.fields.pop((category, entity_id), None)
        self.order.pop((category, entity_id), None)
        return self.points[category].pop(entity_id, None) is not None

    @staticmethod
    def distance_m(a: Position, b: Position) -> float:
        return ((a.lat - b.lat) ** 2 + (a.lng - b.lng) ** 2) ** 0.5 * 111_000

    async def nearby(
        self,
        category: EntityCategory,
        origin: Position,
        radius_m: float,
        limit: int,
        filters: NearbyFilters | None = None,
    ) -> list[NearbyMatch]:
        self._check()
        filters = filters or NearbyFilters()
        candidates = []
        for entity_id, position in self.points[category].items():
            dist = self.distance_m(origin, position)
            if dist > radius_m:
                continue
            if not filters.matches(entity_id, self.fields.get((category, entity_id))):
                continue
            candidates.append((dist, self.order[(category, entity_id)], entity_id, position))
        candidates.sort(key=lambda c: (c[0], c[1]))
        return [
            NearbyMatch(id=entity_id, category=category, distance_m=dist, position=position)
            for dist, _, entity_id, position in candidates[:limit]
        ]

    async def get(self, category: EntityCategory, entity_id: str) -> Position | None:
        return self.points[category].get(entity_id)

    async def count(self, category: EntityCategory) -> int:
        return len(self.points[category])


class FakeRecordStore:
    """Хранилище документов в памяти; insert атомарен, как PRIMARY KEY."""

    def __init__(self) -> None:
        self.documents: dict[str, LocationDocument] = {}
        self.fail_with: Exception | None = None

    def _check(self) -> None:
        if self.fail_with is not None:
            raise self.fail_with

    async def exists(self, entity_id: str) -> bool:
        self._check()
        found = entity_id in self.documents
        # Точка переключения: параллельные вызовы проходят проверку до чьей-либо вставки
        await asyncio.sleep(0)
        return found

    async def get(self, entity_id: str) -> LocationDocument | None:
        self._check()
        return self.documents.get(entity_id)

    async def upsert(self, document: LocationDocument) -> None:
        self._check()
        self.documents[document.id] = document

    async def insert(self, document: LocationDocument) -> None:
        self._check()
        if document.id in self.documents:
            raise DuplicateIdError(document.id)
        self.documents[document.id] = document

    async def delete(self, entity_id: str, category: EntityCategory | None = None) -> bool:
        self._check()
        document = self.documents.get(entity_id)
        if document is None or (category is not None and document.category is not category):
            return False
        del self.documents[entity_id]
        return True

    async def scan_all(self) -> AsyncIterator[LocationDocument]:
        self._check()
        for document in list(self.documents.values()):
            yield document

    async def count(self) -> int:
        return len(self.documents)


@pytest.fixture
def geo_index() -> FakeGeoIndex:
    return FakeGeoIndex()


@pytest.fixture
def record_store() -> FakeRecordStore:
    return FakeRecordStore()


@pytest.fixture
def sf_position() -> Position:
    """Точка в Сан-Франциско (координаты демо-магазина)."""
    return Position(lat=37.7749, lng=-122.4194)
