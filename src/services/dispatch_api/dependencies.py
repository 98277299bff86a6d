# src/services/dispatch_api/dependencies.py
"""
Сборка зависимостей для маршрутов.
Клиенты хранилищ являются синглтонами, их жизненным циклом управляет lifespan приложения.
"""

from src.config import settings
from src.core.locations import EntityCoordinator, GeoIndex, NearestDriverQuery, RecordStore
from src.infra.database import DatabaseManager, get_db
from src.infra.redis_client import RedisClient, get_redis


def get_database() -> DatabaseManager:
    return get_db()


def get_redis_client() -> RedisClient:
    return get_redis()


def get_geo_index() -> GeoIndex:
    return GeoIndex(get_redis_client())


def get_record_store() -> RecordStore:
    return RecordStore(get_database())


def get_coordinator() -> EntityCoordinator:
    return EntityCoordinator(
        geo_index=get_geo_index(),
        record_store=get_record_store(),
        nearest_driver_query=NearestDriverQuery.from_settings(settings.search),
    )
