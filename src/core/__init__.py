# src/core/__init__.py
"""
Доменный слой (Core Domain).
Согласование гео-индекса и хранилища документов для сущностей диспетчеризации.
"""

from src.core.locations import EntityCoordinator, GeoIndex, RecordStore

__all__ = [
    "EntityCoordinator",
    "GeoIndex",
    "RecordStore",
]
