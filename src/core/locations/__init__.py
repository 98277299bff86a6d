# src/core/locations/__init__.py
"""
Домен сущностей диспетчеризации.
Гео-индекс, хранилище документов и координатор между ними.
"""

from src.core.locations.models import (
    AttributeRange,
    LocationDocument,
    NearbyFilters,
    NearbyMatch,
    NearestDriverQuery,
    Position,
)
from src.core.locations.geo_index import GeoIndex
from src.core.locations.repository import RecordStore
from src.core.locations.service import EntityCoordinator

__all__ = [
    "AttributeRange",
    "LocationDocument",
    "NearbyFilters",
    "NearbyMatch",
    "NearestDriverQuery",
    "Position",
    "GeoIndex",
    "RecordStore",
    "EntityCoordinator",
]
