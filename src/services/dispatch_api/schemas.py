# src/services/dispatch_api/schemas.py
"""
Модели запросов и ответов HTTP API.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field, field_validator, model_validator

from src.common.constants import EntityCategory
from src.common.exceptions import InvalidEntityError
from src.core.locations.models import check_finite_attributes


# === REQUESTS ===

class EntityLocationRequest(BaseModel):
    """Сущность с координатами."""
    id: str = Field(..., min_length=1, max_length=256)
    lat: float = Field(..., ge=-90, le=90)
    lng: float = Field(..., ge=-180, le=180)


class DriverLocationRequest(EntityLocationRequest):
    """Водитель: координаты и необязательные атрибуты."""
    speed: float | None = Field(default=None, ge=0, allow_inf_nan=False)
    attributes: dict[str, Any] = Field(default_factory=dict)

    @field_validator("attributes")
    @classmethod
    def check_attributes(cls, value: dict[str, Any]) -> dict[str, Any]:
        try:
            check_finite_attributes(value)
        except InvalidEntityError as e:
            raise ValueError(str(e)) from e
        return value

    def merged_attributes(self) -> dict[str, Any]:
        """Атрибуты документа; speed из тела имеет приоритет."""
        attributes = dict(self.attributes)
        if self.speed is not None:
            attributes["speed"] = self.speed
        return attributes


class StoreLocationRequest(BaseModel):
    """
    Магазин. Без координат используется демо-магазин из конфига.

    Координаты передаются обе или ни одной.
    """
    id: str | None = Field(default=None, min_length=1, max_length=256)
    lat: float | None = Field(default=None, ge=-90, le=90)
    lng: float | None = Field(default=None, ge=-180, le=180)

    @model_validator(mode="after")
    def check_coordinates_pair(self) -> "StoreLocationRequest":
        if (self.lat is None) != (self.lng is None):
            raise ValueError("lat and lng must be given together")
        return self


class TypedLocationRequest(EntityLocationRequest):
    """Сущность произвольной категории (POST /addLocation)."""
    type: EntityCategory


class EntityIdRequest(BaseModel):
    id: str = Field(..., min_length=1, max_length=256)


class PointRequest(BaseModel):
    lat: float = Field(..., ge=-90, le=90)
    lng: float = Field(..., ge=-180, le=180)


# === RESPONSES ===

class MessageResponse(BaseModel):
    message: str


class NearestDriverResponse(BaseModel):
    driver_id: str
    distance_m: float
    lat: float
    lng: float


class StatsResponse(BaseModel):
    """Живые точки в гео-индексе по категориям."""
    drivers: int
    deliveries: int
    stores: int


class HealthStatus(BaseModel):
    """Статус здоровья сервиса."""
    service: str
    status: str = "healthy"  # healthy, degraded
    version: str | None = None
    dependencies: dict[str, str] = Field(default_factory=dict)
