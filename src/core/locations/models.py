# src/core/locations/models.py
"""
Модели данных сущностей диспетчеризации (водители, доставки, магазины).
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from fnmatch import fnmatchcase
from typing import Any, Mapping

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from src.common.constants import SPEED_ATTRIBUTE, EntityCategory
from src.common.exceptions import InvalidEntityError


MAX_ENTITY_ID_LENGTH = 256


class Position(BaseModel):
    """Точка на карте (широта, долгота)."""

    model_config = ConfigDict(frozen=True)

    lat: float = Field(..., ge=-90, le=90, description="Широта")
    lng: float = Field(..., ge=-180, le=180, description="Долгота")

    @model_validator(mode="after")
    def check_finite(self) -> "Position":
        if not (math.isfinite(self.lat) and math.isfinite(self.lng)):
            raise ValueError("coordinates must be finite numbers")
        return self


def make_position(lat: Any, lng: Any) -> Position:
    """Создаёт Position, переводя ошибку валидации в InvalidEntityError."""
    try:
        return Position(lat=lat, lng=lng)
    except ValidationError as e:
        raise InvalidEntityError(f"Invalid coordinates lat={lat!r}, lng={lng!r}: {e.errors()[0]['msg']}") from e


def validate_entity_id(entity_id: Any) -> str:
    """
    Проверяет ID сущности.

    Returns:
        ID без пробелов по краям
    """
    if not isinstance(entity_id, str):
        raise InvalidEntityError("Entity id must be a string")
    entity_id = entity_id.strip()
    if not entity_id:
        raise InvalidEntityError("Entity id must not be empty")
    if len(entity_id) > MAX_ENTITY_ID_LENGTH:
        raise InvalidEntityError(f"Entity id is longer than {MAX_ENTITY_ID_LENGTH} characters")
    return entity_id


class AttributeRange(BaseModel):
    """Фильтр: числовой атрибут в диапазоне [min, max] включительно."""

    model_config = ConfigDict(frozen=True)

    name: str
    min: float = -math.inf
    max: float = math.inf

    @model_validator(mode="after")
    def check_bounds(self) -> "AttributeRange":
        if self.min > self.max:
            raise ValueError(f"min > max for attribute {self.name!r}")
        return self

    def contains(self, value: float) -> bool:
        return self.min <= value <= self.max


class NearbyFilters(BaseModel):
    """
    Фильтры поиска ближайших сущностей.

    attribute_ranges: ограничения на числовые атрибуты в индексе
    (отсутствующий атрибут читается как 0).
    id_pattern: glob-шаблон ID, например "truck*".
    """

    model_config = ConfigDict(frozen=True)

    attribute_ranges: tuple[AttributeRange, ...] = ()
    id_pattern: str | None = None

    @property
    def is_empty(self) -> bool:
        return not self.attribute_ranges and not self.id_pattern

    @property
    def attribute_names(self) -> list[str]:
        return [r.name for r in self.attribute_ranges]

    def matches_id(self, entity_id: str) -> bool:
        return not self.id_pattern or fnmatchcase(entity_id, self.id_pattern)

    def matches(self, entity_id: str, fields: Mapping[str, float] | None = None) -> bool:
        """Проверяет, проходит ли сущность все фильтры."""
        if not self.matches_id(entity_id):
            return False
        fields = fields or {}
        return all(r.contains(fields.get(r.name, 0.0)) for r in self.attribute_ranges)


@dataclass(frozen=True)
class NearbyMatch:
    """Результат поиска: сущность и расстояние до точки запроса."""
    id: str
    category: EntityCategory
    distance_m: float
    position: Position


class NearestDriverQuery(BaseModel):
    """
    Параметры поиска ближайшего водителя (операционная конфигурация).

    Ищется всегда один водитель, лимит не настраивается.
    """

    model_config = ConfigDict(frozen=True)

    radius_m: float = Field(10000.0, gt=0)
    filters: NearbyFilters = Field(default_factory=NearbyFilters)

    @classmethod
    def from_settings(cls, search: Any) -> "NearestDriverQuery":
        """Строит запрос из секции search настроек."""
        ranges: tuple[AttributeRange, ...] = ()
        if search.DRIVER_SPEED_MIN is not None or search.DRIVER_SPEED_MAX is not None:
            ranges = (
                AttributeRange(
                    name=SPEED_ATTRIBUTE,
                    min=search.DRIVER_SPEED_MIN if search.DRIVER_SPEED_MIN is not None else -math.inf,
                    max=search.DRIVER_SPEED_MAX if search.DRIVER_SPEED_MAX is not None else math.inf,
                ),
            )
        return cls(
            radius_m=search.NEAREST_DRIVER_RADIUS_M,
            filters=NearbyFilters(attribute_ranges=ranges, id_pattern=search.DRIVER_ID_PATTERN),
        )


class LocationDocument(BaseModel):
    """
    Документ сущности в хранилище.

    В API сериализуется плоско:
    {"id", "lat", "lng", "type", ...attributes}.
    """

    id: str
    category: EntityCategory
    lat: float
    lng: float
    attributes: dict[str, Any] = Field(default_factory=dict)

    @property
    def position(self) -> Position:
        return Position(lat=self.lat, lng=self.lng)

    @classmethod
    def build(
        cls,
        entity_id: str,
        category: EntityCategory,
        position: Position,
        attributes: Mapping[str, Any] | None = None,
    ) -> "LocationDocument":
        """Собирает документ; Infinity и NaN в атрибутах отклоняются."""
        check_finite_attributes(attributes)
        return cls(
            id=entity_id,
            category=category,
            lat=position.lat,
            lng=position.lng,
            attributes=dict(attributes or {}),
        )

    def to_public(self) -> dict[str, Any]:
        """Плоское представление для API."""
        reserved = {"id", "lat", "lng", "type"}
        extra = {k: v for k, v in self.attributes.items() if k not in reserved}
        return {"id": self.id, "lat": self.lat, "lng": self.lng, "type": self.category.value, **extra}


def check_finite_attributes(attributes: Mapping[str, Any] | None) -> None:
    """
    Проверяет, что в атрибутах (включая вложенные) нет Infinity и NaN.

    PostgreSQL JSONB такие значения не принимает, поэтому они отклоняются
    до записи в индекс.
    """
    pending: list[Any] = [attributes or {}]
    while pending:
        value = pending.pop()
        if isinstance(value, Mapping):
            pending.extend(value.values())
        elif isinstance(value, (list, tuple)):
            pending.extend(value)
        elif isinstance(value, float) and not math.isfinite(value):
            raise InvalidEntityError(f"Attribute values must be finite numbers, got {value!r}")


def numeric_fields(attributes: Mapping[str, Any] | None) -> dict[str, float]:
    """Отбирает числовые атрибуты для хранения в гео-индексе."""
    if not attributes:
        return {}
    return {
        name: float(value)
        for name, value in attributes.items()
        if isinstance(value, (int, float)) and not isinstance(value, bool)
    }
