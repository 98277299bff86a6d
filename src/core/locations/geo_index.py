# src/core/locations/geo_index.py
"""
Живой гео-индекс сущностей на Redis GEO.

Ключи (namespace берётся из RedisClient):
- {ns}:geo:{drivers|deliveries|stores}   GEO sorted set с точками
- {ns}:polar:{category}                  точки за пределами широт Redis GEO (id -> "lat,lng")
- {ns}:order:{category}                  порядок первой вставки (для равных расстояний)
- {ns}:seq:{category}                    счётчик порядка вставки
- {ns}:fields:{category}:{id}            числовые атрибуты (speed и т.п.)

Redis GEO хранит только широты в пределах ±85.05112878. Точки ближе к полюсам
лежат в отдельном хэше, расстояние до них считается по гаверсинусу с тем же
радиусом Земли, что использует Redis.

Индекс ничего не знает о хранилище документов.
"""

from __future__ import annotations

import math
from typing import Mapping

from redis.exceptions import RedisError

from src.common.constants import EntityCategory, TypeMsg
from src.common.exceptions import GeoIndexError
from src.common.logger import log_error, log_info
from src.core.locations.models import NearbyFilters, NearbyMatch, Position
from src.infra.redis_client import RedisClient


# Предел широты Redis GEO (проекция Web Mercator)
GEO_MAX_LATITUDE = 85.05112878
# Радиус Земли в метрах, которым Redis считает GEODIST/GEOSEARCH
EARTH_RADIUS_M = 6372797.560856
# Запас на точность geohash при поиске от сдвинутой точки
_GEOHASH_SLACK_M = 1.0


def surface_distance_m(origin: Position, lat: float, lng: float) -> float:
    """Расстояние по поверхности Земли (в метрах) по формуле Haversine."""
    dlat = math.radians(lat - origin.lat)
    dlng = math.radians(lng - origin.lng)

    a = (math.sin(dlat / 2) ** 2 +
         math.cos(math.radians(origin.lat)) * math.cos(math.radians(lat)) *
         math.sin(dlng / 2) ** 2)

    return 2 * EARTH_RADIUS_M * math.asin(math.sqrt(min(1.0, a)))


def in_geo_band(position: Position) -> bool:
    """True, если точку можно хранить в Redis GEO."""
    return abs(position.lat) <= GEO_MAX_LATITUDE


class GeoIndex:
    """
    Гео-индекс: upsert/delete точек и поиск ближайших.

    Запись видна последующим запросам сразу после успешного upsert.
    Ошибки Redis не подавляются и поднимаются как GeoIndexError.
    """

    def __init__(self, redis: RedisClient) -> None:
        """
        Args:
            redis: Клиент Redis (Dependency Injection)
        """
        self._redis = redis

    # =========================================================================
    # КЛЮЧИ
    # =========================================================================

    def _geo_key(self, category: EntityCategory) -> str:
        return self._redis.make_key("geo", category.index_key)

    def _polar_key(self, category: EntityCategory) -> str:
        return self._redis.make_key("polar", category.index_key)

    def _order_key(self, category: EntityCategory) -> str:
        return self._redis.make_key("order", category.index_key)

    def _seq_key(self, category: EntityCategory) -> str:
        return self._redis.make_key("seq", category.index_key)

    def _fields_key(self, category: EntityCategory, entity_id: str) -> str:
        return self._redis.make_key("fields", category.index_key, entity_id)

    # =========================================================================
    # ЗАПИСЬ
    # =========================================================================

    async def upsert(
        self,
        category: EntityCategory,
        entity_id: str,
        position: Position,
        fields: Mapping[str, float] | None = None,
    ) -> None:
        """
        Вставляет или перемещает точку (category, id).

        Атрибуты заменяются целиком: не переданные поля удаляются.
        Позиция в порядке вставки сохраняется с первого upsert.
        Точка всегда лежит ровно в одном из ключей geo/polar.
        """
        try:
            client = self._redis.client
            order_slot = await client.incr(self._seq_key(category))

            pipe = self._redis.pipeline(transaction=True)
            if in_geo_band(position):
                pipe.geoadd(self._geo_key(category), (position.lng, position.lat, entity_id))
                pipe.hdel(self._polar_key(category), entity_id)
            else:
                pipe.zrem(self._geo_key(category), entity_id)
                pipe.hset(
                    self._polar_key(category),
                    mapping={entity_id: f"{position.lat!r},{position.lng!r}"},
                )
            pipe.zadd(self._order_key(category), {entity_id: order_slot}, nx=True)
            pipe.delete(self._fields_key(category, entity_id))
            if fields:
                pipe.hset(
                    self._fields_key(category, entity_id),
                    mapping={name: repr(float(value)) for name, value in fields.items()},
                )
            await pipe.execute()
        except RedisError as e:
            await log_error(f"Ошибка записи {category.index_key}/{entity_id} в гео-индекс: {e}")
            raise GeoIndexError(f"Failed to store {category.value} {entity_id} in geo index") from e

        await log_info(
            f"Гео-индекс: {category.index_key}/{entity_id} -> ({position.lat}, {position.lng})",
            type_msg=TypeMsg.DEBUG,
        )

    async def delete(self, category: EntityCategory, entity_id: str) -> bool:
        """
        Удаляет точку. Удаление отсутствующей точки не считается ошибкой.

        Returns:
            True если точка существовала
        """
        try:
            pipe = self._redis.pipeline(transaction=True)
            pipe.zrem(self._geo_key(category), entity_id)
            pipe.hdel(self._polar_key(category), entity_id)
            pipe.zrem(self._order_key(category), entity_id)
            pipe.delete(self._fields_key(category, entity_id))
            removed_geo, removed_polar, _, _ = await pipe.execute()
        except RedisError as e:
            await log_error(f"Ошибка удаления {category.index_key}/{entity_id} из гео-индекса: {e}")
            raise GeoIndexError(f"Failed to delete {category.value} {entity_id} from geo index") from e

        return bool(removed_geo or removed_polar)

    # =========================================================================
    # ЧТЕНИЕ
    # =========================================================================

    async def nearby(
        self,
        category: EntityCategory,
        origin: Position,
        radius_m: float,
        limit: int,
        filters: NearbyFilters | None = None,
    ) -> list[NearbyMatch]:
        """
        Ищет сущности категории в радиусе от точки.

        Результат отсортирован по расстоянию, равные расстояния упорядочены
        по порядку первой вставки. Фильтры применяются до ограничения limit.

        Если точка запроса ближе к полюсу, чем позволяет Redis GEO, поиск идёт
        от ближайшей допустимой точки на том же меридиане с радиусом, увеличенным
        на расстояние сдвига; расстояния затем пересчитываются от исходной точки.
        """
        filters = filters or NearbyFilters()
        if limit <= 0:
            return []

        if in_geo_band(origin):
            search_origin, shift_m = origin, 0.0
        else:
            search_origin = Position(lat=math.copysign(GEO_MAX_LATITUDE, origin.lat), lng=origin.lng)
            shift_m = surface_distance_m(origin, search_origin.lat, search_origin.lng) + _GEOHASH_SLACK_M

        try:
            client = self._redis.client
            raw = await client.geosearch(
                self._geo_key(category),
                longitude=search_origin.lng,
                latitude=search_origin.lat,
                radius=radius_m + shift_m,
                unit="m",
                sort="ASC",
                withdist=True,
                withcoord=True,
            )
            polar = await client.hgetall(self._polar_key(category))

            candidates: list[tuple[str, float, Position]] = []
            for member, dist, coords in raw or []:
                point = Position(lat=float(coords[1]), lng=float(coords[0]))
                if shift_m:
                    dist = surface_distance_m(origin, point.lat, point.lng)
                    if dist > radius_m:
                        continue
                candidates.append((member, float(dist), point))
            for member, value in (polar or {}).items():
                lat, lng = (float(part) for part in value.split(","))
                dist = surface_distance_m(origin, lat, lng)
                if dist <= radius_m:
                    candidates.append((member, dist, Position(lat=lat, lng=lng)))

            candidates = [item for item in candidates if filters.matches_id(item[0])]
            if not candidates:
                return []

            ids = [member for member, _, _ in candidates]
            order_slots = await client.zmscore(self._order_key(category), ids)
            fields_by_id = await self._load_fields(category, ids, filters)
        except RedisError as e:
            await log_error(f"Ошибка поиска в гео-индексе {category.index_key}: {e}")
            raise GeoIndexError(f"Nearby search in {category.index_key} failed") from e

        ranked = sorted(
            zip(candidates, order_slots),
            key=lambda item: (item[0][1], item[1] if item[1] is not None else math.inf),
        )

        matches: list[NearbyMatch] = []
        for (member, dist, point), _ in ranked:
            if not filters.matches(member, fields_by_id.get(member)):
                continue
            matches.append(NearbyMatch(
                id=member,
                category=category,
                distance_m=dist,
                position=point,
            ))
            if len(matches) >= limit:
                break

        return matches

    async def _load_fields(
        self,
        category: EntityCategory,
        ids: list[str],
        filters: NearbyFilters,
    ) -> dict[str, dict[str, float]]:
        """Загружает атрибуты кандидатов, если их требуют фильтры."""
        if not filters.attribute_ranges:
            return {}

        names = filters.attribute_names
        pipe = self._redis.pipeline(transaction=False)
        for entity_id in ids:
            pipe.hmget(self._fields_key(category, entity_id), names)
        rows = await pipe.execute()

        result: dict[str, dict[str, float]] = {}
        for entity_id, values in zip(ids, rows):
            result[entity_id] = {
                name: float(value)
                for name, value in zip(names, values)
                if value is not None
            }
        return result

    async def get(self, category: EntityCategory, entity_id: str) -> Position | None:
        """Возвращает текущую точку сущности или None."""
        try:
            client = self._redis.client
            result = await client.geopos(self._geo_key(category), entity_id)
            if result and result[0] is not None:
                lng, lat = result[0]
                return Position(lat=float(lat), lng=float(lng))

            value = await client.hget(self._polar_key(category), entity_id)
        except RedisError as e:
            raise GeoIndexError(f"Failed to read {category.value} {entity_id} from geo index") from e

        if value is None:
            return None
        lat, lng = (float(part) for part in value.split(","))
        return Position(lat=lat, lng=lng)

    async def count(self, category: EntityCategory) -> int:
        """Количество живых точек в категории."""
        try:
            client = self._redis.client
            return int(await client.zcard(self._geo_key(category))) + int(
                await client.hlen(self._polar_key(category))
            )
        except RedisError as e:
            raise GeoIndexError(f"Failed to count {category.index_key} in geo index") from e
