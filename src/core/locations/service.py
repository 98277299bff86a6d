# src/core/locations/service.py
"""
Координатор сущностей: держит согласованными гео-индекс и хранилище документов.

Межхранилищных транзакций нет. Порядок записи везде один: сначала индекс,
затем документ. Если индекс записан, а документ нет, операция завершается
ошибкой, а запись в индексе не откатывается: точка уже участвует в поиске,
повтор вызова безопасен (upsert идемпотентен, create-once повторно проверит ID).
"""

from __future__ import annotations

from typing import Any, AsyncIterator, Mapping

from src.common.constants import EntityCategory, TypeMsg
from src.common.exceptions import (
    DuplicateIdError,
    EntityNotFoundError,
    GeoIndexError,
    InvalidEntityError,
    StoreError,
)
from src.common.logger import log_error, log_info, log_warning
from src.core.locations.geo_index import GeoIndex
from src.core.locations.models import (
    LocationDocument,
    NearbyFilters,
    NearbyMatch,
    NearestDriverQuery,
    Position,
    numeric_fields,
    validate_entity_id,
)
from src.core.locations.repository import RecordStore


class EntityCoordinator:
    """
    Операции управления сущностями поверх GeoIndex и RecordStore.

    Инварианты:
    - ID уникален между всеми категориями; единственный источник истины
      уникальности: RecordStore.
    - После успешной операции индекс и хранилище согласованы.
    """

    def __init__(
        self,
        geo_index: GeoIndex,
        record_store: RecordStore,
        nearest_driver_query: NearestDriverQuery | None = None,
    ) -> None:
        """
        Args:
            geo_index: Гео-индекс (Dependency Injection)
            record_store: Хранилище документов (Dependency Injection)
            nearest_driver_query: Радиус, лимит и фильтры поиска по умолчанию
        """
        self._geo_index = geo_index
        self._record_store = record_store
        self._nearest_driver_query = nearest_driver_query or NearestDriverQuery()

    @property
    def nearest_driver_query(self) -> NearestDriverQuery:
        return self._nearest_driver_query

    # =========================================================================
    # ВОДИТЕЛИ
    # =========================================================================

    async def add_or_update_driver(
        self,
        entity_id: str,
        position: Position,
        attributes: Mapping[str, Any] | None = None,
    ) -> LocationDocument:
        """
        Создаёт водителя или перемещает существующего.

        1. upsert точки в индекс (категория driver)
        2. upsert документа {id, position, type: driver}
        Обе записи идемпотентны, повтор вызова безопасен.
        """
        entity_id = validate_entity_id(entity_id)
        document = LocationDocument.build(entity_id, EntityCategory.DRIVER, position, attributes)

        await self._geo_index.upsert(
            EntityCategory.DRIVER,
            entity_id,
            position,
            fields=numeric_fields(attributes),
        )

        try:
            await self._record_store.upsert(document)
        except StoreError:
            await log_warning(
                f"Водитель {entity_id} записан в индекс, но не в хранилище (частичная запись)",
                extra={"entity_id": entity_id, "category": EntityCategory.DRIVER.value},
            )
            raise

        await log_info(f"Водитель {entity_id} добавлен/обновлён", type_msg=TypeMsg.INFO)
        return document

    async def delete_driver(self, entity_id: str) -> bool:
        """Удаляет водителя только из индекса; документ остаётся как история."""
        return await self._delete_from_index(EntityCategory.DRIVER, entity_id)

    async def find_nearest_driver(
        self,
        origin: Position,
        radius_m: float | None = None,
        filters: NearbyFilters | None = None,
    ) -> NearbyMatch | None:
        """
        Ближайший водитель в радиусе от точки.

        Returns:
            NearbyMatch или None, если в радиусе никого нет (это не ошибка)
        """
        query = self._nearest_driver_query
        if radius_m is not None and radius_m <= 0:
            raise InvalidEntityError("radius must be positive")

        matches = await self._geo_index.nearby(
            EntityCategory.DRIVER,
            origin,
            radius_m if radius_m is not None else query.radius_m,
            limit=1,
            filters=filters if filters is not None else query.filters,
        )
        if not matches:
            await log_info(
                f"Водители не найдены рядом с ({origin.lat}, {origin.lng})",
                type_msg=TypeMsg.DEBUG,
            )
            return None
        return matches[0]

    # =========================================================================
    # ДОСТАВКИ И МАГАЗИНЫ (create-once)
    # =========================================================================

    async def add_delivery(
        self,
        entity_id: str,
        position: Position,
        attributes: Mapping[str, Any] | None = None,
    ) -> LocationDocument:
        """Создаёт доставку. ID не должен быть занят сущностью любой категории."""
        return await self._create_once(EntityCategory.DELIVERY, entity_id, position, attributes)

    async def add_store(
        self,
        entity_id: str,
        position: Position,
        attributes: Mapping[str, Any] | None = None,
    ) -> LocationDocument:
        """Создаёт магазин. ID не должен быть занят сущностью любой категории."""
        return await self._create_once(EntityCategory.STORE, entity_id, position, attributes)

    async def delete_delivery(self, entity_id: str) -> bool:
        """Удаляет доставку только из индекса; документ остаётся как история."""
        return await self._delete_from_index(EntityCategory.DELIVERY, entity_id)

    async def delete_store(self, entity_id: str) -> bool:
        """
        Удаляет магазин из индекса, затем документ (с фильтром по категории).

        Отсутствие точки в индексе не ошибка: повтор после сбоя второго шага
        завершается успешно.

        Returns:
            True если удалено хоть что-то
        """
        entity_id = validate_entity_id(entity_id)

        removed_point = await self._geo_index.delete(EntityCategory.STORE, entity_id)
        try:
            removed_document = await self._record_store.delete(entity_id, EntityCategory.STORE)
        except StoreError:
            await log_warning(
                f"Магазин {entity_id} удалён из индекса, но не из хранилища (частичное удаление)",
                extra={"entity_id": entity_id, "category": EntityCategory.STORE.value},
            )
            raise

        await log_info(f"Магазин {entity_id} удалён", type_msg=TypeMsg.INFO)
        return removed_point or removed_document

    # =========================================================================
    # ОБЩИЕ ОПЕРАЦИИ
    # =========================================================================

    async def add_location(
        self,
        category: EntityCategory,
        entity_id: str,
        position: Position,
        attributes: Mapping[str, Any] | None = None,
    ) -> LocationDocument:
        """Добавляет сущность по категории: driver через upsert, остальные через create-once."""
        if category is EntityCategory.DRIVER:
            return await self.add_or_update_driver(entity_id, position, attributes)
        return await self._create_once(category, entity_id, position, attributes)

    async def get_location(self, entity_id: str) -> LocationDocument:
        """Документ сущности по ID."""
        entity_id = validate_entity_id(entity_id)
        document = await self._record_store.get(entity_id)
        if document is None:
            raise EntityNotFoundError(entity_id)
        return document

    def list_all_locations(self) -> AsyncIterator[LocationDocument]:
        """Все документы хранилища; ленивый однопроходный обход."""
        return self._record_store.scan_all()

    async def stats(self) -> dict[str, int]:
        """Количество живых точек в индексе по категориям."""
        return {
            category.index_key: await self._geo_index.count(category)
            for category in EntityCategory
        }

    # =========================================================================
    # ВНУТРЕННИЕ ШАГИ
    # =========================================================================

    async def _create_once(
        self,
        category: EntityCategory,
        entity_id: str,
        position: Position,
        attributes: Mapping[str, Any] | None,
    ) -> LocationDocument:
        """
        Протокол create-once.

        1. exists(id) в хранилище: быстрый отказ для занятого ID
        2. upsert точки в индекс
        3. insert документа; отказ по уникальности здесь равнозначен шагу 1

        Проверка на шаге 1 не атомарна с шагом 3: два параллельных вызова
        с одним ID оба могут её пройти. Окончательное решение принимает
        PRIMARY KEY хранилища на шаге 3.
        """
        entity_id = validate_entity_id(entity_id)
        document = LocationDocument.build(entity_id, category, position, attributes)

        if await self._record_store.exists(entity_id):
            await log_info(f"ID {entity_id} уже занят, {category} не создан", type_msg=TypeMsg.DEBUG)
            raise DuplicateIdError(entity_id)

        await self._geo_index.upsert(category, entity_id, position, fields=numeric_fields(attributes))

        try:
            await self._record_store.insert(document)
        except DuplicateIdError:
            await log_warning(
                f"ID {entity_id} занят параллельным запросом ({category})",
                extra={"entity_id": entity_id, "category": category.value},
            )
            await self._reconcile_lost_race(category, entity_id)
            raise
        except StoreError:
            await log_warning(
                f"{category} {entity_id} записан в индекс, но не в хранилище (частичная запись)",
                extra={"entity_id": entity_id, "category": category.value},
            )
            raise

        await log_info(f"{category.value.capitalize()} {entity_id} создан", type_msg=TypeMsg.INFO)
        return document

    async def _reconcile_lost_race(self, category: EntityCategory, entity_id: str) -> None:
        """
        Возвращает индекс к состоянию документа-победителя.

        Точка, записанная проигравшим запросом, либо перетёрла точку победителя
        той же категории, либо осталась сиротой в чужой категории.
        Сбой здесь логируется: вызывающий всё равно получает DuplicateIdError.
        """
        try:
            winner = await self._record_store.get(entity_id)
            if winner is not None and winner.category is category:
                await self._geo_index.upsert(
                    category,
                    entity_id,
                    winner.position,
                    fields=numeric_fields(winner.attributes),
                )
            else:
                await self._geo_index.delete(category, entity_id)
        except (StoreError, GeoIndexError) as e:
            await log_error(
                f"Не удалось восстановить индекс для {category} {entity_id} после гонки: {e}",
                exc_info=True,
            )

    async def _delete_from_index(self, category: EntityCategory, entity_id: str) -> bool:
        entity_id = validate_entity_id(entity_id)
        try:
            removed = await self._geo_index.delete(category, entity_id)
        except GeoIndexError:
            await log_error(f"Не удалось удалить {category} {entity_id} из индекса")
            raise

        await log_info(
            f"{category.value.capitalize()} {entity_id} удалён из индекса"
            if removed else f"{category.value.capitalize()} {entity_id} отсутствовал в индексе",
            type_msg=TypeMsg.INFO,
        )
        return removed
