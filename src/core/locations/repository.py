# src/core/locations/repository.py
"""
Хранилище документов сущностей (PostgreSQL, таблица locations).
Реализует паттерн Repository; о гео-индексе ничего не знает.
"""

from __future__ import annotations

import json
from typing import Any, AsyncIterator

import asyncpg
from asyncpg import Record

from src.common.constants import EntityCategory, TypeMsg
from src.common.exceptions import DuplicateIdError, StoreError
from src.common.logger import log_error, log_info
from src.core.locations.models import LocationDocument
from src.infra.database import DatabaseManager

# Ошибки, которые означают отказ хранилища
BACKEND_ERRORS: tuple[type[BaseException], ...] = (
    asyncpg.PostgresError,
    asyncpg.InterfaceError,
    OSError,
)

_COLUMNS = "id, category, lat, lng, attributes"


class RecordStore:
    """Репозиторий документов сущностей."""

    SCAN_PREFETCH = 500

    def __init__(self, db: DatabaseManager) -> None:
        """
        Args:
            db: Менеджер базы данных (Dependency Injection)
        """
        self._db = db

    @staticmethod
    def _to_document(record: Record | dict[str, Any]) -> LocationDocument:
        attributes = record["attributes"]
        if isinstance(attributes, str):
            attributes = json.loads(attributes)
        return LocationDocument(
            id=record["id"],
            category=EntityCategory(record["category"]),
            lat=record["lat"],
            lng=record["lng"],
            attributes=attributes or {},
        )

    async def exists(self, entity_id: str) -> bool:
        """True если документ с таким ID есть в любой категории."""
        try:
            return bool(await self._db.fetchval(
                "SELECT EXISTS(SELECT 1 FROM locations WHERE id = $1)",
                entity_id,
            ))
        except BACKEND_ERRORS as e:
            await log_error(f"Ошибка проверки существования {entity_id}: {e}")
            raise StoreError(f"Failed to check existence of {entity_id}") from e

    async def get(self, entity_id: str) -> LocationDocument | None:
        """Получает документ по ID."""
        try:
            row = await self._db.fetchrow(
                f"SELECT {_COLUMNS} FROM locations WHERE id = $1",
                entity_id,
            )
        except BACKEND_ERRORS as e:
            await log_error(f"Ошибка чтения документа {entity_id}: {e}")
            raise StoreError(f"Failed to read {entity_id}") from e

        return self._to_document(row) if row is not None else None

    async def upsert(self, document: LocationDocument) -> None:
        """
        Вставляет или полностью заменяет документ по ID.
        Замена перезаписывает все поля, включая категорию.
        """
        try:
            await self._db.execute(
                """
                INSERT INTO locations (id, category, lat, lng, attributes)
                VALUES ($1, $2, $3, $4, $5::jsonb)
                ON CONFLICT (id) DO UPDATE SET
                    category = EXCLUDED.category,
                    lat = EXCLUDED.lat,
                    lng = EXCLUDED.lng,
                    attributes = EXCLUDED.attributes,
                    updated_at = NOW()
                """,
                document.id,
                document.category.value,
                document.lat,
                document.lng,
                json.dumps(document.attributes, ensure_ascii=False),
            )
        except BACKEND_ERRORS as e:
            await log_error(f"Ошибка upsert документа {document.id}: {e}")
            raise StoreError(f"Failed to store/update {document.category.value} {document.id}") from e

        await log_info(f"Документ {document.category}/{document.id} сохранён", type_msg=TypeMsg.DEBUG)

    async def insert(self, document: LocationDocument) -> None:
        """
        Вставляет новый документ.

        Raises:
            DuplicateIdError: ID уже занят (PRIMARY KEY проверяет атомарно)
            StoreError: отказ хранилища
        """
        try:
            await self._db.execute(
                """
                INSERT INTO locations (id, category, lat, lng, attributes)
                VALUES ($1, $2, $3, $4, $5::jsonb)
                """,
                document.id,
                document.category.value,
                document.lat,
                document.lng,
                json.dumps(document.attributes, ensure_ascii=False),
            )
        except asyncpg.UniqueViolationError as e:
            raise DuplicateIdError(document.id) from e
        except BACKEND_ERRORS as e:
            await log_error(f"Ошибка вставки документа {document.id}: {e}")
            raise StoreError(f"Failed to store {document.category.value} {document.id}") from e

        await log_info(f"Документ {document.category}/{document.id} создан", type_msg=TypeMsg.DEBUG)

    async def delete(self, entity_id: str, category: EntityCategory | None = None) -> bool:
        """
        Удаляет документ по ID (и категории, если указана).

        Returns:
            True если документ был удалён
        """
        try:
            status = await self._db.execute(
                "DELETE FROM locations WHERE id = $1 AND ($2::text IS NULL OR category = $2::text)",
                entity_id,
                category.value if category is not None else None,
            )
        except BACKEND_ERRORS as e:
            await log_error(f"Ошибка удаления документа {entity_id}: {e}")
            raise StoreError(f"Failed to delete {entity_id}") from e

        # Статус команды вида "DELETE <n>"
        return status.rsplit(" ", 1)[-1] != "0"

    async def scan_all(self) -> AsyncIterator[LocationDocument]:
        """
        Ленивый однопроходный обход всех документов.
        Порядок не гарантируется.
        """
        try:
            async with self._db.transaction(readonly=True) as conn:
                async for record in conn.cursor(
                    f"SELECT {_COLUMNS} FROM locations",
                    prefetch=self.SCAN_PREFETCH,
                ):
                    yield self._to_document(record)
        except BACKEND_ERRORS as e:
            await log_error(f"Ошибка чтения списка документов: {e}")
            raise StoreError("Failed to retrieve locations") from e

    async def count(self) -> int:
        """Общее количество документов."""
        try:
            return int(await self._db.fetchval("SELECT COUNT(*) FROM locations"))
        except BACKEND_ERRORS as e:
            raise StoreError("Failed to count locations") from e
