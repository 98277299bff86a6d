# src/common/exceptions.py
"""
Иерархия ошибок сервиса диспетчеризации.

Ошибки бэкендов (redis, asyncpg) переводятся в эти типы один раз:
на границе GeoIndex / RecordStore. HTTP-слой сопоставляет их с кодами ответа.
"""

from __future__ import annotations


class DispatchError(Exception):
    """Базовая ошибка сервиса."""


class InvalidEntityError(DispatchError):
    """Некорректные входные данные. Обнаруживается до обращения к хранилищам."""


class DuplicateIdError(DispatchError):
    """ID уже занят сущностью любой категории."""

    def __init__(self, entity_id: str) -> None:
        self.entity_id = entity_id
        super().__init__(f"ID already exists for another entity: {entity_id}")


class EntityNotFoundError(DispatchError):
    """Сущность не найдена."""

    def __init__(self, entity_id: str) -> None:
        self.entity_id = entity_id
        super().__init__(f"Entity not found: {entity_id}")


class StoreError(DispatchError):
    """Хранилище документов недоступно или отклонило операцию."""


class GeoIndexError(DispatchError):
    """Гео-индекс недоступен или отклонил операцию."""
