# src/common/constants.py
"""
Общие константы и перечисления.
"""

from enum import Enum


class TypeMsg(str, Enum):
    """Типы сообщений для логирования."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class EntityCategory(str, Enum):
    """
    Категории сущностей.

    Значение совпадает с полем "type" документа в хранилище,
    index_key задаёт имя коллекции в гео-индексе.
    """
    DRIVER = "driver"
    DELIVERY = "delivery"
    STORE = "store"

    def __str__(self) -> str:
        return self.value

    @property
    def index_key(self) -> str:
        """Имя коллекции гео-индекса (drivers, deliveries, stores)."""
        return _INDEX_KEYS[self]


_INDEX_KEYS: dict[EntityCategory, str] = {
    EntityCategory.DRIVER: "drivers",
    EntityCategory.DELIVERY: "deliveries",
    EntityCategory.STORE: "stores",
}

# Атрибут водителя, по которому работает фильтр диапазона при поиске
SPEED_ATTRIBUTE = "speed"
