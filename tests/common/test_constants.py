# tests/common/test_constants.py
"""
Тесты для модуля констант и иерархии ошибок.
"""

import pytest

from src.common.constants import EntityCategory, TypeMsg
from src.common.exceptions import (
    DispatchError,
    DuplicateIdError,
    EntityNotFoundError,
    GeoIndexError,
    InvalidEntityError,
    StoreError,
)


class TestTypeMsg:
    """Тесты для enum TypeMsg."""

    def test_type_msg_is_str_enum(self) -> None:
        assert isinstance(TypeMsg.DEBUG, str)
        assert TypeMsg.INFO == "info"


class TestEntityCategory:
    """Тесты для enum EntityCategory."""

    def test_values_match_document_type(self) -> None:
        assert [c.value for c in EntityCategory] == ["driver", "delivery", "store"]

    @pytest.mark.parametrize("category,index_key", [
        (EntityCategory.DRIVER, "drivers"),
        (EntityCategory.DELIVERY, "deliveries"),
        (EntityCategory.STORE, "stores"),
    ])
    def test_index_key(self, category: EntityCategory, index_key: str) -> None:
        assert category.index_key == index_key

    def test_str_is_value(self) -> None:
        assert str(EntityCategory.STORE) == "store"
        assert f"{EntityCategory.DELIVERY}" == "delivery"

    def test_from_value(self) -> None:
        assert EntityCategory("driver") is EntityCategory.DRIVER
        with pytest.raises(ValueError):
            EntityCategory("plane")


class TestExceptions:
    """Тесты иерархии ошибок."""

    @pytest.mark.parametrize("error_cls", [InvalidEntityError, StoreError, GeoIndexError])
    def test_subclass_of_dispatch_error(self, error_cls: type) -> None:
        assert issubclass(error_cls, DispatchError)

    def test_duplicate_id_message(self) -> None:
        error = DuplicateIdError("store1")
        assert error.entity_id == "store1"
        assert str(error) == "ID already exists for another entity: store1"

    def test_not_found_message(self) -> None:
        error = EntityNotFoundError("ghost")
        assert isinstance(error, DispatchError)
        assert str(error) == "Entity not found: ghost"
