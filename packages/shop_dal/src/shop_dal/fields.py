"""
Field declarations used by entity definitions.

Storage fields map a payload property onto a column; association fields
describe how two definitions relate and are resolved by the writer and the
repository.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from datetime import datetime
from typing import TYPE_CHECKING, Any, ClassVar, Self, TypeVar
from uuid import UUID

from sqlalchemy import JSON, Boolean, Column, DateTime, Float, Integer, String, Text, Uuid

from .exceptions import DefinitionError, FieldValueError
from .flags import Flag, PrimaryKey, Required

if TYPE_CHECKING:
    from sqlalchemy.types import TypeEngine

    from .definition import EntityDefinition

F = TypeVar("F", bound=Flag)


class Field:
    """Base class for every field declaration."""

    def __init__(self, property_name: str):
        self.property_name = property_name
        self.definition: EntityDefinition | None = None
        self._flags: dict[type[Flag], Flag] = {}

    def add_flags(self, *flags: Flag) -> Self:
        for flag in flags:
            self._flags[type(flag)] = flag
        return self

    def remove_flag(self, flag_class: type[Flag]) -> Self:
        self._flags.pop(flag_class, None)
        return self

    def is_(self, flag_class: type[Flag]) -> bool:
        return flag_class in self._flags

    def get_flag(self, flag_class: type[F]) -> F | None:
        return self._flags.get(flag_class)  # type: ignore[return-value]

    @property
    def flags(self) -> tuple[Flag, ...]:
        return tuple(self._flags.values())

    def bind(self, definition: EntityDefinition) -> None:
        """Attach the field to the definition that declares it."""
        self.definition = definition

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.property_name!r})"


# --- Storage fields ---


class StorageField(Field):
    """A field backed by a column of the definition's table."""

    python_type: ClassVar[Any] = str

    def __init__(self, storage_name: str, property_name: str, *, unique: bool = False):
        super().__init__(property_name)
        self.storage_name = storage_name
        self.unique = unique

    def column_type(self) -> TypeEngine[Any]:
        raise NotImplementedError

    def build_column(self) -> Column[Any]:
        is_pk = self.is_(PrimaryKey)
        return Column(
            self.storage_name,
            self.column_type(),
            primary_key=is_pk,
            nullable=not (is_pk or self.is_(Required)),
        )

    def to_storage(self, value: Any) -> Any:
        """
        Convert a payload value into a column value.

        Raises:
            FieldValueError: If the value has the wrong shape.
        """
        if value is None:
            return None
        return self._convert(value)

    def _convert(self, value: Any) -> Any:
        return value

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}({self.storage_name!r}, {self.property_name!r})"
        )


class IdField(StorageField):
    python_type = UUID

    def column_type(self) -> TypeEngine[Any]:
        return Uuid(as_uuid=True)

    def _convert(self, value: Any) -> UUID:
        if isinstance(value, UUID):
            return value
        if isinstance(value, str):
            try:
                return UUID(value)
            except ValueError:
                pass
        msg = f"{value!r} is not a valid UUID"
        raise FieldValueError(msg)


class VersionField(IdField):
    """Version column; makes the definition version aware."""

    def __init__(self) -> None:
        super().__init__("version_id", "version_id")
        self.add_flags(PrimaryKey(), Required())


class FkField(IdField):
    """Foreign key column referencing another definition."""

    def __init__(
        self,
        storage_name: str,
        property_name: str,
        reference_entity: str,
        reference_field: str = "id",
        *,
        unique: bool = False,
    ):
        super().__init__(storage_name, property_name, unique=unique)
        self.reference_entity = reference_entity
        self.reference_field = reference_field

    @property
    def version_storage_name(self) -> str:
        """Name of the reference version column paired with this key."""
        return self.storage_name.removesuffix("_id") + "_version_id"


class ParentFkField(FkField):
    """Self reference that makes the definition inheritance aware."""

    def __init__(self, entity_name: str):
        super().__init__("parent_id", "parent_id", entity_name)


class ReferenceVersionField(IdField):
    """Version of the row referenced by the paired foreign key."""

    def __init__(self, reference_entity: str, storage_name: str | None = None):
        storage_name = storage_name or f"{reference_entity}_version_id"
        super().__init__(storage_name, storage_name)
        self.reference_entity = reference_entity


class StringField(StorageField):
    def __init__(
        self,
        storage_name: str,
        property_name: str,
        max_length: int = 255,
        *,
        unique: bool = False,
    ):
        super().__init__(storage_name, property_name, unique=unique)
        self.max_length = max_length

    def column_type(self) -> TypeEngine[Any]:
        return String(self.max_length)

    def _convert(self, value: Any) -> str:
        if not isinstance(value, str):
            msg = f"expected a string, got {type(value).__name__}"
            raise FieldValueError(msg)
        if len(value) > self.max_length:
            msg = f"must not be longer than {self.max_length} characters"
            raise FieldValueError(msg)
        return value


class LongTextField(StorageField):
    def column_type(self) -> TypeEngine[Any]:
        return Text()

    def _convert(self, value: Any) -> str:
        if not isinstance(value, str):
            msg = f"expected a string, got {type(value).__name__}"
            raise FieldValueError(msg)
        return value


class BoolField(StorageField):
    python_type = bool

    def column_type(self) -> TypeEngine[Any]:
        return Boolean()

    def _convert(self, value: Any) -> bool:
        if not isinstance(value, bool):
            msg = f"expected a boolean, got {type(value).__name__}"
            raise FieldValueError(msg)
        return value


class IntField(StorageField):
    python_type = int

    def column_type(self) -> TypeEngine[Any]:
        return Integer()

    def _convert(self, value: Any) -> int:
        if isinstance(value, bool) or not isinstance(value, int):
            msg = f"expected an integer, got {type(value).__name__}"
            raise FieldValueError(msg)
        return value


class FloatField(StorageField):
    python_type = float

    def column_type(self) -> TypeEngine[Any]:
        return Float()

    def _convert(self, value: Any) -> float:
        if isinstance(value, bool) or not isinstance(value, int | float):
            msg = f"expected a number, got {type(value).__name__}"
            raise FieldValueError(msg)
        return float(value)


class DateTimeField(StorageField):
    python_type = datetime

    def column_type(self) -> TypeEngine[Any]:
        return DateTime(timezone=True)

    def _convert(self, value: Any) -> datetime:
        if isinstance(value, datetime):
            return value
        if isinstance(value, str):
            try:
                return datetime.fromisoformat(value)
            except ValueError:
                pass
        msg = f"{value!r} is not an ISO-8601 date time"
        raise FieldValueError(msg)


class CreatedAtField(DateTimeField):
    def __init__(self) -> None:
        super().__init__("created_at", "created_at")
        self.add_flags(Required())


class UpdatedAtField(DateTimeField):
    def __init__(self) -> None:
        super().__init__("updated_at", "updated_at")


class JsonField(StorageField):
    python_type = Any

    def column_type(self) -> TypeEngine[Any]:
        return JSON()

    def _convert(self, value: Any) -> Any:
        if not isinstance(value, dict | list | str | int | float | bool):
            msg = f"{type(value).__name__} is not JSON serializable"
            raise FieldValueError(msg)
        return value


# --- Translations ---


class TranslatedField(Field):
    """Value stored in the translation definition under the same property."""


# --- Associations ---


class AssociationField(Field):
    """A declared relationship to another definition."""

    def __init__(self, property_name: str, reference_entity: str):
        super().__init__(property_name)
        self.reference_entity = reference_entity


class ManyToOneAssociationField(AssociationField):
    """The local ``storage_name`` column references ``reference_field``."""

    def __init__(
        self,
        property_name: str,
        storage_name: str,
        reference_entity: str,
        reference_field: str = "id",
    ):
        super().__init__(property_name, reference_entity)
        self.storage_name = storage_name
        self.reference_field = reference_field


class OneToOneAssociationField(AssociationField):
    """
    One-to-one relation; either side may hold the foreign key.

    When ``storage_name`` is the local ``id`` the key lives on the other side
    in ``reference_field``; otherwise ``storage_name`` is the local key column
    referencing ``reference_field`` of the target.
    """

    def __init__(
        self,
        property_name: str,
        storage_name: str,
        reference_field: str,
        reference_entity: str,
    ):
        super().__init__(property_name, reference_entity)
        self.storage_name = storage_name
        self.reference_field = reference_field

    @property
    def owns_foreign_key(self) -> bool:
        return self.storage_name != "id"


class OneToManyAssociationField(AssociationField):
    """Rows of the target whose ``reference_field`` points at this row."""

    def __init__(
        self,
        property_name: str,
        reference_entity: str,
        reference_field: str,
        local_field: str = "id",
    ):
        super().__init__(property_name, reference_entity)
        self.reference_field = reference_field
        self.local_field = local_field


class TranslationsAssociationField(OneToManyAssociationField):
    """The rows of the translation definition belonging to this row."""

    def __init__(
        self,
        translation_entity: str,
        reference_field: str | None = None,
        property_name: str = "translations",
    ):
        super().__init__(property_name, translation_entity, reference_field or "")

    def bind(self, definition: EntityDefinition) -> None:
        super().bind(definition)
        if not self.reference_field:
            self.reference_field = f"{definition.get_entity_name()}_id"


class ManyToManyAssociationField(AssociationField):
    """Rows of the target linked through the rows of a mapping definition."""

    def __init__(
        self,
        property_name: str,
        reference_entity: str,
        mapping_entity: str,
        mapping_local_column: str,
        mapping_reference_column: str,
        source_column: str = "id",
        reference_column: str = "id",
    ):
        super().__init__(property_name, reference_entity)
        self.mapping_entity = mapping_entity
        self.mapping_local_column = mapping_local_column
        self.mapping_reference_column = mapping_reference_column
        self.source_column = source_column
        self.reference_column = reference_column


# --- Collection ---


class FieldCollection:
    """Ordered fields of one definition, addressable by property or column."""

    def __init__(self, fields: Iterable[Field] = ()):
        self._by_property: dict[str, Field] = {}
        self._by_storage: dict[str, StorageField] = {}
        for field in fields:
            self.add(field)

    def add(self, field: Field) -> None:
        if field.property_name in self._by_property:
            msg = f'Field "{field.property_name}" is declared twice'
            raise DefinitionError(msg)
        self._by_property[field.property_name] = field
        if isinstance(field, StorageField):
            self._by_storage[field.storage_name] = field

    def get(self, property_name: str) -> Field | None:
        return self._by_property.get(property_name)

    def get_by_storage_name(self, storage_name: str) -> StorageField | None:
        return self._by_storage.get(storage_name)

    def storage_fields(self) -> list[StorageField]:
        return list(self._by_storage.values())

    def filter_instance(self, field_class: type[Any]) -> list[Any]:
        return [f for f in self._by_property.values() if isinstance(f, field_class)]

    def filter_by_flag(self, flag_class: type[Flag]) -> list[Field]:
        return [f for f in self._by_property.values() if f.is_(flag_class)]

    def __iter__(self) -> Iterator[Field]:
        return iter(self._by_property.values())

    def __len__(self) -> int:
        return len(self._by_property)

    def __contains__(self, property_name: object) -> bool:
        return property_name in self._by_property
