from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Iterable
from typing import TYPE_CHECKING, Any, ClassVar, TypeVar

from sqlalchemy import ForeignKeyConstraint, MetaData, Table, UniqueConstraint

from .exceptions import DefinitionError
from .fields import (
    AssociationField,
    CreatedAtField,
    Field,
    FieldCollection,
    FkField,
    ManyToManyAssociationField,
    OneToManyAssociationField,
    OneToOneAssociationField,
    ParentFkField,
    ReferenceVersionField,
    StorageField,
    TranslatedField,
    TranslationsAssociationField,
    UpdatedAtField,
    VersionField,
)
from .flags import CascadeDelete, PrimaryKey, Required, RestrictDelete, SetNullOnDelete

if TYPE_CHECKING:
    from .registry import DefinitionRegistry

T = TypeVar("T", bound=StorageField)


class EntityDefinition(ABC):
    """
    Declares the fields of one entity type.

    Subclasses set ``ENTITY_NAME`` (also the table name) and return their
    fields from :meth:`define_fields`. ``created_at`` and ``updated_at`` are
    added automatically.

    Example:
        >>> class TagDefinition(EntityDefinition):
        ...     ENTITY_NAME = "tag"
        ...
        ...     def define_fields(self):
        ...         return [
        ...             IdField("id", "id").add_flags(PrimaryKey(), Required()),
        ...             StringField("name", "name").add_flags(Required()),
        ...         ]
    """

    ENTITY_NAME: ClassVar[str] = ""

    def __init__(self) -> None:
        self._registry: DefinitionRegistry | None = None
        self._fields: FieldCollection | None = None

    @abstractmethod
    def define_fields(self) -> Iterable[Field]:
        """Return the field declarations of the entity."""

    def default_fields(self) -> list[Field]:
        return [CreatedAtField(), UpdatedAtField()]

    def get_defaults(self) -> dict[str, Any]:
        """Property values applied when a row is created without them."""
        return {}

    def get_entity_name(self) -> str:
        return self.ENTITY_NAME

    def set_registry(self, registry: DefinitionRegistry) -> None:
        self._registry = registry
        self._fields = None

    @property
    def registry(self) -> DefinitionRegistry:
        if self._registry is None:
            msg = f'Definition "{self.ENTITY_NAME}" is not registered'
            raise DefinitionError(msg)
        return self._registry

    @property
    def fields(self) -> FieldCollection:
        if self._fields is None:
            collection = FieldCollection([*self.define_fields(), *self.default_fields()])
            for field in collection:
                field.bind(self)
            self._fields = collection
        return self._fields

    def get_field(self, property_name: str) -> Field | None:
        return self.fields.get(property_name)

    def get_storage_field(self, storage_name: str, kind: type[T] = StorageField) -> T:
        """Return the ``kind`` field stored in column ``storage_name``."""
        field = self.fields.get_by_storage_name(storage_name)
        if not isinstance(field, kind):
            msg = (
                f'"{self.ENTITY_NAME}" has no {kind.__name__} stored as "{storage_name}"'
            )
            raise DefinitionError(msg)
        return field

    def get_primary_keys(self) -> list[StorageField]:
        return [f for f in self.fields.storage_fields() if f.is_(PrimaryKey)]

    def get_associations(self) -> list[AssociationField]:
        return self.fields.filter_instance(AssociationField)

    def is_version_aware(self) -> bool:
        return bool(self.fields.filter_instance(VersionField))

    def is_inheritance_aware(self) -> bool:
        return bool(self.fields.filter_instance(ParentFkField))

    def get_translation_field(self) -> TranslationsAssociationField | None:
        found = self.fields.filter_instance(TranslationsAssociationField)
        return found[0] if found else None

    def get_translation_definition(self) -> EntityTranslationDefinition | None:
        field = self.get_translation_field()
        if field is None:
            return None
        definition = self.registry.get(field.reference_entity)
        if not isinstance(definition, EntityTranslationDefinition):
            msg = f'"{field.reference_entity}" is not a translation definition'
            raise DefinitionError(msg)
        return definition

    def get_translated_fields(self) -> list[TranslatedField]:
        return self.fields.filter_instance(TranslatedField)

    def get_reference_version_field(self, fk: FkField) -> ReferenceVersionField | None:
        """Return the version column paired with ``fk`` (``x_id`` → ``x_version_id``)."""
        field = self.fields.get_by_storage_name(fk.version_storage_name)
        if isinstance(field, ReferenceVersionField):
            return field
        return None

    # --- Table compilation ---

    def build_table(self, metadata: MetaData) -> Table:
        """Compile the storage fields into a SQLAlchemy table."""
        columns = [field.build_column() for field in self.fields.storage_fields()]
        constraints: list[Any] = []

        for fk in self.fields.filter_instance(FkField):
            reference = self.registry.get(fk.reference_entity)
            local = [fk.storage_name]
            remote = [f"{reference.get_entity_name()}.{fk.reference_field}"]

            version = self.get_reference_version_field(fk)
            if reference.is_version_aware() and version is not None:
                local.append(version.storage_name)
                remote.append(f"{reference.get_entity_name()}.version_id")

            constraints.append(
                ForeignKeyConstraint(
                    local,
                    remote,
                    ondelete=self._resolve_on_delete(fk, reference),
                )
            )
            if fk.unique:
                constraints.append(UniqueConstraint(*local))

        for field in self.fields.storage_fields():
            if field.unique and not isinstance(field, FkField):
                constraints.append(UniqueConstraint(field.storage_name))

        return Table(self.get_entity_name(), metadata, *columns, *constraints)

    def _resolve_on_delete(
        self, fk: FkField, reference: EntityDefinition
    ) -> str | None:
        """
        Derive ON DELETE from the association the referenced side declares
        for this foreign key.
        """
        for association in reference.get_associations():
            if not self._association_uses(association, fk):
                continue
            if association.is_(CascadeDelete):
                return "CASCADE"
            if association.is_(SetNullOnDelete):
                return "SET NULL"
            if association.is_(RestrictDelete):
                return "RESTRICT"
        return None

    def _association_uses(self, association: AssociationField, fk: FkField) -> bool:
        name = self.get_entity_name()
        if isinstance(association, ManyToManyAssociationField):
            return (
                association.mapping_entity == name
                and association.mapping_local_column == fk.storage_name
            )
        if isinstance(association, OneToManyAssociationField):
            return (
                association.reference_entity == name
                and association.reference_field == fk.storage_name
            )
        if isinstance(association, OneToOneAssociationField):
            return (
                not association.owns_foreign_key
                and association.reference_entity == name
                and association.reference_field == fk.storage_name
            )
        return False

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.ENTITY_NAME!r}>"


class EntityTranslationDefinition(EntityDefinition):
    """
    Holds the translated values of ``PARENT_ENTITY``, one row per language.

    The primary key is the parent key (plus its version for versioned
    parents) and ``language_id``; subclasses declare only the translated
    storage fields.
    """

    PARENT_ENTITY: ClassVar[str] = ""

    def get_parent_definition(self) -> EntityDefinition:
        return self.registry.get(self.PARENT_ENTITY)

    def get_parent_fk_field(self) -> FkField:
        return self.get_storage_field(f"{self.PARENT_ENTITY}_id", FkField)

    def get_language_fk_field(self) -> FkField:
        return self.get_storage_field("language_id", FkField)

    def default_fields(self) -> list[Field]:
        parent = self.PARENT_ENTITY
        fields: list[Field] = [
            FkField(f"{parent}_id", f"{parent}_id", parent).add_flags(
                PrimaryKey(), Required()
            ),
        ]
        if self.get_parent_definition().is_version_aware():
            fields.append(ReferenceVersionField(parent).add_flags(PrimaryKey(), Required()))
        fields.append(
            FkField("language_id", "language_id", "language").add_flags(
                PrimaryKey(), Required()
            )
        )
        fields.extend(super().default_fields())
        return fields


class MappingEntityDefinition(EntityDefinition):
    """
    Junction rows of a many-to-many association.

    The primary key is both foreign keys plus a reference version column for
    every versioned side.
    """

    def default_fields(self) -> list[Field]:
        return []
