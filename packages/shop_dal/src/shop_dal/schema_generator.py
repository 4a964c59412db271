from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, TypeAlias, Union

from pydantic import BaseModel, ConfigDict, Field, create_model

from .definition import EntityDefinition
from .fields import (
    AssociationField,
    ManyToManyAssociationField,
    OneToManyAssociationField,
    ReferenceVersionField,
    StorageField,
    TranslatedField,
    TranslationsAssociationField,
    VersionField,
)
from .flags import ApiAware, PrimaryKey, Required

FieldMap: TypeAlias = Dict[str, Any]


@dataclass(slots=True, frozen=True)
class SchemaConfig:
    """Configuration for schema generation filtering."""

    exclude: set[str] = field(default_factory=set)
    readonly_fields: set[str] = field(
        default_factory=lambda: {"created_at", "updated_at"},
    )
    # Associations nested into the response schema, by property name
    associations: set[str] = field(default_factory=set)


def _model_name(definition: EntityDefinition, suffix: str) -> str:
    words = definition.get_entity_name().split("_")
    return "".join(word.capitalize() for word in words) + suffix


class ApiSchemaGenerator:
    """
    Generates Pydantic schemas from entity definitions.

    Response schemas expose ``ApiAware`` fields only; create and update
    schemas cover the writable properties of a payload.

    Example:
        >>> generator = ApiSchemaGenerator(registry.get("blog_article"))
        >>> ArticleResponse = generator.response_schema()
        >>> generator.serialize(await repository.read(db, ids, context))
    """

    def __init__(self, definition: EntityDefinition, config: SchemaConfig | None = None):
        self.definition = definition
        self.config = config or SchemaConfig()
        self._response: type[BaseModel] | None = None

    @staticmethod
    def _get_python_type(field: StorageField | TranslatedField) -> Any:
        if isinstance(field, TranslatedField):
            return str
        return field.python_type

    def _is_readonly(self, field: StorageField) -> bool:
        return field.property_name in self.config.readonly_fields or isinstance(
            field, VersionField | ReferenceVersionField
        )

    def _writable_fields(self) -> Iterable[StorageField | TranslatedField]:
        for f in self.definition.fields:
            if f.property_name in self.config.exclude:
                continue
            if isinstance(f, StorageField) and not self._is_readonly(f):
                yield f
            elif isinstance(f, TranslatedField):
                yield f

    def create_schema(self) -> type[BaseModel]:
        """
        Generates a schema for creating rows.
        Primary keys are optional since ids are generated when missing.
        """
        fields: FieldMap = {}

        for f in self._writable_fields():
            py_type = self._get_python_type(f)
            if isinstance(f, StorageField) and f.is_(Required) and not f.is_(PrimaryKey):
                fields[f.property_name] = (py_type, Field())
            else:
                fields[f.property_name] = (Union[py_type, None], Field(default=None))

        if self.definition.get_translation_field() is not None:
            fields["translations"] = (
                Optional[dict[str, dict[str, Any]]],
                Field(default=None, description="Translated values keyed by locale"),
            )

        return create_model(
            _model_name(self.definition, "Create"),
            __config__=ConfigDict(extra="forbid"),
            **fields,
        )

    def update_schema(self) -> type[BaseModel]:
        """
        Generates a schema for partial updates.
        Primary keys are required, everything else is optional.
        """
        fields: FieldMap = {}

        for f in self._writable_fields():
            py_type = self._get_python_type(f)
            if isinstance(f, StorageField) and f.is_(PrimaryKey):
                fields[f.property_name] = (py_type, Field())
            else:
                fields[f.property_name] = (Union[py_type, None], Field(default=None))

        if self.definition.get_translation_field() is not None:
            fields["translations"] = (
                Optional[dict[str, dict[str, Any]]],
                Field(default=None),
            )

        return create_model(
            _model_name(self.definition, "Update"),
            __config__=ConfigDict(extra="forbid"),
            **fields,
        )

    def response_schema(self) -> type[BaseModel]:
        """
        Generates a schema for serialization, limited to ``ApiAware`` fields.
        """
        if self._response is not None:
            return self._response

        fields: FieldMap = {}
        for f in self.definition.fields.filter_by_flag(ApiAware):
            name = f.property_name
            if name in self.config.exclude:
                continue
            if isinstance(f, AssociationField):
                if name not in self.config.associations or isinstance(
                    f, TranslationsAssociationField
                ):
                    continue
                nested = ApiSchemaGenerator(
                    self.definition.registry.get(f.reference_entity)
                ).response_schema()
                if isinstance(f, OneToManyAssociationField | ManyToManyAssociationField):
                    fields[name] = (list[nested], Field(default_factory=list))
                else:
                    fields[name] = (Optional[nested], Field(default=None))
                continue

            py_type = self._get_python_type(f)
            if isinstance(f, StorageField) and (f.is_(Required) or f.is_(PrimaryKey)):
                fields[name] = (py_type, Field())
            else:
                fields[name] = (Union[py_type, None], Field(default=None))

        self._response = create_model(
            _model_name(self.definition, "Response"),
            __config__=ConfigDict(from_attributes=True),
            **fields,
        )
        return self._response

    def serialize(self, records: Iterable[dict[str, Any]]) -> list[dict[str, Any]]:
        """Dump records through the response schema into JSON-safe dicts."""
        schema = self.response_schema()
        return [schema.model_validate(record).model_dump(mode="json") for record in records]
