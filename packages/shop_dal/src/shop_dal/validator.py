from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from .definition import EntityDefinition, MappingEntityDefinition
from .exceptions import DefinitionError
from .fields import (
    AssociationField,
    FkField,
    ManyToManyAssociationField,
    ReferenceVersionField,
    TranslatedField,
)
from .flags import Inherited, ReverseInherited

if TYPE_CHECKING:
    from .registry import DefinitionRegistry

logger = logging.getLogger(__name__)


class DefinitionValidator:
    """Checks that registered definitions can be compiled and written."""

    def __init__(self, registry: DefinitionRegistry):
        self.registry = registry

    def validate(self) -> None:
        """
        Validate every registered definition.

        Raises:
            DefinitionError: Listing every problem found.
        """
        problems: list[str] = []
        for definition in self.registry.definitions():
            problems.extend(self.validate_definition(definition))

        if problems:
            raise DefinitionError(
                "Invalid entity definitions:\n"
                + "\n".join(f"  {problem}" for problem in problems)
            )

    def validate_definition(self, definition: EntityDefinition) -> list[str]:
        name = definition.get_entity_name()
        problems: list[str] = []

        if not definition.get_primary_keys():
            problems.append(f"{name}: no primary key declared")

        for fk in definition.fields.filter_instance(FkField):
            problems.extend(self._check_foreign_key(definition, fk))

        for association in definition.get_associations():
            problems.extend(self._check_association(definition, association))

        for translated in definition.get_translated_fields():
            problems.extend(self._check_translated(definition, translated))

        if not definition.is_inheritance_aware():
            for field in definition.fields.filter_by_flag(Inherited):
                problems.append(
                    f"{name}.{field.property_name}: Inherited requires a ParentFkField"
                )

        if isinstance(definition, MappingEntityDefinition):
            problems.extend(self._check_mapping(definition))

        if problems:
            logger.warning("Definition %s has %d problem(s)", name, len(problems))
        return problems

    def _check_foreign_key(self, definition: EntityDefinition, fk: FkField) -> list[str]:
        where = f"{definition.get_entity_name()}.{fk.storage_name}"
        if not self.registry.has(fk.reference_entity):
            return [f"{where}: references unknown entity {fk.reference_entity!r}"]

        reference = self.registry.get(fk.reference_entity)
        if reference.fields.get_by_storage_name(fk.reference_field) is None:
            return [
                f"{where}: {fk.reference_entity!r} has no column {fk.reference_field!r}"
            ]
        if reference.is_version_aware() and (
            definition.get_reference_version_field(fk) is None
        ):
            return [
                f"{where}: {fk.reference_entity!r} is versioned, "
                f"declare ReferenceVersionField({fk.reference_entity!r}, "
                f"{fk.version_storage_name!r})"
            ]
        return []

    def _check_association(
        self, definition: EntityDefinition, association: AssociationField
    ) -> list[str]:
        where = f"{definition.get_entity_name()}.{association.property_name}"
        if not self.registry.has(association.reference_entity):
            return [
                f"{where}: references unknown entity {association.reference_entity!r}"
            ]

        problems: list[str] = []
        target = self.registry.get(association.reference_entity)

        if isinstance(association, ManyToManyAssociationField):
            problems.extend(self._check_many_to_many(definition, association))

        flag = association.get_flag(ReverseInherited)
        if flag is not None:
            counterpart = target.get_field(flag.property_name)
            if counterpart is None:
                problems.append(
                    f"{where}: {association.reference_entity!r} has no "
                    f"property {flag.property_name!r}"
                )
            elif not counterpart.is_(Inherited):
                problems.append(
                    f"{where}: {association.reference_entity}.{flag.property_name} "
                    "is not Inherited"
                )
        return problems

    def _check_many_to_many(
        self, definition: EntityDefinition, association: ManyToManyAssociationField
    ) -> list[str]:
        where = f"{definition.get_entity_name()}.{association.property_name}"
        if not self.registry.has(association.mapping_entity):
            return [
                f"{where}: references unknown mapping {association.mapping_entity!r}"
            ]

        mapping = self.registry.get(association.mapping_entity)
        problems: list[str] = []
        expected = {
            association.mapping_local_column: definition.get_entity_name(),
            association.mapping_reference_column: association.reference_entity,
        }
        for column, entity in expected.items():
            fk = mapping.fields.get_by_storage_name(column)
            if not isinstance(fk, FkField) or fk.reference_entity != entity:
                problems.append(
                    f"{where}: mapping {association.mapping_entity!r} needs a "
                    f"foreign key {column!r} to {entity!r}"
                )
        return problems

    def _check_translated(
        self, definition: EntityDefinition, field: TranslatedField
    ) -> list[str]:
        where = f"{definition.get_entity_name()}.{field.property_name}"
        translation_field = definition.get_translation_field()
        if translation_field is None:
            return [f"{where}: TranslatedField without TranslationsAssociationField"]
        if not self.registry.has(translation_field.reference_entity):
            return []  # reported as an unknown association target

        translation = self.registry.get(translation_field.reference_entity)
        if translation.fields.get_by_storage_name(field.property_name) is None:
            return [
                f"{where}: {translation.get_entity_name()!r} has no "
                f"column {field.property_name!r}"
            ]
        return []

    def _check_mapping(self, definition: MappingEntityDefinition) -> list[str]:
        name = definition.get_entity_name()
        foreign_keys = definition.fields.filter_instance(FkField)
        if len(foreign_keys) < 2:
            return [f"{name}: a mapping needs two foreign keys"]

        expected: set[str] = set()
        for fk in foreign_keys:
            expected.add(fk.storage_name)
            if not self.registry.has(fk.reference_entity):
                continue
            if self.registry.get(fk.reference_entity).is_version_aware():
                expected.add(fk.version_storage_name)

        actual = {field.storage_name for field in definition.get_primary_keys()}
        if actual != expected:
            return [
                f"{name}: mapping primary key must be {sorted(expected)}, "
                f"got {sorted(actual)}"
            ]

        stray = [
            field.storage_name
            for field in definition.fields.filter_instance(ReferenceVersionField)
            if field.storage_name not in expected
        ]
        if stray:
            return [f"{name}: unpaired reference version column(s) {stray}"]
        return []
