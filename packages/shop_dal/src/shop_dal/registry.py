from __future__ import annotations

import logging
from collections.abc import Iterable, Iterator

from sqlalchemy import MetaData, Table

from .definition import EntityDefinition
from .exceptions import DefinitionError, DefinitionNotFoundError
from .validator import DefinitionValidator

logger = logging.getLogger(__name__)


class DefinitionRegistry:
    """
    Holds every entity definition of the application by entity name.

    Tables are compiled lazily on first access and recompiled after a new
    definition is registered.

    Example:
        >>> registry = DefinitionRegistry([LanguageDefinition(), TagDefinition()])
        >>> registry.table("tag")
        Table('tag', MetaData(), ...)
    """

    def __init__(self, definitions: Iterable[EntityDefinition] = ()):
        self._definitions: dict[str, EntityDefinition] = {}
        self._metadata: MetaData | None = None
        for definition in definitions:
            self.register(definition)

    def register(
        self, definition: EntityDefinition | type[EntityDefinition]
    ) -> EntityDefinition:
        """Register a definition instance (or class, instantiated here)."""
        if isinstance(definition, type):
            definition = definition()

        name = definition.get_entity_name()
        if not name:
            msg = f"{type(definition).__name__} has no ENTITY_NAME"
            raise DefinitionError(msg)
        if name in self._definitions:
            msg = f'Entity "{name}" is already registered'
            raise DefinitionError(msg)

        definition.set_registry(self)
        self._definitions[name] = definition
        self._metadata = None
        logger.debug("Registered entity definition %s", name)
        return definition

    def get(self, entity_name: str) -> EntityDefinition:
        try:
            return self._definitions[entity_name]
        except KeyError:
            raise DefinitionNotFoundError(entity_name) from None

    def has(self, entity_name: str) -> bool:
        return entity_name in self._definitions

    def definitions(self) -> list[EntityDefinition]:
        return list(self._definitions.values())

    def compile(self) -> MetaData:
        """
        Validate all definitions and build their tables.

        Raises:
            DefinitionError: If any definition is inconsistent.
        """
        DefinitionValidator(self).validate()

        metadata = MetaData()
        for definition in self._definitions.values():
            definition.build_table(metadata)

        self._metadata = metadata
        logger.info("Compiled %d entity definitions", len(self._definitions))
        return metadata

    @property
    def metadata(self) -> MetaData:
        if self._metadata is None:
            return self.compile()
        return self._metadata

    def table(self, entity_name: str) -> Table:
        self.get(entity_name)
        return self.metadata.tables[entity_name]

    def table_order(self) -> dict[str, int]:
        """Position of every table in foreign-key dependency order."""
        return {
            table.name: index
            for index, table in enumerate(self.metadata.sorted_tables)
        }

    def __iter__(self) -> Iterator[EntityDefinition]:
        return iter(self._definitions.values())

    def __len__(self) -> int:
        return len(self._definitions)

    def __contains__(self, entity_name: object) -> bool:
        return entity_name in self._definitions
