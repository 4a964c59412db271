"""
The entity writer turns nested payloads into rows and upserts them.

A write runs in four steps:

1. extract   - walk the payloads, convert values, generate ids and version
               ids, split translations and associations into commands
2. resolve   - look up which primary keys already exist
3. validate  - required fields, insert/update expectations, defaults
4. execute   - keyed UPDATEs for existing rows and one ``INSERT ... ON
               CONFLICT`` per table and column set for new ones, in
               foreign-key dependency order, then commit

Violations from steps 1 and 3 are collected and raised together.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Literal
from uuid import UUID, uuid4

from sqlalchemy import and_, bindparam, delete, insert, or_, select, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from .exceptions import (
    DefinitionError,
    FieldValueError,
    RestrictDeleteViolationError,
    WriteError,
    WriteValidationError,
    WriteViolation,
)
from .fields import (
    AssociationField,
    FkField,
    IdField,
    ManyToManyAssociationField,
    ManyToOneAssociationField,
    OneToManyAssociationField,
    OneToOneAssociationField,
    ReferenceVersionField,
    StorageField,
    TranslatedField,
    TranslationsAssociationField,
    VersionField,
)
from .flags import Required

if TYPE_CHECKING:
    from sqlalchemy import Table
    from sqlalchemy.ext.asyncio import AsyncSession
    from sqlalchemy.sql import ColumnElement

    from .context import Context
    from .definition import EntityDefinition
    from .registry import DefinitionRegistry

logger = logging.getLogger(__name__)

# Dialects with INSERT ... ON CONFLICT support
_UPSERT_INSERTS = {"postgresql": postgresql.insert, "sqlite": sqlite.insert}


def _dialect_insert(db: AsyncSession) -> Any:
    dialect = db.get_bind().dialect.name
    try:
        return _UPSERT_INSERTS[dialect]
    except KeyError:
        msg = f"Upserts are not supported on {dialect}"
        raise WriteError(msg) from None

Operation = Literal["insert", "update", "delete"]
WriteMode = Literal["upsert", "insert", "update"]

# Keeps the OR-ed primary key lookups well below bound parameter limits
LOOKUP_CHUNK_SIZE = 200


@dataclass(slots=True)
class WriteCommand:
    """One row to write, produced from a (nested) payload."""

    definition: EntityDefinition
    primary_key: dict[str, Any]
    values: dict[str, Any]
    path: str
    root: bool = False
    exists: bool = False
    has_translations: bool = False

    @property
    def entity_name(self) -> str:
        return self.definition.get_entity_name()

    def key(self) -> tuple[Any, ...]:
        return tuple(self.primary_key.values())


@dataclass(frozen=True, slots=True)
class EntityWriteResult:
    entity_name: str
    primary_key: dict[str, Any]
    operation: Operation
    payload: dict[str, Any]

    @property
    def id(self) -> Any:
        return self.primary_key.get("id")


@dataclass
class WriteResult:
    """Written rows per entity name, plus keys a delete did not find."""

    written: dict[str, list[EntityWriteResult]] = field(default_factory=dict)
    not_found: list[dict[str, Any]] = field(default_factory=list)

    def add(self, result: EntityWriteResult) -> None:
        self.written.setdefault(result.entity_name, []).append(result)

    def get(self, entity_name: str) -> list[EntityWriteResult]:
        return self.written.get(entity_name, [])

    def ids(self, entity_name: str) -> list[Any]:
        return [result.id for result in self.get(entity_name)]

    def count(self, entity_name: str | None = None) -> int:
        if entity_name is not None:
            return len(self.get(entity_name))
        return sum(len(results) for results in self.written.values())

    def entities(self) -> list[str]:
        return list(self.written)


@dataclass
class _WriteState:
    context: Context
    languages: dict[str, UUID]
    commands: list[WriteCommand] = field(default_factory=list)
    violations: list[WriteViolation] = field(default_factory=list)

    def violate(self, path: str, message: str) -> None:
        self.violations.append(WriteViolation(path, message))

    def resolve_language(self, key: str) -> UUID | None:
        if key in self.languages:
            return self.languages[key]
        try:
            candidate = UUID(key)
        except ValueError:
            return None
        return candidate if candidate in self.languages.values() else None


class EntityWriter:
    """
    Writes payloads of registered entities.

    Payloads use property names. Nested many-to-one and one-to-one payloads
    are written before the row referencing them, one-to-many children and
    many-to-many targets after it. A many-to-many entry that only holds an
    ``id`` links an existing row.

    Example:
        >>> await writer.upsert(db, "blog_article", [{
        ...     "active": True,
        ...     "author_id": author_id,
        ...     "translations": {"en-GB": {"title": "Hello"}},
        ...     "tags": [{"id": tag_id}],
        ... }], Context.create_default())
    """

    def __init__(self, registry: DefinitionRegistry):
        self._registry = registry

    @property
    def registry(self) -> DefinitionRegistry:
        return self._registry

    async def upsert(
        self,
        db: AsyncSession,
        entity_name: str,
        payloads: Sequence[Mapping[str, Any]],
        context: Context,
    ) -> WriteResult:
        """Create missing rows and update existing ones."""
        return await self._write(db, entity_name, payloads, context, "upsert")

    async def insert(
        self,
        db: AsyncSession,
        entity_name: str,
        payloads: Sequence[Mapping[str, Any]],
        context: Context,
    ) -> WriteResult:
        """Create rows; top-level payloads must not exist yet."""
        return await self._write(db, entity_name, payloads, context, "insert")

    async def update(
        self,
        db: AsyncSession,
        entity_name: str,
        payloads: Sequence[Mapping[str, Any]],
        context: Context,
    ) -> WriteResult:
        """Update rows; top-level payloads must already exist."""
        return await self._write(db, entity_name, payloads, context, "update")

    async def delete(
        self,
        db: AsyncSession,
        entity_name: str,
        primary_keys: Iterable[Any],
        context: Context,
    ) -> WriteResult:
        """
        Delete rows by id (or by primary key mapping for composite keys).

        Dependent rows go with them where the association declares
        ``CascadeDelete``.

        Raises:
            RestrictDeleteViolationError: If a foreign key still references a row.
        """
        definition = self._registry.get(entity_name)
        table = self._registry.table(entity_name)
        state = _WriteState(context=context, languages={})

        keys: list[dict[str, Any]] = []
        for index, raw in enumerate(primary_keys):
            key = self._delete_key(definition, raw, state, f"/{index}")
            if key is not None:
                keys.append(key)
        if state.violations:
            raise WriteValidationError(entity_name, state.violations)

        result = WriteResult()
        if not keys:
            return result

        pk_names = list(keys[0])
        existing = await self._existing_keys(db, table, pk_names, keys)
        found = [key for key in keys if tuple(key.values()) in existing]
        result.not_found = [key for key in keys if tuple(key.values()) not in existing]

        if found:
            logger.debug("Deleting %d %s row(s)", len(found), entity_name)
            try:
                await db.execute(
                    delete(table).where(or_(*self._key_conditions(table, found)))
                )
                await db.commit()
            except IntegrityError as e:
                await db.rollback()
                msg = f"{entity_name} is still referenced and cannot be deleted"
                raise RestrictDeleteViolationError(msg) from e
            except SQLAlchemyError as e:
                await db.rollback()
                msg = f"Database error while deleting {entity_name}"
                raise WriteError(msg) from e

        for key in found:
            result.add(EntityWriteResult(entity_name, key, "delete", {}))
        return result

    # --- Write pipeline ---

    async def _write(
        self,
        db: AsyncSession,
        entity_name: str,
        payloads: Sequence[Mapping[str, Any]],
        context: Context,
        mode: WriteMode,
    ) -> WriteResult:
        definition = self._registry.get(entity_name)
        if not payloads:
            return WriteResult()
        _dialect_insert(db)

        state = _WriteState(context=context, languages=await self._load_languages(db))
        for index, payload in enumerate(payloads):
            self._extract(definition, payload, state, f"/{index}", root=True)

        state.commands = self._merge_duplicates(state.commands)
        await self._resolve_existing(db, state.commands)
        self._validate(state, mode)

        if state.violations:
            raise WriteValidationError(entity_name, state.violations)

        logger.debug(
            "Writing %d %s payload(s) as %d row(s) (%s)",
            len(payloads),
            entity_name,
            len(state.commands),
            mode,
        )
        try:
            result = await self._execute(db, state.commands, mode)
            await db.commit()
        except IntegrityError as e:
            await db.rollback()
            msg = f"Integrity error while writing {entity_name}: {e.orig}"
            raise WriteError(msg) from e
        except SQLAlchemyError as e:
            await db.rollback()
            msg = f"Database error while writing {entity_name}"
            raise WriteError(msg) from e
        except WriteError:
            await db.rollback()
            raise
        return result

    async def _load_languages(self, db: AsyncSession) -> dict[str, UUID]:
        if not self._registry.has("language"):
            return {}
        table = self._registry.table("language")
        rows = await db.execute(select(table.c.locale, table.c.id))
        return {locale: language_id for locale, language_id in rows}

    # --- Step 1: extract ---

    def _extract(
        self,
        definition: EntityDefinition,
        payload: Any,
        state: _WriteState,
        path: str,
        forced: Mapping[str, Any] | None = None,
        *,
        root: bool = False,
    ) -> dict[str, Any] | None:
        """Queue the commands for one payload and return its primary key."""
        if not isinstance(payload, Mapping):
            state.violate(path, f"expected an object, got {type(payload).__name__}")
            return None

        values: dict[str, Any] = {}
        translations: dict[str, dict[str, Any]] = {}
        deferred: list[tuple[AssociationField, Any, str]] = []

        for key, value in payload.items():
            field_path = f"{path}/{key}"
            field = definition.get_field(key)
            if field is None:
                state.violate(
                    field_path,
                    f'property is not defined on "{definition.get_entity_name()}"',
                )
            elif isinstance(field, StorageField):
                try:
                    values[field.storage_name] = field.to_storage(value)
                except FieldValueError as e:
                    state.violate(field_path, str(e))
            elif isinstance(field, TranslatedField):
                translations.setdefault(state.context.locale, {})[key] = value
            elif isinstance(field, TranslationsAssociationField):
                self._merge_translations(value, translations, state, field_path)
            elif isinstance(field, ManyToOneAssociationField) or (
                isinstance(field, OneToOneAssociationField) and field.owns_foreign_key
            ):
                reference = self._registry.get(field.reference_entity)
                reference_key = self._extract(reference, value, state, field_path)
                if reference_key is not None:
                    values[field.storage_name] = reference_key[field.reference_field]
            elif isinstance(field, AssociationField):
                deferred.append((field, value, field_path))

        if forced:
            values.update(forced)
        self._fill_keys(definition, values, state.context)

        primary_key = {pk.storage_name: values.get(pk.storage_name) for pk in definition.get_primary_keys()}
        missing = [name for name, value in primary_key.items() if value is None]
        if missing:
            state.violate(path, f"primary key {', '.join(missing)} missing")
            return None

        command = WriteCommand(definition, primary_key, values, path, root=root)
        state.commands.append(command)

        if translations:
            command.has_translations = True
            self._extract_translations(definition, primary_key, translations, state, path)

        for field, value, field_path in deferred:
            self._extract_children(field, value, primary_key, state, field_path)

        return primary_key

    def _fill_keys(
        self, definition: EntityDefinition, values: dict[str, Any], context: Context
    ) -> None:
        """Generate ids and set version ids the payload left out."""
        for pk in definition.get_primary_keys():
            if values.get(pk.storage_name) is not None:
                continue
            if type(pk) is IdField:
                values[pk.storage_name] = uuid4()
            elif isinstance(pk, VersionField):
                values[pk.storage_name] = context.version_id

        for fk in definition.fields.filter_instance(FkField):
            if fk.storage_name not in values:
                continue
            version = definition.get_reference_version_field(fk)
            if version is None or values.get(version.storage_name) is not None:
                continue
            if self._registry.get(fk.reference_entity).is_version_aware():
                values[version.storage_name] = (
                    None if values[fk.storage_name] is None else context.version_id
                )

    def _merge_translations(
        self,
        value: Any,
        translations: dict[str, dict[str, Any]],
        state: _WriteState,
        path: str,
    ) -> None:
        if isinstance(value, Mapping):
            for language_key, fields in value.items():
                if not isinstance(fields, Mapping):
                    state.violate(f"{path}/{language_key}", "expected an object")
                    continue
                translations.setdefault(str(language_key), {}).update(fields)
        elif isinstance(value, list):
            for index, item in enumerate(value):
                if not isinstance(item, Mapping) or "language_id" not in item:
                    state.violate(
                        f"{path}/{index}", "expected an object with a language_id"
                    )
                    continue
                fields = dict(item)
                language = str(fields.pop("language_id"))
                translations.setdefault(language, {}).update(fields)
        else:
            state.violate(path, "expected translations keyed by locale")

    def _extract_translations(
        self,
        definition: EntityDefinition,
        parent_key: dict[str, Any],
        translations: dict[str, dict[str, Any]],
        state: _WriteState,
        path: str,
    ) -> None:
        translation = definition.get_translation_definition()
        if translation is None:
            msg = f'"{definition.ENTITY_NAME}" has no translation definition'
            raise DefinitionError(msg)
        parent_fk = translation.get_parent_fk_field()
        forced = self._reference_keys(translation, parent_fk.storage_name, parent_key, "id")

        for language_key, fields in translations.items():
            language_path = f"{path}/translations/{language_key}"
            language_id = state.resolve_language(language_key)
            if language_id is None:
                state.violate(language_path, f'language "{language_key}" does not exist')
                continue
            self._extract(
                translation,
                fields,
                state,
                language_path,
                {**forced, "language_id": language_id},
            )

    def _extract_children(
        self,
        field: AssociationField,
        value: Any,
        parent_key: dict[str, Any],
        state: _WriteState,
        path: str,
    ) -> None:
        reference = self._registry.get(field.reference_entity)

        if isinstance(field, ManyToManyAssociationField):
            self._extract_many_to_many(field, value, parent_key, state, path)
        elif isinstance(field, OneToOneAssociationField):
            if value is None:
                return
            forced = self._reference_keys(reference, field.reference_field, parent_key, "id")
            self._extract(reference, value, state, path, forced)
        elif isinstance(field, OneToManyAssociationField):
            if not isinstance(value, list):
                state.violate(path, "expected a list")
                return
            forced = self._reference_keys(
                reference, field.reference_field, parent_key, field.local_field
            )
            for index, child in enumerate(value):
                self._extract(reference, child, state, f"{path}/{index}", forced)

    def _extract_many_to_many(
        self,
        field: ManyToManyAssociationField,
        value: Any,
        parent_key: dict[str, Any],
        state: _WriteState,
        path: str,
    ) -> None:
        if not isinstance(value, list):
            state.violate(path, "expected a list")
            return

        reference = self._registry.get(field.reference_entity)
        mapping = self._registry.get(field.mapping_entity)

        for index, item in enumerate(value):
            item_path = f"{path}/{index}"
            if isinstance(item, Mapping) and set(item) == {"id"}:
                target_key = self._existing_reference_key(reference, item["id"], state, item_path)
            else:
                target_key = self._extract(reference, item, state, item_path)
            if target_key is None:
                continue

            mapping_values = {
                **self._reference_keys(
                    mapping, field.mapping_local_column, parent_key, field.source_column
                ),
                **self._reference_keys(
                    mapping, field.mapping_reference_column, target_key, field.reference_column
                ),
            }
            self._extract(mapping, {}, state, item_path, mapping_values)

    def _existing_reference_key(
        self,
        reference: EntityDefinition,
        raw_id: Any,
        state: _WriteState,
        path: str,
    ) -> dict[str, Any] | None:
        id_field = reference.get_storage_field("id")
        try:
            key: dict[str, Any] = {"id": id_field.to_storage(raw_id)}
        except FieldValueError as e:
            state.violate(f"{path}/id", str(e))
            return None
        if reference.is_version_aware():
            key["version_id"] = state.context.version_id
        return key

    @staticmethod
    def _reference_keys(
        definition: EntityDefinition,
        fk_storage_name: str,
        key: dict[str, Any],
        column: str,
    ) -> dict[str, Any]:
        """Foreign key (and paired version) values pointing at ``key``."""
        values = {fk_storage_name: key[column]}
        fk = definition.fields.get_by_storage_name(fk_storage_name)
        if isinstance(fk, FkField):
            version = definition.get_reference_version_field(fk)
            if version is not None and "version_id" in key:
                values[version.storage_name] = key["version_id"]
        return values

    # --- Step 2: resolve ---

    @staticmethod
    def _merge_duplicates(commands: list[WriteCommand]) -> list[WriteCommand]:
        """Fold commands addressing the same row into the first one."""
        merged: dict[tuple[str, tuple[Any, ...]], WriteCommand] = {}
        for command in commands:
            identity = (command.entity_name, command.key())
            first = merged.get(identity)
            if first is None:
                merged[identity] = command
                continue
            first.values.update(command.values)
            first.root = first.root or command.root
            first.has_translations = first.has_translations or command.has_translations
        return list(merged.values())

    async def _resolve_existing(
        self, db: AsyncSession, commands: list[WriteCommand]
    ) -> None:
        by_entity: dict[str, list[WriteCommand]] = {}
        for command in commands:
            by_entity.setdefault(command.entity_name, []).append(command)

        for entity_name, group in by_entity.items():
            table = self._registry.table(entity_name)
            pk_names = list(group[0].primary_key)
            existing = await self._existing_keys(
                db, table, pk_names, [command.primary_key for command in group]
            )
            for command in group:
                command.exists = command.key() in existing

    async def _existing_keys(
        self,
        db: AsyncSession,
        table: Table,
        pk_names: list[str],
        keys: list[dict[str, Any]],
    ) -> set[tuple[Any, ...]]:
        columns = [table.c[name] for name in pk_names]
        existing: set[tuple[Any, ...]] = set()
        for start in range(0, len(keys), LOOKUP_CHUNK_SIZE):
            chunk = keys[start : start + LOOKUP_CHUNK_SIZE]
            rows = await db.execute(
                select(*columns).where(or_(*self._key_conditions(table, chunk)))
            )
            existing.update(tuple(row) for row in rows)
        return existing

    @staticmethod
    def _key_conditions(
        table: Table, keys: list[dict[str, Any]]
    ) -> list[ColumnElement[bool]]:
        return [
            and_(*(table.c[name] == value for name, value in key.items()))
            for key in keys
        ]

    # --- Step 3: validate ---

    def _validate(self, state: _WriteState, mode: WriteMode) -> None:
        now = datetime.now(timezone.utc)

        for command in state.commands:
            definition = command.definition
            fields = definition.fields

            if command.exists:
                if mode == "insert" and command.root:
                    state.violate(command.path, "entity already exists")
                    continue
                for storage_name, value in command.values.items():
                    field = fields.get_by_storage_name(storage_name)
                    if field is not None and field.is_(Required) and value is None:
                        state.violate(
                            f"{command.path}/{field.property_name}", "must not be null"
                        )
                has_changes = any(name not in command.primary_key for name in command.values)
                if has_changes and fields.get_by_storage_name("updated_at") is not None:
                    command.values["updated_at"] = now
                continue

            if mode == "update" and command.root:
                state.violate(command.path, "entity does not exist")
                continue

            for property_name, default in definition.get_defaults().items():
                field = definition.get_field(property_name)
                if isinstance(field, StorageField):
                    command.values.setdefault(field.storage_name, field.to_storage(default))
            if fields.get_by_storage_name("created_at") is not None:
                command.values.setdefault("created_at", now)

            for field in fields.storage_fields():
                if field.is_(Required) and command.values.get(field.storage_name) is None:
                    state.violate(f"{command.path}/{field.property_name}", "is required")

            translation_field = definition.get_translation_field()
            if (
                translation_field is not None
                and translation_field.is_(Required)
                and not command.has_translations
            ):
                state.violate(
                    f"{command.path}/{translation_field.property_name}",
                    "at least one translation is required",
                )

    def _delete_key(
        self,
        definition: EntityDefinition,
        raw: Any,
        state: _WriteState,
        path: str,
    ) -> dict[str, Any] | None:
        raw_key: Mapping[str, Any] = raw if isinstance(raw, Mapping) else {"id": raw}
        key: dict[str, Any] = {}
        for pk in definition.get_primary_keys():
            value = raw_key.get(pk.property_name)
            if value is None and isinstance(pk, VersionField | ReferenceVersionField):
                value = state.context.version_id
            if value is None:
                state.violate(f"{path}/{pk.property_name}", "is required")
                return None
            try:
                key[pk.storage_name] = pk.to_storage(value)
            except FieldValueError as e:
                state.violate(f"{path}/{pk.property_name}", str(e))
                return None
        return key

    # --- Step 4: execute ---

    async def _execute(
        self, db: AsyncSession, commands: list[WriteCommand], mode: WriteMode
    ) -> WriteResult:
        result = WriteResult()
        order = self._registry.table_order()

        groups: dict[tuple[str, frozenset[str], bool], list[WriteCommand]] = {}
        for command in commands:
            group_key = (command.entity_name, frozenset(command.values), command.exists)
            groups.setdefault(group_key, []).append(command)

        for (entity_name, columns, exists), group in sorted(
            groups.items(), key=lambda item: order[item[0][0]]
        ):
            table = self._registry.table(entity_name)
            pk_names = list(group[0].primary_key)
            rows = [command.values for command in group]

            if exists:
                changed = [name for name in columns if name not in pk_names]
                if changed:
                    await self._update_rows(db, table, pk_names, changed, group)
            elif mode == "insert":
                await db.execute(insert(table), rows)
            else:
                stmt = self._upsert_statement(db, table, pk_names, columns)
                await db.execute(stmt, rows)

            for command in group:
                result.add(
                    EntityWriteResult(
                        entity_name,
                        command.primary_key,
                        "update" if exists else "insert",
                        dict(command.values),
                    )
                )
        return result

    @staticmethod
    async def _update_rows(
        db: AsyncSession,
        table: Table,
        pk_names: list[str],
        changed: list[str],
        group: list[WriteCommand],
    ) -> None:
        """Update existing rows by primary key, setting only ``changed`` columns."""
        stmt = update(table).where(
            *(table.c[name] == bindparam(f"pk_{name}") for name in pk_names)
        )
        params = [
            {
                **{f"pk_{name}": command.primary_key[name] for name in pk_names},
                **{name: command.values[name] for name in changed},
            }
            for command in group
        ]
        await db.execute(stmt, params)

    @staticmethod
    def _upsert_statement(
        db: AsyncSession, table: Table, pk_names: list[str], columns: Iterable[str]
    ) -> Any:
        stmt = _dialect_insert(db)(table)

        update_columns = [
            name for name in columns if name not in pk_names and name != "created_at"
        ]
        if not update_columns:
            return stmt.on_conflict_do_nothing(index_elements=pk_names)
        return stmt.on_conflict_do_update(
            index_elements=pk_names,
            set_={name: stmt.excluded[name] for name in update_columns},
        )
