from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any
from uuid import UUID

from sqlalchemy import and_, case, func, select

from .context import Context
from .exceptions import DefinitionError
from .fields import (
    AssociationField,
    FkField,
    LongTextField,
    ManyToManyAssociationField,
    ManyToOneAssociationField,
    OneToManyAssociationField,
    OneToOneAssociationField,
    ReferenceVersionField,
    StringField,
    TranslatedField,
)
from .flags import Inherited, ReverseInherited, SearchRanking

if TYPE_CHECKING:
    from sqlalchemy import Table
    from sqlalchemy.ext.asyncio import AsyncSession
    from sqlalchemy.sql import ColumnElement

    from .definition import EntityDefinition
    from .registry import DefinitionRegistry

logger = logging.getLogger(__name__)

Record = dict[str, Any]


@dataclass(frozen=True, slots=True)
class SearchHit:
    id: UUID
    score: float


def _property_of(definition: EntityDefinition, storage_name: str) -> str:
    field = definition.fields.get_by_storage_name(storage_name)
    return field.property_name if field is not None else storage_name


def _version_filter(
    definition: EntityDefinition, table: Table, context: Context
) -> list[ColumnElement[bool]]:
    if definition.is_version_aware():
        return [table.c.version_id == context.version_id]
    return []


def _reference_version_filter(
    definition: EntityDefinition, table: Table, context: Context
) -> list[ColumnElement[bool]]:
    return [
        table.c[field.storage_name] == context.version_id
        for field in definition.fields.filter_instance(ReferenceVersionField)
    ]


class EntityRepository:
    """
    Reads records of one entity as plain dicts keyed by property name.

    Only rows of the context version are visible. Translated fields carry
    the value of the context locale, falling back to the fallback locale.
    Fields and associations flagged ``Inherited`` take the parent's value
    when the row's own value is empty.

    Example:
        >>> repository = EntityRepository(registry, "blog_article")
        >>> [article] = await repository.read(db, [article_id], context, ["tags"])
        >>> article["title"], [tag["name"] for tag in article["tags"]]
    """

    def __init__(self, registry: DefinitionRegistry, entity_name: str):
        self._registry = registry
        self._definition = registry.get(entity_name)

    @property
    def definition(self) -> EntityDefinition:
        return self._definition

    @property
    def table(self) -> Table:
        return self._registry.table(self._definition.get_entity_name())

    async def read(
        self,
        db: AsyncSession,
        ids: Iterable[Any],
        context: Context,
        associations: Sequence[str] = (),
    ) -> list[Record]:
        """Read records by id, in the order of ``ids``; unknown ids are skipped."""
        id_field = self._definition.fields.get_by_storage_name("id")
        if id_field is None:
            msg = f'"{self._definition.get_entity_name()}" has no id column'
            raise DefinitionError(msg)

        keys = [id_field.to_storage(value) for value in ids]
        if not keys:
            return []

        records = await self._read_where(
            db, self.table.c.id.in_(keys), context, associations
        )
        by_id = {record["id"]: record for record in records}
        return [by_id[key] for key in keys if key in by_id]

    async def search(
        self, db: AsyncSession, term: str, context: Context, limit: int = 25
    ) -> list[SearchHit]:
        """
        Rank rows by the summed ``SearchRanking`` weight of the fields that
        contain ``term`` (case-insensitive).
        """
        term = term.strip()
        if not term:
            return []

        table = self.table
        languages = await self._language_ids(db, context)
        ranked = []
        for field in self._definition.fields.filter_by_flag(SearchRanking):
            ranking = field.get_flag(SearchRanking)
            if isinstance(field, StringField | LongTextField):
                match = table.c[field.storage_name].icontains(term, autoescape=True)
            elif isinstance(field, TranslatedField):
                match = self._translation_match(field, term, languages)
            else:
                continue
            ranked.append(case((match, ranking.weight), else_=0))

        if not ranked:
            return []

        score = sum(ranked[1:], ranked[0])
        stmt = (
            select(table.c.id, score.label("score"))
            .where(score > 0, *_version_filter(self._definition, table, context))
            .order_by(score.desc())
            .limit(limit)
        )
        hits = [SearchHit(row.id, float(row.score)) for row in await db.execute(stmt)]
        logger.debug(
            "Search for %r in %s found %d hit(s)",
            term,
            self._definition.get_entity_name(),
            len(hits),
        )
        return hits

    async def ids(
        self,
        db: AsyncSession,
        limit: int | None = None,
        random: bool = False,
        context: Context | None = None,
    ) -> list[Any]:
        context = context or Context()
        table = self.table
        stmt = select(table.c.id).where(*_version_filter(self._definition, table, context))
        if random:
            stmt = stmt.order_by(func.random())
        if limit is not None:
            stmt = stmt.limit(limit)
        return list((await db.execute(stmt)).scalars())

    async def count(self, db: AsyncSession, context: Context | None = None) -> int:
        context = context or Context()
        table = self.table
        stmt = (
            select(func.count())
            .select_from(table)
            .where(*_version_filter(self._definition, table, context))
        )
        return (await db.execute(stmt)).scalar_one()

    # --- Loading ---

    async def _read_where(
        self,
        db: AsyncSession,
        condition: ColumnElement[bool],
        context: Context,
        associations: Sequence[str] = (),
    ) -> list[Record]:
        table = self.table
        stmt = select(table).where(
            condition, *_version_filter(self._definition, table, context)
        )
        rows = (await db.execute(stmt)).mappings().all()
        records = [self._hydrate(row) for row in rows]
        if not records:
            return records

        await self._apply_translations(db, records, context)
        for name in associations:
            await self._load_association(db, records, name, context)
        if self._definition.is_inheritance_aware():
            await self._apply_inheritance(db, records, context, associations)
        return records

    def _hydrate(self, row: Mapping[str, Any]) -> Record:
        record = {
            field.property_name: row[field.storage_name]
            for field in self._definition.fields.storage_fields()
        }
        for field in self._definition.get_translated_fields():
            record[field.property_name] = None
        return record

    async def _language_ids(self, db: AsyncSession, context: Context) -> list[UUID]:
        """Ids of the context locale and its fallback, in that order."""
        if not self._registry.has("language"):
            return []
        locales = list(dict.fromkeys([context.locale, context.fallback_locale]))
        table = self._registry.table("language")
        rows = await db.execute(
            select(table.c.locale, table.c.id).where(table.c.locale.in_(locales))
        )
        by_locale = dict(rows.all())
        return [by_locale[locale] for locale in locales if locale in by_locale]

    async def _apply_translations(
        self, db: AsyncSession, records: list[Record], context: Context
    ) -> None:
        translation = self._definition.get_translation_definition()
        if translation is None:
            return
        languages = await self._language_ids(db, context)
        if not languages:
            return

        table = self._registry.table(translation.get_entity_name())
        parent_fk = translation.get_parent_fk_field()
        conditions = [
            table.c[parent_fk.storage_name].in_([record["id"] for record in records]),
            table.c.language_id.in_(languages),
            *_reference_version_filter(translation, table, context),
        ]
        rows = (await db.execute(select(table).where(*conditions))).mappings().all()
        by_language = {
            (row[parent_fk.storage_name], row["language_id"]): row for row in rows
        }

        for field in self._definition.get_translated_fields():
            column = translation.get_field(field.property_name)
            if column is None:
                continue
            for record in records:
                for language_id in languages:
                    row = by_language.get((record["id"], language_id))
                    if row is not None and row[column.storage_name] is not None:
                        record[field.property_name] = row[column.storage_name]
                        break

    async def _load_association(
        self, db: AsyncSession, records: list[Record], name: str, context: Context
    ) -> None:
        field = self._definition.get_field(name)
        if not isinstance(field, AssociationField):
            msg = f'"{name}" is not an association of "{self._definition.get_entity_name()}"'
            raise DefinitionError(msg)

        reference = EntityRepository(self._registry, field.reference_entity)

        if isinstance(field, ManyToManyAssociationField):
            await self._load_many_to_many(db, records, field, reference, context)
        elif isinstance(field, ManyToOneAssociationField) or (
            isinstance(field, OneToOneAssociationField) and field.owns_foreign_key
        ):
            local = _property_of(self._definition, field.storage_name)
            values = {record[local] for record in records if record[local] is not None}
            targets = []
            if values:
                targets = await reference._read_where(
                    db, reference.table.c[field.reference_field].in_(list(values)), context
                )
            target_key = _property_of(reference.definition, field.reference_field)
            by_key = {target[target_key]: target for target in targets}
            for record in records:
                record[name] = by_key.get(record[local])
        elif isinstance(field, OneToManyAssociationField | OneToOneAssociationField):
            local_field = (
                field.local_field if isinstance(field, OneToManyAssociationField) else "id"
            )
            local = _property_of(self._definition, local_field)
            values = {record[local] for record in records if record[local] is not None}

            conditions = [reference.table.c[field.reference_field].in_(list(values))]
            fk = reference.definition.fields.get_by_storage_name(field.reference_field)
            if isinstance(fk, FkField):
                version = reference.definition.get_reference_version_field(fk)
                if version is not None:
                    conditions.append(
                        reference.table.c[version.storage_name] == context.version_id
                    )
            targets = await reference._read_where(db, and_(*conditions), context)

            target_key = _property_of(reference.definition, field.reference_field)
            grouped: dict[Any, list[Record]] = {}
            for target in targets:
                grouped.setdefault(target[target_key], []).append(target)
            for record in records:
                children = grouped.get(record[local], [])
                if isinstance(field, OneToManyAssociationField):
                    record[name] = children
                else:
                    record[name] = children[0] if children else None

    async def _load_many_to_many(
        self,
        db: AsyncSession,
        records: list[Record],
        field: ManyToManyAssociationField,
        reference: EntityRepository,
        context: Context,
    ) -> None:
        mapping_definition = self._registry.get(field.mapping_entity)
        mapping = self._registry.table(field.mapping_entity)
        source = _property_of(self._definition, field.source_column)

        rows = await db.execute(
            select(
                mapping.c[field.mapping_local_column],
                mapping.c[field.mapping_reference_column],
            ).where(
                mapping.c[field.mapping_local_column].in_(
                    [record[source] for record in records]
                ),
                *_reference_version_filter(mapping_definition, mapping, context),
            )
        )
        linked: dict[Any, list[Any]] = {}
        for source_key, target_key in rows:
            linked.setdefault(source_key, []).append(target_key)

        if field.is_(ReverseInherited):
            await self._add_inheriting_targets(db, field, linked, context)

        wanted = {key for keys in linked.values() for key in keys}
        targets = []
        if wanted:
            targets = await reference._read_where(
                db, reference.table.c[field.reference_column].in_(list(wanted)), context
            )
        target_key = _property_of(reference.definition, field.reference_column)
        by_key = {target[target_key]: target for target in targets}
        for record in records:
            record[field.property_name] = [
                by_key[key] for key in linked.get(record[source], []) if key in by_key
            ]

    async def _add_inheriting_targets(
        self,
        db: AsyncSession,
        field: ManyToManyAssociationField,
        linked: dict[Any, list[Any]],
        context: Context,
    ) -> None:
        """
        Add the children of linked targets that have no links of their own
        and therefore inherit the association from their parent.
        """
        reference = self._registry.get(field.reference_entity)
        if not reference.is_inheritance_aware():
            return
        table = self._registry.table(field.reference_entity)
        mapping_definition = self._registry.get(field.mapping_entity)
        mapping = self._registry.table(field.mapping_entity)
        own_column = mapping.c[field.mapping_reference_column]

        children_of: dict[Any, list[Any]] = {}
        frontier = {key for keys in linked.values() for key in keys}
        seen = set(frontier)
        while frontier:
            rows = await db.execute(
                select(table.c.id, table.c.parent_id).where(
                    table.c.parent_id.in_(list(frontier)),
                    *_version_filter(reference, table, context),
                )
            )
            children = [(child, parent) for child, parent in rows if child not in seen]
            if not children:
                break

            own = set(
                (
                    await db.execute(
                        select(own_column).where(
                            own_column.in_([child for child, _ in children]),
                            *_reference_version_filter(mapping_definition, mapping, context),
                        )
                    )
                ).scalars()
            )
            frontier = set()
            for child, parent in children:
                seen.add(child)
                if child in own:
                    continue
                children_of.setdefault(parent, []).append(child)
                frontier.add(child)

        for keys in linked.values():
            pending = list(keys)
            while pending:
                for child in children_of.get(pending.pop(), []):
                    if child not in keys:
                        keys.append(child)
                        pending.append(child)

    async def _apply_inheritance(
        self,
        db: AsyncSession,
        records: list[Record],
        context: Context,
        associations: Sequence[str],
    ) -> None:
        inherited = self._definition.fields.filter_by_flag(Inherited)
        if not inherited:
            return
        parent_ids = {
            record["parent_id"] for record in records if record.get("parent_id") is not None
        }
        if not parent_ids:
            return

        inherited_associations = [
            name for name in associations if self._definition.get_field(name).is_(Inherited)
        ]
        parents = {
            parent["id"]: parent
            for parent in await self.read(db, parent_ids, context, inherited_associations)
        }
        for record in records:
            parent = parents.get(record.get("parent_id"))
            if parent is None:
                continue
            for field in inherited:
                name = field.property_name
                if name in record and record[name] in (None, []):
                    record[name] = parent.get(name)

    def _translation_match(
        self, field: TranslatedField, term: str, languages: list[UUID]
    ) -> ColumnElement[bool]:
        translation = self._definition.get_translation_definition()
        if translation is None:
            msg = f'"{self._definition.get_entity_name()}" has no translation definition'
            raise DefinitionError(msg)
        column = translation.get_field(field.property_name)
        table = self.table
        t_table = self._registry.table(translation.get_entity_name())
        parent_fk = translation.get_parent_fk_field()

        conditions = [
            t_table.c[parent_fk.storage_name] == table.c.id,
            t_table.c[column.storage_name].icontains(term, autoescape=True),
        ]
        version = translation.get_reference_version_field(parent_fk)
        if version is not None:
            conditions.append(t_table.c[version.storage_name] == table.c.version_id)
        if languages:
            conditions.append(t_table.c.language_id.in_(languages))
        return select(t_table.c[parent_fk.storage_name]).where(*conditions).exists()
