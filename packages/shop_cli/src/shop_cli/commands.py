"""
Built-in commands: installation, demo data and data layer inspection.
"""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, Optional

import typer
from shop_dal import ApiSchemaGenerator, EntityRepository, SchemaConfig
from shop_demodata import ShopStyle

from .utils import exit_on_error, get_kernel, parse_entity_counts

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession


def database_init(ctx: typer.Context) -> None:
    """Create missing tables and seed the system languages."""
    kernel = get_kernel(ctx)
    style = ShopStyle()
    style.title("Installing database")

    with exit_on_error(style):
        result = kernel.run(kernel.install)

    style.success(
        f"{len(kernel.registry.metadata.tables)} tables ready, "
        f"{result.count('language')} languages seeded"
    )


def framework_demodata(
    ctx: typer.Context,
    entity: list[str] = typer.Option(
        ..., "--entity", "-e", help="Entity and number of records, e.g. blog_article=100."
    ),
) -> None:
    """Generate demo data for the given entities, in order."""
    kernel = get_kernel(ctx)
    request = parse_entity_counts(entity)
    style = ShopStyle()
    style.title("Generating demo data")

    async def generate(db: AsyncSession):
        return await kernel.demodata.generate(
            db, request, kernel.create_context(), style, seed=kernel.settings.DEMODATA_SEED
        )

    with exit_on_error(style):
        run = kernel.run(generate)

    style.table(["Entity", "Items", "Time"], run.summary_rows())


def dal_validate(ctx: typer.Context) -> None:
    """Validate all entity definitions and list them."""
    kernel = get_kernel(ctx)
    style = ShopStyle()
    style.title("Entity definitions")

    with exit_on_error(style):
        kernel.registry.compile()

    rows = []
    for definition in kernel.registry:
        rows.append(
            [
                definition.get_entity_name(),
                len(definition.fields.storage_fields()),
                len(definition.get_associations()),
                "yes" if definition.is_version_aware() else "",
                "yes" if definition.is_inheritance_aware() else "",
            ]
        )
    style.table(["Entity", "Columns", "Associations", "Versioned", "Inherited"], rows)
    style.success(f"{len(rows)} definitions are valid")


def dal_dump(
    ctx: typer.Context,
    entity_name: str = typer.Argument(..., metavar="ENTITY"),
    limit: int = typer.Option(10, "--limit", "-l", min=1),
    locale: Optional[str] = typer.Option(None, "--locale"),
) -> None:
    """Print records of an entity as API JSON."""
    kernel = get_kernel(ctx)
    style = ShopStyle()
    context = kernel.create_context(locale)

    async def dump(db: AsyncSession):
        repository = EntityRepository(kernel.registry, entity_name)
        ids = await repository.ids(db, limit=limit, context=context)
        return repository.definition, await repository.read(db, ids, context)

    with exit_on_error(style):
        definition, records = kernel.run(dump)

    generator = ApiSchemaGenerator(definition, SchemaConfig())
    style.console.print_json(json.dumps(generator.serialize(records)))


def dal_search(
    ctx: typer.Context,
    entity_name: str = typer.Argument(..., metavar="ENTITY"),
    term: str = typer.Argument(...),
    limit: int = typer.Option(25, "--limit", "-l", min=1),
) -> None:
    """Rank records of an entity by a search term."""
    kernel = get_kernel(ctx)
    style = ShopStyle()

    async def search(db: AsyncSession):
        repository = EntityRepository(kernel.registry, entity_name)
        return await repository.search(db, term, kernel.create_context(), limit=limit)

    with exit_on_error(style):
        hits = kernel.run(search)

    if not hits:
        style.warning(f'No {entity_name} matches "{term}"')
        return
    style.table(["Id", "Score"], [[hit.id, f"{hit.score:g}"] for hit in hits])


def register(app: typer.Typer) -> None:
    app.command("database:init")(database_init)
    app.command("framework:demodata")(framework_demodata)
    app.command("dal:validate")(dal_validate)
    app.command("dal:dump")(dal_dump)
    app.command("dal:search")(dal_search)
