from __future__ import annotations

from typing import TYPE_CHECKING, Optional
from uuid import UUID

import typer
from shop_cli import exit_on_error, get_kernel
from shop_demodata import DemodataRequest, ShopStyle

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession


def article_demodata(
    ctx: typer.Context,
    count: int = typer.Argument(..., min=0, help="Number of articles to generate."),
    tags: int = typer.Option(0, "--tags", min=0, help="Tags to generate first."),
    author: Optional[UUID] = typer.Option(
        None, "--author", help="Author of the articles; defaults to any existing author."
    ),
) -> None:
    """Generate demo blog articles."""
    kernel = get_kernel(ctx)
    style = ShopStyle()
    style.title("Generating blog demo data")

    request = DemodataRequest()
    if tags:
        request.add("blog_tag", tags)
    options = {"author_id": author} if author is not None else {}
    request.add("blog_article", count, **options)

    async def generate(db: AsyncSession):
        return await kernel.demodata.generate(
            db, request, kernel.create_context(), style, seed=kernel.settings.DEMODATA_SEED
        )

    with exit_on_error(style):
        run = kernel.run(generate)

    style.table(["Entity", "Items", "Time"], run.summary_rows())


def register(app: typer.Typer) -> None:
    app.command("article:demodata")(article_demodata)
