"""
Root Typer application of the ``shop`` CLI.

Commands are named ``entity:action``. Plugins add their own commands
through the registrars they list.
"""

from __future__ import annotations

from collections.abc import Sequence
from importlib.metadata import PackageNotFoundError
from importlib.metadata import version as pkg_version
from typing import Optional

import typer
from shop_core import ShopSettings, setup_logging, shop_settings

from . import commands
from .kernel import Kernel
from .plugin import Plugin, load_plugins

DISTRIBUTION = "shop-platform"


def _version_callback(value: bool) -> None:
    if value:
        try:
            v = pkg_version(DISTRIBUTION)
        except PackageNotFoundError:
            v = "unknown"
        typer.echo(f"shop {v}")
        raise typer.Exit()


def create_app(
    settings: ShopSettings | None = None,
    plugins: Sequence[Plugin] | None = None,
) -> typer.Typer:
    """
    Build the CLI for ``plugins`` (installed entry points by default).

    The kernel is created when a command runs and handed to it as
    ``ctx.obj``.
    """
    if plugins is None:
        plugins = load_plugins()

    app = typer.Typer(
        name="shop",
        help="shop: entity definitions, data layer and demo data.",
        no_args_is_help=True,
        rich_markup_mode="rich",
    )

    @app.callback()
    def main_callback(
        ctx: typer.Context,
        version: Optional[bool] = typer.Option(
            None,
            "--version",
            "-V",
            help="Show version and exit.",
            callback=_version_callback,
            is_eager=True,
        ),
    ) -> None:
        """shop CLI: install the database, generate demo data, inspect entities."""
        ctx.obj = Kernel(settings or shop_settings, plugins)

    commands.register(app)
    for plugin in plugins:
        for registrar in plugin.commands:
            registrar(app)

    return app


def main() -> None:
    setup_logging(level=shop_settings.LOG_LEVEL, log_file=shop_settings.LOG_FILE)
    create_app()()
