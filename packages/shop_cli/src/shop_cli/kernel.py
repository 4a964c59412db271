from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Iterable
from contextlib import aclosing
from typing import TYPE_CHECKING, TypeVar

from shop_core import ShopSettings, scoped_run_id, shop_settings
from shop_dal import (
    Context,
    DefinitionRegistry,
    EntityWriter,
    LanguageDefinition,
    WriteResult,
    close_db,
    create_tables,
    get_db,
    init_db,
    language_payloads,
)
from shop_demodata import DemodataService

from .plugin import Plugin, load_plugins

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

logger = logging.getLogger(__name__)

T = TypeVar("T")


class Kernel:
    """
    Service container of one CLI invocation.

    Builds the definition registry from the language definition and the
    definitions of every plugin, and wires the writer and the demo data
    service on top of it. The registry compiles on first use of its tables,
    so ``dal:validate`` can report broken definitions.

    Example:
        >>> kernel = Kernel(ShopSettings(DATABASE_URL="sqlite+aiosqlite:///shop.db"))
        >>> kernel.run(kernel.install)
    """

    def __init__(
        self,
        settings: ShopSettings | None = None,
        plugins: Iterable[Plugin] | None = None,
    ):
        self.settings = settings or shop_settings
        self.plugins = list(plugins) if plugins is not None else load_plugins()

        self.registry = DefinitionRegistry([LanguageDefinition()])
        for plugin in self.plugins:
            for definition in plugin.definitions:
                self.registry.register(definition)

        self.writer = EntityWriter(self.registry)
        self.demodata = DemodataService(
            self.registry,
            self.writer,
            [generator for plugin in self.plugins for generator in plugin.generators],
            locales=self.settings.SYSTEM_LOCALES,
        )

    def create_context(self, locale: str | None = None) -> Context:
        context = Context.create_default(self.settings)
        if locale is not None:
            context = context.with_locale(locale)
        return context

    def run(self, operation: Callable[[AsyncSession], Awaitable[T]]) -> T:
        """
        Run ``operation`` with a fresh session on its own event loop.

        Log records of the run carry a new run id.
        """
        with scoped_run_id() as run_id:
            logger.debug("Starting run %s", run_id)
            return asyncio.run(self._run(operation))

    async def _run(self, operation: Callable[[AsyncSession], Awaitable[T]]) -> T:
        init_db(self.settings.DATABASE_URL, **self.settings.engine_options())
        try:
            async with aclosing(get_db()) as sessions:
                async for session in sessions:
                    return await operation(session)
            msg = "get_db() did not yield a session"
            raise RuntimeError(msg)
        finally:
            await close_db()

    async def install(self, db: AsyncSession) -> WriteResult:
        """Create missing tables and seed the languages of ``SYSTEM_LOCALES``."""
        await create_tables(self.registry.metadata)
        result = await self.writer.upsert(
            db,
            "language",
            language_payloads(self.settings.SYSTEM_LOCALES),
            self.create_context(),
        )
        logger.info(
            "Installed %d tables and %d languages",
            len(self.registry.metadata.tables),
            result.count("language"),
        )
        return result
