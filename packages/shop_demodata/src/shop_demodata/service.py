from __future__ import annotations

import logging
import time
from collections.abc import Iterable, Sequence
from typing import TYPE_CHECKING

from .context import DemodataContext
from .exceptions import DemodataError, UnknownGeneratorError
from .generator import DemodataGenerator

if TYPE_CHECKING:
    from shop_dal import Context, DefinitionRegistry, EntityWriter
    from sqlalchemy.ext.asyncio import AsyncSession

    from .request import DemodataRequest
    from .style import ShopStyle

logger = logging.getLogger(__name__)


class DemodataService:
    """
    Runs demo data generators for the entities of a request.

    Example:
        >>> service = DemodataService(registry, writer, [TagGenerator()])
        >>> request = DemodataRequest().add("tag", 20)
        >>> run = await service.generate(db, request, Context.create_default(), ShopStyle())
        >>> run.summary_rows()
        [['tag', '20', '0.05s']]
    """

    def __init__(
        self,
        registry: DefinitionRegistry,
        writer: EntityWriter,
        generators: Iterable[DemodataGenerator] = (),
        locales: Sequence[str] = ("en-GB",),
    ):
        self.registry = registry
        self.writer = writer
        self.locales = list(locales)
        self._generators: dict[str, DemodataGenerator] = {}
        for generator in generators:
            self.register(generator)

    def register(self, generator: DemodataGenerator) -> None:
        entity_name = generator.get_definition()
        if entity_name in self._generators:
            msg = f'A generator for "{entity_name}" is already registered'
            raise DemodataError(msg)
        self._generators[entity_name] = generator
        logger.debug("Registered demo data generator for %s", entity_name)

    def has_generator(self, entity_name: str) -> bool:
        return entity_name in self._generators

    def get_generator(self, entity_name: str) -> DemodataGenerator:
        try:
            return self._generators[entity_name]
        except KeyError:
            raise UnknownGeneratorError(entity_name) from None

    def entity_names(self) -> list[str]:
        return list(self._generators)

    async def generate(
        self,
        db: AsyncSession,
        request: DemodataRequest,
        context: Context,
        style: ShopStyle,
        seed: int | None = None,
    ) -> DemodataContext:
        """
        Run the generators in request order, committing after each one.

        Raises:
            UnknownGeneratorError: Before anything is written, if an entity
                of the request has no generator.
        """
        generators = [
            (entry, self.get_generator(entry.entity_name)) for entry in request
        ]

        demodata_context = DemodataContext(
            db,
            context,
            self.registry,
            self.writer,
            style,
            locales=self.locales,
            seed=seed,
        )

        for entry, generator in generators:
            logger.info("Generating %d %s record(s)", entry.count, entry.entity_name)
            started = time.perf_counter()
            try:
                await generator.generate(entry.count, demodata_context, entry.options)
            finally:
                if style.progress_running:
                    style.progress_finish()
            await db.commit()
            elapsed = time.perf_counter() - started
            demodata_context.add(entry.entity_name, entry.count, elapsed)
            logger.info("Generated %s in %.2fs", entry.entity_name, elapsed)

        return demodata_context
