from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Mapping
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from .context import DemodataContext


class DemodataGenerator(ABC):
    """
    Produces demo records of one entity.

    Example:
        >>> class TagGenerator(DemodataGenerator):
        ...     def get_definition(self):
        ...         return "tag"
        ...
        ...     async def generate(self, count, context, options):
        ...         payloads = [{"name": context.faker.word()} for _ in range(count)]
        ...         await context.write("tag", payloads)
    """

    @abstractmethod
    def get_definition(self) -> str:
        """Name of the entity this generator writes."""

    @abstractmethod
    async def generate(
        self, count: int, context: DemodataContext, options: Mapping[str, Any]
    ) -> None:
        """Write ``count`` records through ``context``."""
