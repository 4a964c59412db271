from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from faker import Faker
from shop_dal import EntityRepository

if TYPE_CHECKING:
    from shop_dal import Context, DefinitionRegistry, EntityWriter, WriteResult
    from sqlalchemy.ext.asyncio import AsyncSession

    from .style import ShopStyle


@dataclass(slots=True, frozen=True)
class GeneratedEntity:
    entity_name: str
    count: int
    seconds: float


def faker_locale(locale: str) -> str:
    """Faker names locales with an underscore (``en-GB`` → ``en_GB``)."""
    return locale.replace("-", "_")


class DemodataContext:
    """
    Everything a generator needs during one demo data run.

    Attributes:
        db: Session the records are written with.
        dal_context: Context handed to the writer.
        faker: Faker proxy for all ``locales``; ``for_locale`` returns the
            generator of a single locale.
        style: Console output of the run.
    """

    def __init__(
        self,
        db: AsyncSession,
        dal_context: Context,
        registry: DefinitionRegistry,
        writer: EntityWriter,
        style: ShopStyle,
        locales: Sequence[str] = ("en-GB",),
        seed: int | None = None,
    ):
        self.db = db
        self.dal_context = dal_context
        self.registry = registry
        self.writer = writer
        self.style = style
        self.locales = list(locales)
        self.faker = Faker([faker_locale(locale) for locale in self.locales])
        if seed is not None:
            self.faker.seed_instance(seed)
        self._generated: list[GeneratedEntity] = []

    def for_locale(self, locale: str) -> Faker:
        return self.faker[faker_locale(locale)]

    async def write(
        self, entity_name: str, payloads: Sequence[Mapping[str, Any]]
    ) -> WriteResult:
        return await self.writer.upsert(self.db, entity_name, payloads, self.dal_context)

    async def get_ids(
        self, entity_name: str, limit: int | None = None
    ) -> list[Any]:
        """Random ids of existing ``entity_name`` rows."""
        repository = EntityRepository(self.registry, entity_name)
        return await repository.ids(self.db, limit=limit, random=True, context=self.dal_context)

    def add(self, entity_name: str, count: int, seconds: float) -> None:
        self._generated.append(GeneratedEntity(entity_name, count, seconds))

    @property
    def generated(self) -> list[GeneratedEntity]:
        return list(self._generated)

    def summary_rows(self) -> list[list[str]]:
        """Rows of the ``Entity | Items | Time`` summary table."""
        return [
            [entry.entity_name, str(entry.count), f"{entry.seconds:.2f}s"]
            for entry in self._generated
        ]
