from __future__ import annotations

import logging
from datetime import timezone
from typing import TYPE_CHECKING, Any
from uuid import uuid4

from shop_demodata import DemodataGenerator

if TYPE_CHECKING:
    from shop_demodata import DemodataContext

logger = logging.getLogger(__name__)

BATCH_SIZE = 100
MAX_TAGS_PER_ARTICLE = 3


class BlogArticleGenerator(DemodataGenerator):
    """
    Generates published articles with a translation for every locale of the
    run.

    Records are written in batches of ``batch_size``; the progress bar moves
    by the number of records each flush wrote.

    Options:
        author_id: Author of every generated article. Without it the first
            existing author is used, or a demo author is created.
        with_tags: Link up to three existing tags per article (default on).
    """

    def __init__(self, batch_size: int = BATCH_SIZE):
        if batch_size < 1:
            msg = f"batch_size must be positive, got {batch_size}"
            raise ValueError(msg)
        self.batch_size = batch_size

    def get_definition(self) -> str:
        return "blog_article"

    async def generate(
        self, count: int, context: DemodataContext, options: dict[str, Any]
    ) -> None:
        author_id = options.get("author_id")
        tag_ids: list[Any] = []
        if count > 0:
            if author_id is None:
                author_id = await self._get_author_id(context)
            if options.get("with_tags", True):
                tag_ids = await context.get_ids("blog_tag", limit=50)

        with context.style.progress(count):
            payload: list[dict[str, Any]] = []
            for _ in range(count):
                payload.append(self._build_article(context, author_id, tag_ids))

                if len(payload) >= self.batch_size:
                    await self._write(context, payload)
                    payload = []

            if payload:
                await self._write(context, payload)

    async def _write(self, context: DemodataContext, payload: list[dict[str, Any]]) -> None:
        await context.writer.upsert(
            context.db, "blog_article", payload, context.dal_context
        )
        context.style.progress_advance(len(payload))

    async def _get_author_id(self, context: DemodataContext) -> Any:
        ids = await context.get_ids("blog_author", limit=1)
        if ids:
            return ids[0]

        faker = context.faker
        result = await context.write(
            "blog_author",
            [{"id": uuid4(), "name": faker.name(), "email": faker.unique.email()}],
        )
        logger.info("Created demo author for generated articles")
        return result.ids("blog_author")[0]

    def _build_article(
        self, context: DemodataContext, author_id: Any, tag_ids: list[Any]
    ) -> dict[str, Any]:
        faker = context.faker
        translations = {}
        for locale in context.locales:
            local_faker = context.for_locale(locale)
            translations[locale] = {
                "title": local_faker.sentence(nb_words=6).rstrip(".")[:255],
                "teaser": local_faker.paragraph(nb_sentences=2),
                "content": "\n\n".join(local_faker.paragraphs(nb=4)),
            }

        article: dict[str, Any] = {
            "id": uuid4(),
            "active": True,
            "author_id": author_id,
            "published_at": faker.date_time_this_year(tzinfo=timezone.utc),
            "translations": translations,
        }
        if tag_ids:
            picked = faker.random_elements(
                tag_ids, length=min(MAX_TAGS_PER_ARTICLE, len(tag_ids)), unique=True
            )
            article["tags"] = [{"id": tag_id} for tag_id in picked]
        return article


class BlogTagGenerator(DemodataGenerator):
    """Generates tags named after unique Faker words."""

    def get_definition(self) -> str:
        return "blog_tag"

    async def generate(
        self, count: int, context: DemodataContext, options: dict[str, Any]
    ) -> None:
        names = _unique_words(context, count)
        with context.style.progress(count):
            for start in range(0, count, BATCH_SIZE):
                batch = names[start : start + BATCH_SIZE]
                payload = [{"id": uuid4(), "name": name} for name in batch]
                await context.write("blog_tag", payload)
                context.style.progress_advance(len(payload))


def _unique_words(context: DemodataContext, count: int) -> list[str]:
    words: list[str] = []
    seen: set[str] = set()
    while len(words) < count:
        word = context.faker.word()
        if word in seen:
            word = f"{word}-{len(words)}"
        seen.add(word)
        words.append(word)
    return words
