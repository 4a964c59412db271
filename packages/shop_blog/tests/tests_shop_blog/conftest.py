import io

import pytest
import pytest_asyncio
from rich.console import Console
from shop_blog import BLOG_DEFINITIONS, BlogArticleGenerator, BlogTagGenerator
from shop_dal import db as db_module
from shop_dal import (
    Context,
    DefinitionRegistry,
    EntityRepository,
    EntityWriter,
    LanguageDefinition,
    language_payloads,
)
from shop_demodata import DemodataContext, DemodataService, ShopStyle

DATABASE_URL = "sqlite+aiosqlite:///:memory:"  # in-memory DB for tests
LOCALES = ["en-GB", "de-DE"]


class RecordingWriter:
    """Stands in for the entity writer and keeps every upsert call."""

    def __init__(self):
        self.calls = []

    async def upsert(self, db, entity_name, payloads, context):
        self.calls.append((entity_name, list(payloads)))

    def batch_sizes(self, entity_name="blog_article"):
        return [len(payloads) for name, payloads in self.calls if name == entity_name]


@pytest.fixture
def registry():
    return DefinitionRegistry([LanguageDefinition(), *BLOG_DEFINITIONS])


@pytest.fixture
def writer(registry):
    return EntityWriter(registry)


@pytest.fixture
def context():
    return Context()


@pytest.fixture
def console():
    return Console(file=io.StringIO(), width=120)


@pytest.fixture
def style(console):
    return ShopStyle(console)


@pytest.fixture
def service(registry, writer):
    return DemodataService(
        registry, writer, [BlogTagGenerator(), BlogArticleGenerator()], locales=LOCALES
    )


@pytest.fixture
def articles(registry):
    return EntityRepository(registry, "blog_article")


@pytest_asyncio.fixture(scope="function")
async def init_test_db(registry):
    db_module.init_db(DATABASE_URL, echo=False)
    await db_module.create_tables(registry.metadata)

    yield

    await db_module.close_db()


@pytest_asyncio.fixture()
async def db_session(init_test_db):
    async for session in db_module.get_db():
        yield session


@pytest_asyncio.fixture()
async def languages(db_session, writer, context):
    await writer.upsert(db_session, "language", language_payloads(LOCALES), context)


@pytest.fixture
def recording_writer():
    return RecordingWriter()


@pytest.fixture
def recording_context(db_session, context, registry, recording_writer, style):
    """Demo data context whose writes go to a RecordingWriter."""
    return DemodataContext(
        db_session, context, registry, recording_writer, style, locales=LOCALES, seed=7
    )


@pytest.fixture
def write(db_session, writer, context, languages):
    """Upsert payloads of one entity and return the write result."""

    async def _write(entity_name, *payloads):
        return await writer.upsert(db_session, entity_name, list(payloads), context)

    return _write
