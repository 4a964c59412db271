import io

import pytest
import pytest_asyncio
from rich.console import Console
from shop_dal import db as db_module
from shop_dal import (
    Context,
    DefinitionRegistry,
    EntityDefinition,
    EntityWriter,
    LanguageDefinition,
)
from shop_dal.fields import IdField, StringField
from shop_dal.flags import PrimaryKey, Required
from shop_demodata import DemodataGenerator, DemodataService, ShopStyle

DATABASE_URL = "sqlite+aiosqlite:///:memory:"  # in-memory DB for tests


class TagDefinition(EntityDefinition):
    ENTITY_NAME = "tag"

    def define_fields(self):
        return [
            IdField("id", "id").add_flags(PrimaryKey(), Required()),
            StringField("name", "name").add_flags(Required()),
        ]


class TagGenerator(DemodataGenerator):
    def __init__(self):
        self.calls = []

    def get_definition(self):
        return "tag"

    async def generate(self, count, context, options):
        self.calls.append((count, dict(options)))
        await context.write(
            "tag", [{"name": context.faker.unique.word()} for _ in range(count)]
        )


@pytest.fixture
def registry():
    return DefinitionRegistry([LanguageDefinition(), TagDefinition()])


@pytest.fixture
def writer(registry):
    return EntityWriter(registry)


@pytest.fixture
def tag_generator():
    return TagGenerator()


@pytest.fixture
def service(registry, writer, tag_generator):
    return DemodataService(registry, writer, [tag_generator], locales=["en-GB", "de-DE"])


@pytest.fixture
def console():
    return Console(file=io.StringIO(), width=120, force_terminal=False)


@pytest.fixture
def style(console):
    return ShopStyle(console)


@pytest.fixture
def dal_context():
    return Context()


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
