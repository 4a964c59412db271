import pytest
import pytest_asyncio
from shop_dal import db as db_module
from shop_dal import (
    Context,
    DefinitionRegistry,
    EntityDefinition,
    EntityRepository,
    EntityTranslationDefinition,
    EntityWriter,
    LanguageDefinition,
    MappingEntityDefinition,
    language_payloads,
)
from shop_dal.fields import (
    BoolField,
    FkField,
    IdField,
    IntField,
    LongTextField,
    ManyToManyAssociationField,
    ManyToOneAssociationField,
    OneToManyAssociationField,
    OneToOneAssociationField,
    ParentFkField,
    ReferenceVersionField,
    StringField,
    TranslatedField,
    TranslationsAssociationField,
    VersionField,
)
from shop_dal.flags import (
    HIGH_SEARCH_RANKING,
    LOW_SEARCH_RANKING,
    MIDDLE_SEARCH_RANKING,
    ApiAware,
    CascadeDelete,
    Inherited,
    PrimaryKey,
    Required,
    RestrictDelete,
    ReverseInherited,
    SearchRanking,
)

DATABASE_URL = "sqlite+aiosqlite:///:memory:"  # in-memory DB for tests


class ManufacturerDefinition(EntityDefinition):
    ENTITY_NAME = "manufacturer"

    def define_fields(self):
        return [
            IdField("id", "id").add_flags(PrimaryKey(), Required(), ApiAware()),
            StringField("name", "name").add_flags(
                Required(), ApiAware(), SearchRanking(HIGH_SEARCH_RANKING)
            ),
            OneToManyAssociationField("products", "product", "manufacturer_id").add_flags(
                RestrictDelete()
            ),
        ]


class ProductDefinition(EntityDefinition):
    ENTITY_NAME = "product"

    def define_fields(self):
        return [
            IdField("id", "id").add_flags(PrimaryKey(), Required(), ApiAware()),
            VersionField(),
            ParentFkField("product").add_flags(ApiAware()),
            ReferenceVersionField("product", "parent_version_id"),
            StringField("product_number", "product_number", 64).add_flags(
                Required(), ApiAware(), SearchRanking(LOW_SEARCH_RANKING)
            ),
            IntField("stock", "stock").add_flags(ApiAware(), Inherited()),
            BoolField("active", "active").add_flags(ApiAware()),
            FkField("manufacturer_id", "manufacturer_id", "manufacturer").add_flags(
                ApiAware(), Inherited()
            ),
            TranslatedField("name").add_flags(
                ApiAware(), Inherited(), SearchRanking(HIGH_SEARCH_RANKING)
            ),
            TranslatedField("description").add_flags(
                ApiAware(), SearchRanking(LOW_SEARCH_RANKING)
            ),
            TranslationsAssociationField("product_translation").add_flags(
                Required(), CascadeDelete()
            ),
            ManyToOneAssociationField(
                "manufacturer", "manufacturer_id", "manufacturer"
            ).add_flags(ApiAware()),
            ManyToOneAssociationField("parent", "parent_id", "product"),
            OneToManyAssociationField("children", "product", "parent_id").add_flags(
                CascadeDelete()
            ),
            OneToManyAssociationField("reviews", "product_review", "product_id").add_flags(
                CascadeDelete(), ApiAware()
            ),
            ManyToManyAssociationField(
                "categories", "category", "product_category", "product_id", "category_id"
            ).add_flags(CascadeDelete(), Inherited(), ApiAware()),
            OneToOneAssociationField("media", "id", "product_id", "product_media").add_flags(
                CascadeDelete()
            ),
        ]

    def get_defaults(self):
        return {"active": True}


class ProductTranslationDefinition(EntityTranslationDefinition):
    ENTITY_NAME = "product_translation"
    PARENT_ENTITY = "product"

    def define_fields(self):
        return [
            StringField("name", "name"),
            LongTextField("description", "description"),
        ]


class ProductReviewDefinition(EntityDefinition):
    ENTITY_NAME = "product_review"

    def define_fields(self):
        return [
            IdField("id", "id").add_flags(PrimaryKey(), Required(), ApiAware()),
            FkField("product_id", "product_id", "product").add_flags(Required()),
            ReferenceVersionField("product").add_flags(Required()),
            StringField("title", "title").add_flags(Required(), ApiAware()),
            IntField("points", "points").add_flags(ApiAware()),
            ManyToOneAssociationField("product", "product_id", "product"),
        ]


class ProductMediaDefinition(EntityDefinition):
    ENTITY_NAME = "product_media"

    def define_fields(self):
        return [
            IdField("id", "id").add_flags(PrimaryKey(), Required()),
            FkField("product_id", "product_id", "product", unique=True).add_flags(Required()),
            ReferenceVersionField("product").add_flags(Required()),
            StringField("url", "url").add_flags(Required()),
            OneToOneAssociationField("product", "product_id", "id", "product"),
        ]


class CategoryDefinition(EntityDefinition):
    ENTITY_NAME = "category"

    def define_fields(self):
        return [
            IdField("id", "id").add_flags(PrimaryKey(), Required(), ApiAware()),
            StringField("name", "name").add_flags(
                Required(), ApiAware(), SearchRanking(MIDDLE_SEARCH_RANKING)
            ),
            ManyToManyAssociationField(
                "products", "product", "product_category", "category_id", "product_id"
            ).add_flags(CascadeDelete(), ReverseInherited("categories")),
        ]


class ProductCategoryDefinition(MappingEntityDefinition):
    ENTITY_NAME = "product_category"

    def define_fields(self):
        return [
            FkField("product_id", "product_id", "product").add_flags(
                PrimaryKey(), Required()
            ),
            ReferenceVersionField("product").add_flags(PrimaryKey(), Required()),
            FkField("category_id", "category_id", "category").add_flags(
                PrimaryKey(), Required()
            ),
            ManyToOneAssociationField("product", "product_id", "product"),
            ManyToOneAssociationField("category", "category_id", "category"),
        ]


CATALOG_DEFINITIONS = [
    LanguageDefinition,
    ManufacturerDefinition,
    ProductDefinition,
    ProductTranslationDefinition,
    ProductReviewDefinition,
    ProductMediaDefinition,
    CategoryDefinition,
    ProductCategoryDefinition,
]


@pytest.fixture
def registry():
    """A registry of a small catalog domain."""
    registry = DefinitionRegistry()
    for definition in CATALOG_DEFINITIONS:
        registry.register(definition)
    return registry


@pytest.fixture
def context():
    return Context()


@pytest.fixture
def writer(registry):
    return EntityWriter(registry)


@pytest.fixture
def products(registry):
    return EntityRepository(registry, "product")


@pytest_asyncio.fixture(scope="function")
async def init_test_db(registry):
    """Initialize the test database with the catalog tables."""
    db_module.init_db(DATABASE_URL, echo=False)
    await db_module.create_tables(registry.metadata)

    yield

    await db_module.close_db()


@pytest_asyncio.fixture()
async def db_session(init_test_db):
    """Provide a database session for tests."""

    async for session in db_module.get_db():
        yield session


@pytest_asyncio.fixture()
async def languages(db_session, writer, context):
    """Seed en-GB and de-DE."""
    await writer.upsert(db_session, "language", language_payloads(["en-GB", "de-DE"]), context)


@pytest.fixture
def write(db_session, writer, context, languages):
    """Upsert payloads of one entity and return the write result."""

    async def _write(entity_name, *payloads, ctx=None):
        return await writer.upsert(db_session, entity_name, list(payloads), ctx or context)

    return _write
