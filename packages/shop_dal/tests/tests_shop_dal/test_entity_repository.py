from uuid import uuid4

import pytest
from shop_dal import DefinitionError, EntityRepository
from shop_dal.flags import HIGH_SEARCH_RANKING, LOW_SEARCH_RANKING

pytestmark = pytest.mark.asyncio


@pytest.fixture
def categories(registry):
    return EntityRepository(registry, "category")


class TestRead:
    async def test_read_keeps_requested_order_and_skips_unknown_ids(
        self, write, products, db_session, context
    ):
        first, second = uuid4(), uuid4()
        await write(
            "product",
            {"id": first, "product_number": "A", "name": "First"},
            {"id": second, "product_number": "B", "name": "Second"},
        )

        records = await products.read(db_session, [second, uuid4(), str(first)], context)
        assert [record["product_number"] for record in records] == ["B", "A"]

    async def test_read_of_no_ids(self, products, db_session, context):
        assert await products.read(db_session, [], context) == []

    async def test_translation_falls_back_to_fallback_locale(
        self, write, products, db_session, context
    ):
        product_id = uuid4()
        await write(
            "product",
            {
                "id": product_id,
                "product_number": "A",
                "translations": {
                    "en-GB": {"name": "Shoe", "description": "Comfortable"},
                    "de-DE": {"name": "Schuh"},
                },
            },
        )

        [german] = await products.read(db_session, [product_id], context.with_locale("de-DE"))
        assert german["name"] == "Schuh"
        assert german["description"] == "Comfortable"

        [english] = await products.read(db_session, [product_id], context)
        assert english["name"] == "Shoe"

    async def test_other_versions_are_invisible(self, write, products, db_session, context):
        product_id = uuid4()
        draft = context.with_version(uuid4())
        await write("product", {"id": product_id, "product_number": "A", "name": "Draft"}, ctx=draft)

        assert await products.read(db_session, [product_id], context) == []
        [record] = await products.read(db_session, [product_id], draft)
        assert record["name"] == "Draft"


class TestAssociations:
    async def test_many_to_one(self, write, products, db_session, context):
        result = await write(
            "product",
            {"product_number": "A", "name": "Shoe", "manufacturer": {"name": "Acme"}},
        )
        [product] = await products.read(
            db_session, result.ids("product"), context, ["manufacturer"]
        )
        assert product["manufacturer"]["name"] == "Acme"

    async def test_one_to_many_and_reverse_one_to_one(
        self, write, products, db_session, context
    ):
        result = await write(
            "product",
            {
                "product_number": "A",
                "name": "Shoe",
                "reviews": [{"title": "Great"}, {"title": "Meh"}],
                "media": {"url": "https://cdn/shoe.png"},
            },
        )
        [product] = await products.read(
            db_session, result.ids("product"), context, ["reviews", "media"]
        )
        assert sorted(review["title"] for review in product["reviews"]) == ["Great", "Meh"]
        assert product["media"]["url"] == "https://cdn/shoe.png"

    async def test_empty_associations(self, write, products, db_session, context):
        result = await write("product", {"product_number": "A", "name": "Shoe"})
        [product] = await products.read(
            db_session, result.ids("product"), context, ["reviews", "media", "manufacturer"]
        )
        assert product["reviews"] == []
        assert product["media"] is None
        assert product["manufacturer"] is None

    async def test_many_to_many(self, write, products, db_session, context):
        result = await write(
            "product",
            {
                "product_number": "A",
                "name": "Shoe",
                "categories": [{"name": "Shoes"}, {"name": "Sale"}],
            },
        )
        [product] = await products.read(
            db_session, result.ids("product"), context, ["categories"]
        )
        assert sorted(category["name"] for category in product["categories"]) == [
            "Sale",
            "Shoes",
        ]

    async def test_translations_association_returns_rows(
        self, write, products, db_session, context
    ):
        result = await write(
            "product",
            {
                "product_number": "A",
                "translations": {"en-GB": {"name": "Shoe"}, "de-DE": {"name": "Schuh"}},
            },
        )
        [product] = await products.read(
            db_session, result.ids("product"), context, ["translations"]
        )
        assert sorted(row["name"] for row in product["translations"]) == ["Schuh", "Shoe"]

    async def test_unknown_association_raises(self, write, products, db_session, context):
        result = await write("product", {"product_number": "A", "name": "Shoe"})
        with pytest.raises(DefinitionError, match='"stock" is not an association'):
            await products.read(db_session, result.ids("product"), context, ["stock"])


class TestInheritance:
    async def _parent_with_variants(self, write):
        parent_id, plain_id, own_id = uuid4(), uuid4(), uuid4()
        await write(
            "product",
            {
                "id": parent_id,
                "product_number": "SW",
                "stock": 10,
                "name": "Shirt",
                "description": "Cotton",
                "manufacturer": {"name": "Acme"},
                "categories": [{"name": "Shirts"}],
            },
        )
        await write(
            "product",
            {
                "id": plain_id,
                "parent_id": parent_id,
                "product_number": "SW.1",
                "translations": {"en-GB": {"description": "Red"}},
            },
            {
                "id": own_id,
                "parent_id": parent_id,
                "product_number": "SW.2",
                "stock": 2,
                "name": "Blue shirt",
                "categories": [{"name": "Sale"}],
            },
        )
        return parent_id, plain_id, own_id

    async def test_empty_inherited_fields_take_parent_values(
        self, write, products, db_session, context
    ):
        parent_id, plain_id, own_id = await self._parent_with_variants(write)
        [parent, plain, own] = await products.read(
            db_session, [parent_id, plain_id, own_id], context
        )

        assert plain["stock"] == 10
        assert plain["name"] == "Shirt"
        assert plain["manufacturer_id"] == parent["manufacturer_id"]
        assert own["stock"] == 2
        assert own["name"] == "Blue shirt"

    async def test_fields_without_inherited_flag_stay_empty(
        self, write, products, db_session, context
    ):
        _, plain_id, own_id = await self._parent_with_variants(write)
        [plain, own] = await products.read(db_session, [plain_id, own_id], context)
        assert plain["description"] == "Red"
        assert own["description"] is None

    async def test_inherited_association(self, write, products, db_session, context):
        parent_id, plain_id, own_id = await self._parent_with_variants(write)
        [plain, own] = await products.read(
            db_session, [plain_id, own_id], context, ["categories"]
        )

        assert [category["name"] for category in plain["categories"]] == ["Shirts"]
        assert [category["name"] for category in own["categories"]] == ["Sale"]

    async def test_reverse_inherited_association(
        self, write, categories, db_session, context
    ):
        parent_id, plain_id, own_id = await self._parent_with_variants(write)
        shirts_id = (await categories.search(db_session, "Shirts", context))[0].id

        [shirts] = await categories.read(db_session, [shirts_id], context, ["products"])
        assert {product["id"] for product in shirts["products"]} == {parent_id, plain_id}


class TestSearch:
    async def test_scores_sum_weights_of_matching_fields(
        self, write, products, db_session, context
    ):
        a, b, c = uuid4(), uuid4(), uuid4()
        await write(
            "product",
            {"id": a, "product_number": "SW-1", "name": "Ferrari red", "description": "fast"},
            {"id": b, "product_number": "SW-2", "name": "Bike", "description": "Not a ferrari"},
            {
                "id": c,
                "product_number": "FERRARI-3",
                "name": "Ferrari toy",
                "description": "ferrari licensed",
            },
            {"product_number": "SW-4", "name": "Boat"},
        )

        hits = await products.search(db_session, "ferrari", context)

        assert [hit.id for hit in hits] == [c, a, b]
        assert [hit.score for hit in hits] == [
            HIGH_SEARCH_RANKING + 2 * LOW_SEARCH_RANKING,
            HIGH_SEARCH_RANKING,
            LOW_SEARCH_RANKING,
        ]

    async def test_blank_term_finds_nothing(self, products, db_session, context):
        assert await products.search(db_session, "  ", context) == []

    async def test_search_limit(self, write, products, db_session, context):
        await write(
            "product",
            *({"product_number": f"SW-{index}", "name": "Shirt"} for index in range(5)),
        )
        assert len(await products.search(db_session, "shirt", context, limit=3)) == 3

    async def test_like_wildcards_are_escaped(self, write, products, db_session, context):
        await write("product", {"product_number": "SW-1", "name": "Shirt"})
        assert await products.search(db_session, "%", context) == []


class TestIdsAndCount:
    async def test_ids_and_count(self, write, products, db_session, context):
        result = await write(
            "product",
            *({"product_number": f"SW-{index}", "name": "Shirt"} for index in range(4)),
        )

        assert await products.count(db_session) == 4
        assert set(await products.ids(db_session)) == set(result.ids("product"))
        assert len(await products.ids(db_session, limit=2, random=True)) == 2

    async def test_count_ignores_other_versions(self, write, products, db_session, context):
        await write("product", {"product_number": "A", "name": "Shirt"}, ctx=context.with_version(uuid4()))
        assert await products.count(db_session, context) == 0
