from unittest.mock import Mock, patch
from uuid import UUID, uuid4

import pytest
from shop_dal import (
    LIVE_VERSION,
    RestrictDeleteViolationError,
    WriteError,
    WriteValidationError,
    language_id,
)
from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError

pytestmark = pytest.mark.asyncio


def _product(number="SW-1", **payload):
    return {
        "product_number": number,
        "translations": {"en-GB": {"name": f"Product {number}"}},
        **payload,
    }


async def _count(db_session, registry, entity_name):
    table = registry.table(entity_name)
    return (await db_session.execute(select(func.count()).select_from(table))).scalar_one()


class TestUpsert:
    async def test_creates_row_with_generated_id_and_live_version(
        self, write, db_session, registry
    ):
        result = await write("product", _product())

        [written] = result.get("product")
        assert isinstance(written.id, UUID)
        assert written.primary_key["version_id"] == LIVE_VERSION
        assert written.operation == "insert"
        assert result.count("product_translation") == 1
        assert await _count(db_session, registry, "product") == 1

    async def test_applies_definition_defaults(self, write, products, db_session, context):
        result = await write("product", _product())
        [product] = await products.read(db_session, result.ids("product"), context)
        assert product["active"] is True

    async def test_keeps_given_ids(self, write):
        product_id = uuid4()
        result = await write("product", _product(id=str(product_id)))
        assert result.ids("product") == [product_id]

    async def test_top_level_translated_field_uses_context_locale(
        self, write, products, db_session, context
    ):
        result = await write("product", {"product_number": "SW-1", "name": "Shoe"})

        [translation] = result.get("product_translation")
        assert translation.primary_key["language_id"] == language_id("en-GB")
        [product] = await products.read(db_session, result.ids("product"), context)
        assert product["name"] == "Shoe"

    async def test_translations_as_list_with_language_ids(self, write):
        result = await write(
            "product",
            {
                "product_number": "SW-1",
                "translations": [
                    {"language_id": str(language_id("en-GB")), "name": "Shoe"},
                    {"language_id": str(language_id("de-DE")), "name": "Schuh"},
                ],
            },
        )
        assert result.count("product_translation") == 2

    async def test_second_upsert_updates_existing_row(
        self, write, products, db_session, context
    ):
        product_id = uuid4()
        await write("product", _product(id=product_id, stock=1))
        result = await write("product", {"id": product_id, "stock": 7})

        [written] = result.get("product")
        assert written.operation == "update"
        assert "updated_at" in written.payload
        [product] = await products.read(db_session, [product_id], context)
        assert product["stock"] == 7
        assert product["product_number"] == "SW-1"
        assert product["updated_at"] is not None

    async def test_empty_payload_list_writes_nothing(self, writer, db_session, context):
        result = await writer.upsert(db_session, "product", [], context)
        assert result.count() == 0

    async def test_nested_many_to_one_is_written_first(
        self, write, products, db_session, context
    ):
        result = await write("product", _product(manufacturer={"name": "Acme"}))

        [manufacturer_id] = result.ids("manufacturer")
        [product] = await products.read(db_session, result.ids("product"), context)
        assert product["manufacturer_id"] == manufacturer_id
        assert result.entities().index("manufacturer") < result.entities().index("product")

    async def test_nested_one_to_many_children_reference_parent_version(
        self, write, db_session, registry
    ):
        result = await write(
            "product",
            _product(reviews=[{"title": "Great", "points": 5}, {"title": "Meh"}]),
        )

        assert result.count("product_review") == 2
        table = registry.table("product_review")
        rows = (await db_session.execute(select(table))).mappings().all()
        assert {row["product_id"] for row in rows} == set(result.ids("product"))
        assert {row["product_version_id"] for row in rows} == {LIVE_VERSION}

    async def test_reverse_one_to_one_payload(self, write, db_session, registry):
        result = await write("product", _product(media={"url": "https://cdn/shoe.png"}))

        [media] = result.get("product_media")
        assert media.payload["product_id"] == result.ids("product")[0]
        assert await _count(db_session, registry, "product_media") == 1

    async def test_many_to_many_links_new_and_existing_targets(
        self, write, db_session, registry
    ):
        existing = await write("category", {"name": "Shoes"})
        [category_id] = existing.ids("category")

        result = await write(
            "product",
            _product(categories=[{"id": str(category_id)}, {"name": "Sale"}]),
        )

        assert result.count("category") == 1
        assert result.count("product_category") == 2
        table = registry.table("product_category")
        rows = (await db_session.execute(select(table))).mappings().all()
        assert {row["product_version_id"] for row in rows} == {LIVE_VERSION}
        assert category_id in {row["category_id"] for row in rows}

    async def test_relinking_does_not_duplicate_mapping_rows(
        self, write, db_session, registry
    ):
        category = await write("category", {"name": "Shoes"})
        [category_id] = category.ids("category")
        product_id = uuid4()

        await write("product", _product(id=product_id, categories=[{"id": category_id}]))
        await write("product", {"id": product_id, "categories": [{"id": category_id}]})

        assert await _count(db_session, registry, "product_category") == 1

    async def test_same_row_twice_in_one_write_is_merged(self, write):
        manufacturer_id = uuid4()
        result = await write(
            "product",
            _product("SW-1", manufacturer={"id": manufacturer_id, "name": "Acme"}),
            _product("SW-2", manufacturer={"id": manufacturer_id, "name": "Acme Inc."}),
        )

        [manufacturer] = result.get("manufacturer")
        assert manufacturer.payload["name"] == "Acme Inc."
        assert result.count("product") == 2


class TestInsertAndUpdate:
    async def test_insert_rejects_existing_rows(self, writer, write, db_session, context):
        product_id = uuid4()
        await write("product", _product(id=product_id))

        with pytest.raises(WriteValidationError) as exc_info:
            await writer.insert(db_session, "product", [_product(id=product_id)], context)
        assert exc_info.value.violations[0].message == "entity already exists"

    async def test_update_rejects_missing_rows(self, writer, db_session, context, languages):
        with pytest.raises(WriteValidationError) as exc_info:
            await writer.update(db_session, "product", [{"id": uuid4(), "stock": 1}], context)
        assert exc_info.value.paths() == ["/0"]

    async def test_update_changes_only_given_columns(
        self, writer, write, products, db_session, context
    ):
        product_id = uuid4()
        await write("product", _product(id=product_id, stock=3))
        await writer.update(db_session, "product", [{"id": product_id, "active": False}], context)

        [product] = await products.read(db_session, [product_id], context)
        assert product["active"] is False
        assert product["stock"] == 3


class TestViolations:
    async def test_unknown_property(self, write):
        with pytest.raises(WriteValidationError) as exc_info:
            await write("product", _product(colour="red"))
        assert exc_info.value.paths() == ["/0/colour"]

    async def test_missing_required_field(self, write):
        with pytest.raises(WriteValidationError) as exc_info:
            await write("product", {"translations": {"en-GB": {"name": "Shoe"}}})
        assert exc_info.value.paths() == ["/0/product_number"]
        assert exc_info.value.violations[0].message == "is required"

    async def test_missing_required_translation(self, write):
        with pytest.raises(WriteValidationError) as exc_info:
            await write("product", {"product_number": "SW-1"})
        assert exc_info.value.paths() == ["/0/translations"]

    async def test_violations_of_all_payloads_are_collected(self, write):
        with pytest.raises(WriteValidationError) as exc_info:
            await write(
                "product",
                _product(stock="many"),
                _product(reviews=[{"points": 3}]),
                _product(id="nope"),
            )
        assert exc_info.value.paths() == [
            "/0/stock",
            "/2/id",
            "/1/reviews/0/title",
        ]

    async def test_unknown_language(self, write):
        with pytest.raises(WriteValidationError) as exc_info:
            await write("product", _product(translations={"fr-FR": {"name": "Chaussure"}}))
        assert exc_info.value.paths() == ["/0/translations/fr-FR"]

    async def test_payload_must_be_an_object(self, write):
        with pytest.raises(WriteValidationError, match="expected an object"):
            await write("product", ["SW-1"])

    async def test_nothing_is_written_on_violation(self, write, db_session, registry):
        with pytest.raises(WriteValidationError):
            await write("product", _product("SW-1"), _product("SW-2", colour="red"))
        assert await _count(db_session, registry, "product") == 0

    async def test_violation_message_lists_paths(self, write):
        with pytest.raises(WriteValidationError, match=r"/0/colour: property is not defined"):
            await write("product", _product(colour="red"))


class TestDatabaseErrors:
    async def test_foreign_key_failure_is_wrapped(self, write, db_session, registry):
        with pytest.raises(WriteError) as exc_info:
            await write("product_review", {"product_id": uuid4(), "title": "Orphan"})
        assert not isinstance(exc_info.value, WriteValidationError)
        assert await _count(db_session, registry, "product_review") == 0

    async def test_rolls_back_when_commit_fails(self, write, db_session):
        with (
            patch.object(
                db_session, "rollback", wraps=db_session.rollback
            ) as spied_rollback,
            patch.object(
                db_session, "commit", side_effect=SQLAlchemyError("Commit failed")
            ),
            pytest.raises(WriteError, match="Database error while writing category"),
        ):
            await write("category", {"name": "Shoes"})

        spied_rollback.assert_awaited_once()

    async def test_unsupported_dialect_fails_before_writing(
        self, write, db_session, registry
    ):
        bind = Mock()
        bind.dialect.name = "mysql"
        with (
            patch.object(db_session, "get_bind", return_value=bind),
            patch.object(db_session, "execute", wraps=db_session.execute) as spied_execute,
            pytest.raises(WriteError, match="not supported on mysql"),
        ):
            await write("category", {"name": "Shoes"})

        spied_execute.assert_not_called()
        assert await _count(db_session, registry, "category") == 0


class TestDelete:
    async def test_delete_cascades_to_dependent_rows(
        self, writer, write, db_session, registry, context
    ):
        result = await write(
            "product",
            _product(
                reviews=[{"title": "Great"}],
                categories=[{"name": "Shoes"}],
                media={"url": "https://cdn/shoe.png"},
            ),
        )
        deleted = await writer.delete(db_session, "product", result.ids("product"), context)

        assert deleted.count("product") == 1
        assert deleted.get("product")[0].operation == "delete"
        for entity_name in (
            "product",
            "product_translation",
            "product_review",
            "product_category",
            "product_media",
        ):
            assert await _count(db_session, registry, entity_name) == 0
        assert await _count(db_session, registry, "category") == 1

    async def test_delete_cascades_to_variants(self, writer, write, db_session, registry, context):
        parent_id = uuid4()
        await write("product", _product("SW-1", id=parent_id))
        await write("product", _product("SW-1.1", parent_id=parent_id))

        await writer.delete(db_session, "product", [parent_id], context)
        assert await _count(db_session, registry, "product") == 0

    async def test_restrict_delete_raises(self, writer, write, db_session, registry, context):
        result = await write("product", _product(manufacturer={"name": "Acme"}))

        with pytest.raises(RestrictDeleteViolationError):
            await writer.delete(db_session, "manufacturer", result.ids("manufacturer"), context)
        assert await _count(db_session, registry, "manufacturer") == 1

    async def test_unknown_ids_are_reported_as_not_found(
        self, writer, db_session, context, languages
    ):
        missing = uuid4()
        result = await writer.delete(db_session, "category", [missing], context)
        assert result.count() == 0
        assert result.not_found == [{"id": missing}]

    async def test_mapping_rows_are_deleted_by_composite_key(
        self, writer, write, db_session, registry, context
    ):
        category = await write("category", {"name": "Shoes"})
        [category_id] = category.ids("category")
        product = await write("product", _product(categories=[{"id": category_id}]))
        [product_id] = product.ids("product")

        result = await writer.delete(
            db_session,
            "product_category",
            [{"product_id": product_id, "category_id": category_id}],
            context,
        )
        assert result.count("product_category") == 1
        assert await _count(db_session, registry, "product_category") == 0
        assert await _count(db_session, registry, "product") == 1

    async def test_delete_requires_every_key_column(self, writer, db_session, context):
        with pytest.raises(WriteValidationError) as exc_info:
            await writer.delete(
                db_session, "product_category", [{"product_id": uuid4()}], context
            )
        assert exc_info.value.paths() == ["/0/category_id"]
