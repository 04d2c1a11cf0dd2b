"""Tests for the in-memory store used in development and tests."""

from decimal import Decimal

import pytest

from exoquote.config import Settings
from exoquote.models.contracts import NewQuote, ProductUpsert, QuoteItem
from exoquote.store.factory import build_store
from exoquote.store.memory import MemoryStore


class TestCatalog:
    @pytest.mark.asyncio
    async def test_upsert_keeps_id_and_created_at(self, store):
        first = await store.upsert_product(ProductUpsert(stock_code="A", name="One"))
        second = await store.upsert_product(
            ProductUpsert(stock_code="A", name="Uno", price=Decimal("3.00"))
        )
        assert second.id == first.id
        assert second.created_at == first.created_at
        assert second.name == "Uno"
        assert len(store.products) == 1

    @pytest.mark.asyncio
    async def test_identical_upsert_leaves_row_untouched(self, store):
        data = ProductUpsert(stock_code="A", name="One", price=Decimal("3.00"), stock_level=2)
        first = await store.upsert_product(data)
        again = await store.upsert_product(data.model_copy())
        assert again == first
        assert store.products["A"].updated_at == first.updated_at

    @pytest.mark.asyncio
    async def test_returned_copies_are_detached(self, store):
        product = await store.upsert_product(ProductUpsert(stock_code="A", name="One"))
        product.name = "mutated"
        assert (await store.get_product("A")).name == "One"

    @pytest.mark.asyncio
    async def test_search_is_case_insensitive_over_sku(self, seeded_store):
        found = await seeded_store.search_products("93000000")
        assert [p.stock_code for p in found] == ["TILE-1"]

    @pytest.mark.asyncio
    async def test_search_clamps_limit(self, seeded_store):
        assert len(await seeded_store.search_products(None, limit=0)) == 1


class TestEditQuote:
    @pytest.mark.asyncio
    async def test_missing_quote_yields_none(self, store):
        async with store.edit_quote(99) as quote:
            assert quote is None

    @pytest.mark.asyncio
    async def test_unknown_ids_do_not_accumulate_locks(self, store):
        created = await store.create_quote(NewQuote(share_token="t", currency="AUD"))
        for quote_id in range(100, 150):
            async with store.edit_quote(quote_id) as quote:
                assert quote is None
        async with store.edit_quote(created.id) as quote:
            quote.notes = "kept"
        assert set(store._quote_locks) == {created.id}

    @pytest.mark.asyncio
    async def test_new_items_get_ids_on_commit(self, store):
        created = await store.create_quote(NewQuote(share_token="t", currency="AUD"))
        async with store.edit_quote(created.id) as quote:
            quote.items.append(QuoteItem(stock_code="A", name="A", price=Decimal("1.00"), qty=1))
        stored = await store.get_quote(created.id)
        assert stored.items[0].id is not None

    @pytest.mark.asyncio
    async def test_exception_discards_changes(self, store):
        created = await store.create_quote(NewQuote(share_token="t", currency="AUD"))
        with pytest.raises(RuntimeError):
            async with store.edit_quote(created.id) as quote:
                quote.notes = "half-written"
                raise RuntimeError("abort")
        assert (await store.get_quote(created.id)).notes is None


class TestFactory:
    def test_memory_by_default(self):
        assert isinstance(build_store(Settings(_env_file=None, use_database=False)), MemoryStore)
