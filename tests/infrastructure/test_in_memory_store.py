"""Tests for the in-memory storage adapters."""

import pytest

from conftest import make_item, make_template
from domain.resource_models import Annotation, Resource, ResourceKind, Value
from infrastructure.in_memory_store import (
    InMemoryResourceStore,
    InMemoryTemplateRepository,
    InMemoryVocabularyStore,
)


class TestInMemoryResourceStore:
    """Tests for the dictionary-backed resource store."""

    @pytest.mark.asyncio
    async def test_ids_are_assigned(self, resource_store):
        annotation = Annotation()
        item = make_item(dcterms__title=[Value.literal("dcterms:title", "A", annotation=annotation)])
        item.media = [Resource(kind=ResourceKind.MEDIA)]

        await resource_store.save(item)

        assert item.id == 1
        assert item.media[0].id == 2
        assert annotation.id == 3
        assert len(resource_store) == 2

    @pytest.mark.asyncio
    async def test_reads_return_copies(self, resource_store):
        item = resource_store.add(make_item(dcterms__title=[Value.literal("dcterms:title", "A")]))

        loaded = await resource_store.get_resource(item.id)
        loaded.set_values("dcterms:title", [])

        assert (await resource_store.get_resource(item.id)).has_values("dcterms:title")
        assert await resource_store.get_resource(99) is None

    @pytest.mark.asyncio
    async def test_existing_ids_by_kind(self):
        store = InMemoryResourceStore([
            Resource(kind=ResourceKind.ITEM_SET, id=10),
            Resource(kind=ResourceKind.ITEM, id=4),
        ])

        assert await store.existing_ids([10, 4, 99, 10]) == [4, 10]
        assert await store.existing_ids([10, 4], kind=ResourceKind.ITEM_SET) == [10]
        assert await store.resource_exists(4)
        assert not await store.resource_exists(99)

    @pytest.mark.asyncio
    async def test_conflict_is_exact(self, resource_store):
        resource_store.add(make_item(
            dcterms__identifier=[Value.literal("dcterms:identifier", "ABC")],
            dcterms__relation=[Value.link("dcterms:relation", 7), Value.from_uri("dcterms:relation", "https://x.org")],
        ))

        find = resource_store.find_conflicting_resource
        assert await find("dcterms:identifier", [Value.literal("dcterms:identifier", "ABC")]) == 1
        assert await find("dcterms:identifier", [Value.literal("dcterms:identifier", "ABC ")]) is None
        assert await find("dcterms:relation", [Value.link("dcterms:relation", 7)]) == 1
        assert await find("dcterms:relation", [Value.from_uri("dcterms:relation", "https://x.org", "X")]) == 1
        assert await find("dcterms:identifier", [Value.literal("dcterms:identifier", "ABC")], exclude_resource_id=1) is None
        assert await find("dcterms:identifier", []) is None

    @pytest.mark.asyncio
    async def test_transaction_rolls_back(self, resource_store):
        kept = resource_store.add(make_item())

        with pytest.raises(RuntimeError):
            async with resource_store.transaction():
                kept.title = "changed"
                await resource_store.save(kept)
                await resource_store.save(make_item())
                raise RuntimeError("abort")

        assert len(resource_store) == 1
        assert (await resource_store.get_resource(kept.id)).title is None

        fresh = await resource_store.save(make_item())
        assert fresh.id == 3

    @pytest.mark.asyncio
    async def test_nested_transaction_rolls_back_with_the_outer_one(self, resource_store):
        with pytest.raises(ValueError):
            async with resource_store.transaction():
                await resource_store.save(make_item())
                async with resource_store.transaction():
                    await resource_store.save(make_item())
                raise ValueError("abort")

        assert len(resource_store) == 0

    @pytest.mark.asyncio
    async def test_committed_transaction(self, resource_store):
        async with resource_store.transaction():
            await resource_store.save(make_item())

        assert len(resource_store) == 1


class TestInMemoryTemplateRepository:

    @pytest.mark.asyncio
    async def test_lookup_and_kind_filter(self):
        repository = InMemoryTemplateRepository([
            make_template(template_id=2, settings={"use_for_resources": ["media"]}),
            make_template(template_id=1),
        ])

        assert (await repository.get_template(2)).id == 2
        assert await repository.get_template(5) is None
        assert [t.id for t in await repository.list_templates()] == [1, 2]
        assert [t.id for t in await repository.templates_for_kind(ResourceKind.ITEM)] == [1]
        assert [t.id for t in await repository.templates_for_kind(ResourceKind.MEDIA)] == [1, 2]


class TestInMemoryVocabularyStore:

    @pytest.mark.asyncio
    async def test_append_keeps_order_and_skips_known_terms(self, vocabulary_store):
        vocabulary = await vocabulary_store.append_terms(1, ["Science", "Geography", "Art"])

        assert vocabulary.terms == ["History", "Science", "Geography", "Art"]
        assert vocabulary.data_type == "customvocab:1"

    @pytest.mark.asyncio
    async def test_unknown_vocabulary(self):
        with pytest.raises(KeyError):
            await InMemoryVocabularyStore().append_terms(3, ["x"])
