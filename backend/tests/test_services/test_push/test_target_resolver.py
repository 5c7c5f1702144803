"""
Tests for TargetResolver.
"""

import logging
from unittest.mock import AsyncMock

import pytest

from herald.services.push.document_store import (
    Document,
    DocumentReference,
    InMemoryDocumentStore,
    Page,
)
from herald.services.push.models import (
    CollectionTarget,
    Condition,
    DocumentTarget,
    ModelToken,
    TokenFieldReference,
    TokenTarget,
    TopicTarget,
)
from herald.services.push.target_resolver import (
    TargetResolver,
    TokenDeduplicator,
    partition,
)
from tests.conftest import make_user


async def collect(async_iterable):
    return [item async for item in async_iterable]


# =============================================================================
# Helpers
# =============================================================================

class TestPartition:
    """Tests for partition and TokenDeduplicator."""

    def test_partition_sizes(self):
        tokens = [f"t{i}" for i in range(1200)]

        assert [len(batch) for batch in partition(tokens)] == [500, 500, 200]

    def test_partition_empty(self):
        assert partition([]) == []

    def test_partition_invalid_size(self):
        with pytest.raises(ValueError):
            partition(["a"], 0)

    def test_deduplicator_keeps_first_seen_order(self):
        seen = TokenDeduplicator()

        assert seen.add(["b", "a", "b"]) == ["b", "a"]
        assert seen.add(["a", "c"]) == ["c"]
        assert len(seen) == 3
        assert "c" in seen


# =============================================================================
# Token and topic targets
# =============================================================================

class TestTokenTargets:
    """Tests for explicit token targets."""

    def test_duplicates_removed(self):
        resolver = TargetResolver()

        assert resolver.resolve_tokens(TokenTarget(tokens=["a", "a", "b"])) == [["a", "b"]]

    def test_single_token(self):
        assert TargetResolver().resolve_tokens(TokenTarget(tokens="t1")) == [["t1"]]

    def test_model_token(self):
        target = TokenTarget(tokens=ModelToken(["t1", "t2", "t1"]))

        assert TargetResolver().resolve_tokens(target) == [["t1", "t2"]]

    def test_batches_of_500(self):
        target = TokenTarget(tokens=[f"t{i}" for i in range(1200)])

        batches = TargetResolver().resolve_tokens(target)

        assert [len(batch) for batch in batches] == [500, 500, 200]

    def test_custom_batch_size(self):
        resolver = TargetResolver(batch_size=2)

        assert resolver.resolve_tokens(TokenTarget(tokens=["a", "b", "c"])) == [["a", "b"], ["c"]]

    def test_batch_size_over_limit_rejected(self):
        with pytest.raises(ValueError):
            TargetResolver(batch_size=501)

    def test_topic_passthrough(self):
        assert TargetResolver().resolve_topic(TopicTarget(topic="news")) == "news"


# =============================================================================
# Token field extraction
# =============================================================================

class TestExtractTokens:
    """Tests for extract_tokens."""

    @pytest.fixture
    def store(self):
        return InMemoryDocumentStore({
            "accounts/a1": {"push": {"tokens": ["r1", "r2"]}},
            "customers/c1": {"account": DocumentReference("accounts/a1")},
        })

    @pytest.mark.asyncio
    async def test_plain_field(self):
        tokens = await TargetResolver().extract_tokens({"fcmTokens": ["t1"]}, "fcmTokens")

        assert tokens == ["t1"]

    @pytest.mark.asyncio
    async def test_nested_path(self):
        tokens = await TargetResolver().extract_tokens({"push": {"tokens": "t1"}}, "push.tokens")

        assert tokens == ["t1"]

    @pytest.mark.asyncio
    async def test_missing_field(self):
        assert await TargetResolver().extract_tokens({"other": 1}, "fcmTokens") == []

    @pytest.mark.asyncio
    async def test_reference_hop(self, store):
        resolver = TargetResolver(store)
        field = TokenFieldReference(key="account", value="push.tokens")

        tokens = await resolver.extract_tokens({"account": DocumentReference("accounts/a1")}, field)

        assert tokens == ["r1", "r2"]

    @pytest.mark.asyncio
    async def test_two_reference_hops(self, store):
        store.set("orders/o1", {"customer": DocumentReference("customers/c1")})
        resolver = TargetResolver(store)
        field = TokenFieldReference(
            key="customer",
            value=TokenFieldReference(key="account", value="push.tokens"),
        )

        tokens = await resolver.extract_tokens((await store.get("orders/o1")).data, field)

        assert tokens == ["r1", "r2"]

    @pytest.mark.asyncio
    async def test_embedded_mapping_hop(self):
        field = TokenFieldReference(key="device", value="token")

        tokens = await TargetResolver().extract_tokens({"device": {"token": "e1"}}, field)

        assert tokens == ["e1"]

    @pytest.mark.asyncio
    async def test_dangling_reference(self, store):
        resolver = TargetResolver(store)
        field = TokenFieldReference(key="account", value="push.tokens")

        tokens = await resolver.extract_tokens({"account": DocumentReference("accounts/gone")}, field)

        assert tokens == []

    @pytest.mark.asyncio
    async def test_store_error_yields_no_tokens(self):
        store = AsyncMock()
        store.get = AsyncMock(side_effect=RuntimeError("unavailable"))
        field = TokenFieldReference(key="account", value="tokens")

        tokens = await TargetResolver(store).extract_tokens({"account": DocumentReference("a/b")}, field)

        assert tokens == []


# =============================================================================
# Collection and document targets
# =============================================================================

class TestCollectionTargets:
    """Tests for resolve_collection."""

    @pytest.mark.asyncio
    async def test_matching_documents_only(self, memory_store):
        target = CollectionTarget(
            path="users",
            conditions=[Condition(type="equals", key="active", value=True)],
            token_field="fcmTokens",
        )

        pages = await collect(TargetResolver(memory_store).resolve_collection(target))

        assert pages == [["t1", "t2", "t3"]]

    @pytest.mark.asyncio
    async def test_filters_are_rechecked_in_memory(self):
        store = AsyncMock()
        store.scan = AsyncMock(return_value=Page(documents=[
            Document(id="u1", path="users/u1", data={"active": True, "fcmTokens": "t1"}),
            Document(id="u2", path="users/u2", data={"active": False, "fcmTokens": "t2"}),
        ]))
        filters = [Condition(type="equals", key="active", value=True)]
        target = CollectionTarget(path="users", filters=filters, token_field="fcmTokens")

        pages = await collect(TargetResolver(store).resolve_collection(target))

        assert pages == [["t1"]]
        assert store.scan.await_args.args[1] == filters

    @pytest.mark.asyncio
    async def test_one_token_list_per_page(self):
        store = InMemoryDocumentStore({
            f"users/u{i}": {"fcmTokens": [f"t{i}"]} for i in range(5)
        })
        resolver = TargetResolver(store, page_size=2)
        target = CollectionTarget(path="users", token_field="fcmTokens")

        pages = await collect(resolver.resolve_collection(target))

        assert pages == [["t0", "t1"], ["t2", "t3"], ["t4"]]

    @pytest.mark.asyncio
    async def test_scan_error_ends_resolution(self):
        store = AsyncMock()
        store.scan = AsyncMock(side_effect=RuntimeError("quota exceeded"))
        target = CollectionTarget(path="users", token_field="fcmTokens")

        assert await collect(TargetResolver(store).resolve_collection(target)) == []

    @pytest.mark.asyncio
    async def test_no_store_configured(self):
        target = CollectionTarget(path="users", token_field="fcmTokens")

        assert await collect(TargetResolver().resolve_collection(target)) == []


class TestDocumentTargets:
    """Tests for resolve_document and iter_token_pages."""

    @pytest.mark.asyncio
    async def test_document_tokens(self, memory_store):
        target = DocumentTarget(path="users/alice", token_field="fcmTokens")

        assert await TargetResolver(memory_store).resolve_document(target) == ["t1", "t2"]

    @pytest.mark.asyncio
    async def test_missing_document(self, memory_store):
        target = DocumentTarget(path="users/nobody", token_field="fcmTokens")

        assert await TargetResolver(memory_store).resolve_document(target) is None

    @pytest.mark.asyncio
    async def test_conditions_not_met(self, memory_store):
        target = DocumentTarget(
            path="users/carol",
            conditions=[Condition(type="equals", key="active", value=True)],
            token_field="fcmTokens",
        )

        assert await TargetResolver(memory_store).resolve_document(target) is None

    @pytest.mark.asyncio
    async def test_iter_token_pages_for_document(self, memory_store):
        target = DocumentTarget(path="users/bob", token_field="fcmTokens")

        pages = await collect(TargetResolver(memory_store).iter_token_pages(target, logging.INFO))

        assert pages == [["t3"]]

    @pytest.mark.asyncio
    async def test_unqualified_documents_yield_no_page(self, memory_store):
        resolver = TargetResolver(memory_store)
        missing = DocumentTarget(path="users/nobody", token_field="fcmTokens")
        inactive = DocumentTarget(
            path="users/carol",
            conditions=[Condition(type="equals", key="active", value=True)],
            token_field="fcmTokens",
        )

        assert await collect(resolver.iter_token_pages(missing)) == []
        assert await collect(resolver.iter_token_pages(inactive)) == []

    @pytest.mark.asyncio
    async def test_iter_token_pages_rejects_topic(self):
        with pytest.raises(TypeError):
            await collect(TargetResolver().iter_token_pages(TopicTarget(topic="news")))


class TestReferenceConditions:
    """Conditions that follow document references."""

    @pytest.fixture
    def store(self):
        return InMemoryDocumentStore({
            "accounts/paid": {"plan": "pro", "owner": DocumentReference("people/p1")},
            "accounts/free": {"plan": "free"},
            "people/p1": {"verified": True},
            "users/u1": make_user("t1", account=DocumentReference("accounts/paid")),
            "users/u2": make_user("t2", account=DocumentReference("accounts/free")),
            "users/u3": make_user("t3", account=DocumentReference("accounts/gone")),
        })

    @pytest.mark.asyncio
    async def test_nested_condition_checked_on_referenced_document(self, store):
        target = CollectionTarget(
            path="users",
            conditions=[Condition(key="account", value={"type": "equals", "key": "plan", "value": "pro"})],
            token_field="fcmTokens",
        )

        pages = await collect(TargetResolver(store).resolve_collection(target))

        assert pages == [["t1"]]

    @pytest.mark.asyncio
    async def test_condition_list_and_second_hop(self, store):
        target = DocumentTarget(
            path="users/u1",
            conditions=[Condition.model_validate({
                "type": "equals",
                "key": "account",
                "value": [
                    {"type": "equals", "key": "plan", "value": "pro"},
                    {"key": "owner", "value": {"type": "equals", "key": "verified", "value": True}},
                ],
            })],
            token_field="fcmTokens",
        )

        assert await TargetResolver(store).resolve_document(target) == ["t1"]

    @pytest.mark.asyncio
    async def test_missing_referenced_document_does_not_match(self, store):
        resolver = TargetResolver(store)
        condition = Condition(key="account", value={"type": "isNotNull", "key": "plan"})

        assert await resolver.matches({"account": DocumentReference("accounts/gone")}, [condition]) is False

    @pytest.mark.asyncio
    async def test_operator_applies_when_field_is_not_a_reference(self):
        resolver = TargetResolver(InMemoryDocumentStore())
        condition = Condition(type="equals", key="meta", value={"key": "x", "value": 1})

        assert await resolver.matches({"meta": {"key": "x", "value": 1}}, [condition]) is True

    @pytest.mark.asyncio
    async def test_reference_chain_depth_is_bounded(self):
        store = InMemoryDocumentStore({
            "nodes/a": {"next": DocumentReference("nodes/b")},
            "nodes/b": {"next": DocumentReference("nodes/a")},
        })
        resolver = TargetResolver(store)
        data = {"next": DocumentReference("nodes/a")}

        def chain(hops):
            condition = Condition(key="next", value={"type": "isNull", "key": "missing"})
            for _ in range(hops - 1):
                condition = Condition(key="next", value=condition)
            return condition

        assert await resolver.matches(data, [chain(3)]) is True
        assert await resolver.matches(data, [chain(12)]) is False
