"""Integration tests for the Redis evidence store and registry.

Requires a running Redis Stack instance at localhost:6379.
Run with: pytest tests/integration/test_redis_evidence_store.py -m integration -v
"""

from __future__ import annotations

import asyncio
from datetime import UTC, datetime, timedelta
from uuid import uuid4

import pytest

from evidence_pipeline.adapters.redis.queues import build_queues
from evidence_pipeline.adapters.redis.store import RedisEntityRegistry, RedisEvidenceStore
from evidence_pipeline.domain.dispatch import EvidenceDispatcher
from evidence_pipeline.domain.filters import FilterCompiler
from evidence_pipeline.domain.histogram import build_histogram
from evidence_pipeline.domain.models import DispatchState, Verdict
from evidence_pipeline.settings import RedisSettings
from tests.fixtures.evidence import (
    make_chat_evidence,
    make_evidence,
    make_position_evidence,
    make_scope_tree,
)

pytestmark = pytest.mark.integration


@pytest.fixture()
def redis_settings() -> RedisSettings:
    return RedisSettings()


@pytest.fixture()
async def redis_store(redis_settings: RedisSettings):
    """Provide a connected RedisEvidenceStore and clean up after the test."""
    store = RedisEvidenceStore.create(redis_settings)
    await store.ensure_indexes()
    yield store
    await store.close()


@pytest.fixture()
async def redis_registry(redis_store: RedisEvidenceStore, redis_settings: RedisSettings):
    return RedisEntityRegistry(redis_store.client, redis_settings)


@pytest.fixture()
async def seeded_tree(redis_registry: RedisEntityRegistry):
    """A fresh scope tree stored in the registry."""
    tree = make_scope_tree(uuid4().hex[:12])
    for node in tree.nodes:
        await redis_registry.put(node)
    return tree


async def _wait_for_index() -> None:
    # JSON documents are indexed asynchronously
    await asyncio.sleep(0.2)


class TestAppendAndGetById:
    async def test_roundtrip(self, redis_store: RedisEvidenceStore) -> None:
        evidence = make_position_evidence()
        entry_id = await redis_store.append(evidence)

        assert "-" in entry_id
        assert await redis_store.get_by_id(evidence.id) == evidence

    async def test_not_found(self, redis_store: RedisEvidenceStore) -> None:
        assert await redis_store.get_by_id(uuid4().hex) is None


class TestRegistry:
    async def test_resolve(self, redis_registry: RedisEntityRegistry, seeded_tree) -> None:
        assert await redis_registry.resolve(seeded_tree.agent.id) == seeded_tree.agent

    async def test_resolve_missing(self, redis_registry: RedisEntityRegistry) -> None:
        assert await redis_registry.resolve(uuid4().hex) is None


class TestCompiledSearch:
    async def test_scope_type_and_keywords(
        self, redis_store: RedisEvidenceStore, redis_registry: RedisEntityRegistry, seeded_tree
    ) -> None:
        match = make_chat_evidence(seeded_tree.agent, kw=["john", "skype"])
        await redis_store.append(match)
        await redis_store.append(make_chat_evidence(seeded_tree.agent, kw=["whatsapp"]))
        await redis_store.append(make_chat_evidence(kw=["john", "skype"]))
        await _wait_for_index()

        result = await FilterCompiler(redis_registry).compile(
            {"target": seeded_tree.target.id, "type": ["chat"], "info": "John Skype"}
        )
        found = await redis_store.search(result.predicate)

        assert [e.id for e in found] == [match.id]

    async def test_time_window(
        self, redis_store: RedisEvidenceStore, redis_registry: RedisEntityRegistry, seeded_tree
    ) -> None:
        old = datetime.now(UTC) - timedelta(days=10)
        recent = make_evidence(seeded_tree.agent)
        await redis_store.append(recent)
        await redis_store.append(make_evidence(seeded_tree.agent, da=old, dr=old))
        await _wait_for_index()

        result = await FilterCompiler(redis_registry).compile(
            {"target": seeded_tree.target.id, "from": "7d"}
        )
        found = await redis_store.search(result.predicate)

        assert [e.id for e in found] == [recent.id]

    async def test_proximity(
        self, redis_store: RedisEvidenceStore, redis_registry: RedisEntityRegistry, seeded_tree
    ) -> None:
        near = make_position_evidence(seeded_tree.agent)
        far = make_position_evidence(seeded_tree.agent, position={"lat": -33.86, "lon": 151.2})
        await redis_store.append(near)
        await redis_store.append(far)
        await _wait_for_index()

        result = await FilterCompiler(redis_registry).compile(
            {
                "target": seeded_tree.target.id,
                "type": "position",
                "info": "lat:45.46,lon:9.19,r:1000",
            }
        )
        assert result.predicate.proximity is not None
        found = await redis_store.search(result.predicate)

        assert [e.id for e in found] == [near.id]


class TestHistogram:
    async def test_counts(self, redis_store: RedisEvidenceStore, seeded_tree) -> None:
        for _ in range(3):
            await redis_store.append(make_chat_evidence(seeded_tree.agent))
        for _ in range(2):
            await redis_store.append(make_position_evidence(seeded_tree.agent))
        await redis_store.append(make_evidence(seeded_tree.agent, type="ip"))
        await _wait_for_index()

        results = await build_histogram(seeded_tree.target, redis_store)

        assert results["chat"] == 3
        assert results["position"] == 2
        assert results["file"] == 0
        assert "ip" not in results


class TestDispatchToStreams:
    async def test_kept_record_lands_on_two_streams(
        self, redis_store: RedisEvidenceStore, redis_settings: RedisSettings, seeded_tree
    ) -> None:
        class _Keep:
            async def evaluate(self, scope, evidence):
                return Verdict.KEEP

        queues = build_queues(redis_store.client, redis_settings)
        evidence = make_chat_evidence(seeded_tree.agent)
        dispatcher = EvidenceDispatcher(_Keep(), queues["translation"], queues["aggregation"])

        outcome = await dispatcher.dispatch_with_acks(seeded_tree.target, evidence)

        assert outcome.state == DispatchState.DISTRIBUTED
        entries = await redis_store.client.xrange(
            redis_settings.translation_stream,
            min=outcome.acks["translation"],
            max=outcome.acks["translation"],
        )
        assert entries[0][1][b"evidence_id"] == evidence.id.encode()
