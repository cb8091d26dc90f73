"""Dispatch worker.

Reads the ingestion stream (one entry per newly captured record), loads the
record and its owning target, and hands both to the ``EvidenceDispatcher``,
which consults the policy and fans kept records out to the translation and
aggregation queues.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

import structlog

from evidence_pipeline.domain.dispatch import EvidenceDispatcher
from evidence_pipeline.settings import Settings
from evidence_pipeline.worker.consumer import BaseConsumer

if TYPE_CHECKING:
    from redis.asyncio import Redis

    from evidence_pipeline.ports.evidence_store import EvidenceStore
    from evidence_pipeline.ports.policy import PolicyEvaluator
    from evidence_pipeline.ports.queue import EvidenceQueue
    from evidence_pipeline.ports.registry import EntityRegistry

log = structlog.get_logger(__name__)


class DispatchConsumer(BaseConsumer):
    """Routes each ingested record through the evidence dispatcher.

    For each stream entry:
    1. Fetch the evidence document (the stream carries only ids).
    2. Resolve the owning target in the registry.
    3. Dispatch: policy verdict, then fan-out on keep.

    A record whose document or target has vanished is skipped and ACKed;
    collaborator errors leave the entry pending for retry.
    """

    def __init__(
        self,
        redis_client: Redis,
        store: EvidenceStore,
        registry: EntityRegistry,
        policy: PolicyEvaluator,
        translation_queue: EvidenceQueue,
        aggregation_queue: EvidenceQueue,
        settings: Settings,
    ) -> None:
        super().__init__(
            redis_client=redis_client,
            group_name=settings.redis.group_dispatch,
            consumer_name=settings.redis.dispatch_consumer_name,
            stream_key=settings.redis.ingest_stream,
            block_timeout_ms=settings.redis.block_timeout_ms,
        )
        self._store = store
        self._registry = registry
        self._dispatcher = EvidenceDispatcher(policy, translation_queue, aggregation_queue)

    async def process_message(self, entry_id: str, data: dict[str, str]) -> None:
        """Process a single ingestion entry."""
        evidence_id = data.get("evidence_id")
        if not evidence_id:
            log.warning("ingest_entry_missing_evidence_id", entry_id=entry_id)
            return

        evidence = await self._store.get_by_id(evidence_id)
        if evidence is None:
            log.warning("evidence_not_found", evidence_id=evidence_id, entry_id=entry_id)
            return

        target_id = data.get("target_id") or evidence.target_id
        target = await self._registry.resolve(target_id)
        if target is None:
            log.warning(
                "evidence_target_not_found",
                evidence_id=evidence_id,
                target_id=target_id,
                entry_id=entry_id,
            )
            return

        state = await self._dispatcher.dispatch(target, evidence)
        log.debug("ingest_entry_dispatched", entry_id=entry_id, evidence_id=evidence_id, state=state)


def create_dispatch_consumer(settings: Settings) -> DispatchConsumer:
    """Wire a DispatchConsumer against Redis from settings.

    All four downstream queues are built; the dispatcher receives only the
    translation and aggregation queues.
    """
    from redis.asyncio import Redis

    from evidence_pipeline.adapters.policy import ConnectorPolicy
    from evidence_pipeline.adapters.redis.queues import build_queues
    from evidence_pipeline.adapters.redis.store import RedisEntityRegistry, RedisEvidenceStore

    client = Redis(
        host=settings.redis.host,
        port=settings.redis.port,
        db=settings.redis.db,
        password=settings.redis.password,
        decode_responses=False,
    )
    queues = build_queues(client, settings.redis)
    return DispatchConsumer(
        redis_client=client,
        store=RedisEvidenceStore(client, settings.redis),
        registry=RedisEntityRegistry(client, settings.redis),
        policy=ConnectorPolicy(client, settings.policy),
        translation_queue=queues["translation"],
        aggregation_queue=queues["aggregation"],
        settings=settings,
    )


async def run_dispatch_worker(settings: Settings | None = None) -> None:
    """Run one dispatch consumer until it is stopped or cancelled."""
    consumer = create_dispatch_consumer(settings or Settings())
    try:
        await consumer.run()
    finally:
        await consumer.close()


def main() -> None:
    asyncio.run(run_dispatch_worker())
