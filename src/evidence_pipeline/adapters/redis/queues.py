"""Redis Stream adapter for downstream evidence queues.

Each processing queue (translation, aggregation, OCR, intelligence) is a
Redis Stream; downstream workers read it with their own consumer group.
Entries carry only the evidence reference, never the document.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog

if TYPE_CHECKING:
    from redis.asyncio import Redis

    from evidence_pipeline.domain.models import EvidenceRef
    from evidence_pipeline.settings import RedisSettings

log = structlog.get_logger(__name__)


class RedisStreamQueue:
    """EvidenceQueue implementation backed by a single Redis Stream.

    Satisfies the ``evidence_pipeline.ports.queue.EvidenceQueue`` protocol.
    """

    def __init__(
        self,
        client: Redis,
        stream_key: str,
        name: str,
        maxlen: int | None = None,
    ) -> None:
        self._client = client
        self._stream_key = stream_key
        self.name = name
        self._maxlen = maxlen

    @property
    def stream_key(self) -> str:
        return self._stream_key

    async def enqueue(self, ref: EvidenceRef) -> str:
        """XADD the reference. Returns the stream entry ID."""
        entry_id = await self._client.xadd(
            self._stream_key,
            {
                "evidence_id": ref.evidence_id,
                "target_id": ref.target_id,
                "type": ref.type,
            },
            maxlen=self._maxlen,
            approximate=True,
        )
        entry = entry_id.decode() if isinstance(entry_id, bytes) else str(entry_id)
        log.debug("queue_entry_added", queue=self.name, evidence_id=ref.evidence_id, entry_id=entry)
        return entry


def build_queues(client: Redis, settings: RedisSettings) -> dict[str, RedisStreamQueue]:
    """Create all four downstream queues keyed by name."""
    streams = {
        "translation": settings.translation_stream,
        "aggregation": settings.aggregation_stream,
        "ocr": settings.ocr_stream,
        "intelligence": settings.intelligence_stream,
    }
    return {
        name: RedisStreamQueue(client, stream_key, name, maxlen=settings.queue_maxlen)
        for name, stream_key in streams.items()
    }
