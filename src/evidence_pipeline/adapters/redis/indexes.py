"""RediSearch index definitions for evidence documents.

Creates a secondary index on JSON documents stored at ``ev:*`` keys,
enabling compiled-predicate search and per-type aggregation via FT.SEARCH
and FT.AGGREGATE.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import structlog
from redis.commands.search.field import GeoField, NumericField, TagField
from redis.commands.search.index_definition import IndexDefinition, IndexType

if TYPE_CHECKING:
    from redis.asyncio import Redis

log = structlog.get_logger()


def evidence_index_definition(prefix: str = "ev:") -> IndexDefinition:
    """Return the IndexDefinition for the evidence JSON index."""
    return IndexDefinition(prefix=[prefix], index_type=IndexType.JSON)  # type: ignore[no-untyped-call]


def evidence_index_fields() -> list[TagField | NumericField | GeoField]:
    """Return the field schema for the evidence JSON index.

    ``da``/``dr`` are indexed from the adapter-only epoch-second copies and
    ``position`` from the adapter-only "lon,lat" string.
    """
    return [
        TagField("$.aid", as_name="aid"),
        TagField("$.target_id", as_name="target_id"),
        TagField("$.path[*]", as_name="path"),
        TagField("$.type", as_name="type"),
        TagField("$.kw[*]", as_name="kw"),
        NumericField("$.da_epoch", as_name="da", sortable=True),
        NumericField("$.dr_epoch", as_name="dr", sortable=True),
        GeoField("$.geo", as_name="position"),
    ]


async def ensure_evidence_index(client: Redis, index_name: str, prefix: str = "ev:") -> None:
    """Create the evidence RediSearch index if it does not already exist.

    Idempotent: if the index already exists, the call is a no-op.
    """
    try:
        await client.ft(index_name).info()  # type: ignore[no-untyped-call]
        log.info("redisearch_index_exists", index_name=index_name)
    except Exception:  # noqa: BLE001
        # Index does not exist yet
        fields: list[Any] = evidence_index_fields()
        await client.ft(index_name).create_index(
            fields=fields,
            definition=evidence_index_definition(prefix),
        )
        log.info("redisearch_index_created", index_name=index_name)
