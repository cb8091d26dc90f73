"""Redis adapters for evidence documents and the scope registry.

``RedisEvidenceStore`` implements the ``EvidenceStore`` protocol using
Redis Stack:
- **JSON** for full evidence documents (JSON.SET / JSON.GET)
- **Streams** for the ingestion ledger the dispatcher consumes (XADD)
- **Search** for predicate queries and per-type counts (FT.SEARCH /
  FT.AGGREGATE)

``RedisEntityRegistry`` implements the ``EntityRegistry`` protocol over
JSON documents keyed by scope id.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import orjson
import structlog
from redis.asyncio import Redis

from evidence_pipeline.adapters.redis.indexes import ensure_evidence_index
from evidence_pipeline.adapters.redis.query import (
    escape_tag_value,
    render_predicate,
    to_epoch_seconds,
)
from evidence_pipeline.domain.models import Evidence, ScopeNode

if TYPE_CHECKING:
    from evidence_pipeline.domain.models import Predicate
    from evidence_pipeline.settings import RedisSettings

log = structlog.get_logger()

# Fields injected for indexing only; stripped before model validation
_ADAPTER_ONLY_FIELDS = ("da_epoch", "dr_epoch", "geo")

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _decode(value: bytes | str) -> str:
    return value.decode() if isinstance(value, bytes) else value


def _evidence_to_json_bytes(evidence: Evidence) -> bytes:
    """Serialize evidence with the adapter-only index fields injected."""
    data = orjson.loads(evidence.model_dump_json())
    data["da_epoch"] = to_epoch_seconds(evidence.da)
    data["dr_epoch"] = to_epoch_seconds(evidence.dr)
    if evidence.position is not None:
        data["geo"] = f"{evidence.position.lon},{evidence.position.lat}"
    return orjson.dumps(data)


def _first_doc(raw_json: bytes | str) -> dict[str, Any]:
    # JSON.GET with $ path returns a JSON array
    parsed = orjson.loads(_decode(raw_json))
    return parsed[0] if isinstance(parsed, list) and len(parsed) > 0 else parsed


def deserialize_evidence(raw_json: bytes | str) -> Evidence:
    """Deserialize a JSON blob into Evidence, stripping adapter-only fields."""
    doc = _first_doc(raw_json)
    for name in _ADAPTER_ONLY_FIELDS:
        doc.pop(name, None)
    return Evidence.model_validate(doc)


def parse_aggregate_counts(raw_result: list[Any]) -> dict[str, int]:
    """Parse an FT.AGGREGATE ``GROUPBY @type REDUCE COUNT`` reply.

    Reply shape: [total, [b"type", b"chat", b"count", b"3"], ...]
    """
    counts: dict[str, int] = {}
    for row in raw_result[1:]:
        fields = {
            _decode(row[i]): _decode(row[i + 1]) for i in range(0, len(row) - 1, 2)
        }
        raw_type = fields.get("type")
        if raw_type is None:
            continue
        counts[raw_type] = counts.get(raw_type, 0) + int(fields.get("count", 0))
    return counts


# ---------------------------------------------------------------------------
# RedisEvidenceStore
# ---------------------------------------------------------------------------


class RedisEvidenceStore:
    """EvidenceStore implementation backed by Redis Stack.

    Satisfies the ``evidence_pipeline.ports.evidence_store.EvidenceStore``
    protocol.
    """

    def __init__(self, client: Redis, settings: RedisSettings) -> None:
        self._client = client
        self._settings = settings

    # -- lifecycle ----------------------------------------------------------

    @classmethod
    def create(cls, settings: RedisSettings) -> RedisEvidenceStore:
        """Factory: create a store with its own connection from settings."""
        client = Redis(
            host=settings.host,
            port=settings.port,
            db=settings.db,
            password=settings.password,
            decode_responses=False,
        )
        return cls(client=client, settings=settings)

    @property
    def client(self) -> Redis:
        return self._client

    async def ensure_indexes(self) -> None:
        """Create the RediSearch index if it does not exist."""
        await ensure_evidence_index(
            self._client,
            self._settings.evidence_index,
            self._settings.evidence_key_prefix,
        )

    async def ping(self) -> bool:
        return bool(await self._client.ping())

    async def close(self) -> None:
        """Release the Redis connection."""
        await self._client.aclose()
        log.info("redis_connection_closed")

    # -- write operations ---------------------------------------------------

    async def append(self, evidence: Evidence) -> str:
        """Store the document and announce it on the ingestion stream.

        Both writes run in one MULTI/EXEC so a record never appears on the
        stream without its document. Returns the stream entry ID.
        """
        json_key = f"{self._settings.evidence_key_prefix}{evidence.id}"
        async with self._client.pipeline(transaction=True) as pipe:
            pipe.execute_command("JSON.SET", json_key, "$", _evidence_to_json_bytes(evidence))
            pipe.xadd(
                self._settings.ingest_stream,
                {"evidence_id": evidence.id, "target_id": evidence.target_id},
            )
            _, entry_id = await pipe.execute()

        position = _decode(entry_id)
        log.debug("evidence_appended", evidence_id=evidence.id, entry_id=position)
        return position

    # -- read operations ----------------------------------------------------

    async def get_by_id(self, evidence_id: str) -> Evidence | None:
        """Retrieve a single record by id."""
        json_key = f"{self._settings.evidence_key_prefix}{evidence_id}"
        raw = await self._client.execute_command("JSON.GET", json_key, "$")  # type: ignore[no-untyped-call]
        if raw is None:
            return None
        return deserialize_evidence(raw)

    async def search(
        self,
        predicate: Predicate,
        limit: int = 100,
        offset: int = 0,
    ) -> list[Evidence]:
        """Return records matching ``predicate``, most recent ``da`` first."""
        query_str = render_predicate(predicate)
        raw_result = await self._client.execute_command(  # type: ignore[no-untyped-call]
            "FT.SEARCH",
            self._settings.evidence_index,
            query_str,
            "SORTBY",
            "da",
            "DESC",
            "LIMIT",
            str(offset),
            str(limit),
            "DIALECT",
            "2",
        )
        log.debug("evidence_search", query=query_str, limit=limit, offset=offset)

        # FT.SEARCH returns: [total_count, key1, fields1, key2, fields2, ...]
        if not raw_result or raw_result[0] == 0:
            return []

        results: list[Evidence] = []
        idx = 1
        while idx < len(raw_result) - 1:
            fields = raw_result[idx + 1]
            idx += 2

            # For a JSON index, the document is at the "$" field
            for field_idx in range(0, len(fields) - 1, 2):
                if _decode(fields[field_idx]) == "$":
                    results.append(deserialize_evidence(fields[field_idx + 1]))
                    break

        return results

    async def count_by_type(self, scope_id: str) -> dict[str, int]:
        """Count records per raw type over the subtree rooted at ``scope_id``."""
        raw_result = await self._client.execute_command(  # type: ignore[no-untyped-call]
            "FT.AGGREGATE",
            self._settings.evidence_index,
            f"@path:{{{escape_tag_value(scope_id)}}}",
            "GROUPBY",
            "1",
            "@type",
            "REDUCE",
            "COUNT",
            "0",
            "AS",
            "count",
            "DIALECT",
            "2",
        )
        return parse_aggregate_counts(raw_result or [0])


# ---------------------------------------------------------------------------
# RedisEntityRegistry
# ---------------------------------------------------------------------------


class RedisEntityRegistry:
    """EntityRegistry implementation over Redis JSON documents.

    Satisfies the ``evidence_pipeline.ports.registry.EntityRegistry``
    protocol.
    """

    def __init__(self, client: Redis, settings: RedisSettings) -> None:
        self._client = client
        self._prefix = settings.entity_key_prefix

    async def resolve(self, scope_id: str) -> ScopeNode | None:
        """Return the scope node stored under ``scope_id``, or None."""
        raw = await self._client.execute_command("JSON.GET", f"{self._prefix}{scope_id}", "$")  # type: ignore[no-untyped-call]
        if raw is None:
            return None
        doc = _first_doc(raw)
        if not doc:
            return None
        return ScopeNode.model_validate(doc)

    async def put(self, node: ScopeNode) -> None:
        """Store or replace a scope node."""
        await self._client.execute_command(  # type: ignore[no-untyped-call]
            "JSON.SET", f"{self._prefix}{node.id}", "$", node.model_dump_json()
        )
        log.debug("scope_stored", scope_id=node.id, kind=node.kind)
