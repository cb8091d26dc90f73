"""Base consumer class for Redis Stream consumer workers.

Provides the XREADGROUP lifecycle loop that all consumers share:
create group, read messages, process, acknowledge. Subclasses
override ``process_message`` with their specific logic.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import structlog

if TYPE_CHECKING:
    from redis.asyncio import Redis

log = structlog.get_logger(__name__)


def _text(value: bytes | str) -> str:
    return value.decode() if isinstance(value, bytes) else str(value)


def decode_entry(data: dict[Any, Any]) -> dict[str, str]:
    """Decode bytes keys/values of a stream entry."""
    return {_text(k): _text(v) for k, v in data.items()}


def last_entry_id(messages: list[Any]) -> str:
    """Highest entry ID in an XREADGROUP reply (entries arrive in ID order)."""
    return max(
        (_text(entries[-1][0]) for _, entries in messages if entries),
        key=lambda entry_id: tuple(int(part) for part in entry_id.split("-")),
    )


class BaseConsumer:
    """Base class for Redis Stream consumer workers.

    Manages the XREADGROUP loop: read pending/new messages, dispatch to
    ``process_message``, and XACK on success. On failure the message
    stays in the Pending Entries List (PEL) and is retried when the
    consumer next starts.
    """

    def __init__(
        self,
        redis_client: Redis,
        group_name: str,
        consumer_name: str,
        stream_key: str,
        batch_size: int = 10,
        block_timeout_ms: int = 5000,
    ) -> None:
        self._redis = redis_client
        self._group_name = group_name
        self._consumer_name = consumer_name
        self._stream_key = stream_key
        self._batch_size = batch_size
        self._block_timeout_ms = block_timeout_ms
        self._stopped = False

    async def ensure_group(self) -> None:
        """Create the consumer group if it does not already exist.

        Uses ``XGROUP CREATE ... MKSTREAM`` from id ``0`` so entries
        appended before the group existed are still delivered.
        """
        try:
            await self._redis.xgroup_create(
                name=self._stream_key,
                groupname=self._group_name,
                id="0",
                mkstream=True,
            )
            log.info("consumer_group_created", group=self._group_name, stream=self._stream_key)
        except Exception as exc:
            # BUSYGROUP means group already exists
            if "BUSYGROUP" not in str(exc):
                raise
            log.debug("consumer_group_exists", group=self._group_name, stream=self._stream_key)

    async def handle_entries(self, messages: list[Any] | None) -> int:
        """Process and ACK one XREADGROUP reply. Returns the entry count seen."""
        seen = 0
        for _stream_name, entries in messages or []:
            for entry_id_raw, data in entries:
                seen += 1
                entry_id = _text(entry_id_raw)
                try:
                    await self.process_message(entry_id, decode_entry(data))
                    await self._redis.xack(self._stream_key, self._group_name, entry_id)
                except Exception:
                    # Message stays in PEL for retry
                    log.exception(
                        "message_processing_failed",
                        entry_id=entry_id,
                        group=self._group_name,
                        consumer=self._consumer_name,
                    )
        return seen

    async def read(self, last_id: str, block: int) -> list[Any] | None:
        return await self._redis.xreadgroup(
            groupname=self._group_name,
            consumername=self._consumer_name,
            streams={self._stream_key: last_id},
            count=self._batch_size,
            block=block,
        )

    async def run(self) -> None:
        """Main consumer loop.

        Drains this consumer's pending entries first, then reads new
        entries until ``stop()`` is called.
        """
        await self.ensure_group()
        log.info(
            "consumer_started",
            group=self._group_name,
            consumer=self._consumer_name,
            stream=self._stream_key,
        )

        # PEL recovery: page through what was delivered but never ACKed.
        # last_id moves past failed entries so they cannot be re-read forever.
        last_id = "0"
        while not self._stopped:
            pending = await self.read(last_id, block=0)
            if not pending or not any(entries for _, entries in pending):
                break
            await self.handle_entries(pending)
            last_id = last_entry_id(pending)
        log.info("pending_drain_completed", group=self._group_name)

        while not self._stopped:
            messages = await self.read(">", block=self._block_timeout_ms)
            if messages:
                await self.handle_entries(messages)

        log.info("consumer_stopped", group=self._group_name, consumer=self._consumer_name)

    async def process_message(self, entry_id: str, data: dict[str, str]) -> None:
        """Process a single stream message. Override in subclasses."""
        raise NotImplementedError

    def stop(self) -> None:
        """Signal the consumer loop to stop gracefully."""
        self._stopped = True

    async def close(self) -> None:
        """Release the Redis connection."""
        await self._redis.aclose()
