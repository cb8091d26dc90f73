"""Downstream processing queue port interface.

Translation, aggregation, OCR and intelligence queues all share this
shape. Enqueue is fire-and-forget from the caller's perspective; retries,
if any, belong to the implementation.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from evidence_pipeline.domain.models import EvidenceRef


class EvidenceQueue(Protocol):
    """Protocol for a downstream evidence queue."""

    name: str

    async def enqueue(self, ref: EvidenceRef) -> str:
        """Append a reference to the queue. Returns the queue's ack id."""
        ...
