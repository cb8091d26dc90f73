"""Evidence store port interface.

Uses typing.Protocol for structural subtyping (not ABCs).
The Redis adapter implements this protocol.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from evidence_pipeline.domain.models import Evidence, Predicate


class EvidenceStore(Protocol):
    """Protocol for the evidence store (Redis implementation)."""

    async def append(self, evidence: Evidence) -> str:
        """Persist a captured record. Returns the ingestion stream entry ID."""
        ...

    async def get_by_id(self, evidence_id: str) -> Evidence | None:
        """Retrieve a single record by id."""
        ...

    async def search(
        self,
        predicate: Predicate,
        limit: int = 100,
        offset: int = 0,
    ) -> list[Evidence]:
        """Return records matching a compiled predicate."""
        ...

    async def count_by_type(self, scope_id: str) -> dict[str, int]:
        """Count records per raw ``type`` over the subtree rooted at ``scope_id``."""
        ...

    async def close(self) -> None:
        """Release connections."""
        ...
