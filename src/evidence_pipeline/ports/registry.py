"""Entity registry port interface.

Uses typing.Protocol for structural subtyping (not ABCs).
The Redis adapter implements this protocol.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from evidence_pipeline.domain.models import ScopeNode


class EntityRegistry(Protocol):
    """Protocol for the operation/target/agent registry."""

    async def resolve(self, scope_id: str) -> ScopeNode | None:
        """Return the scope node with this id, or None when it does not exist.

        Must not raise for an unknown id.
        """
        ...
