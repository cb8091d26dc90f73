"""Scope resolution for criteria.

An absent or unknown target is an expected state (the console sends
criteria before the operator has picked a target), so resolution failure is
an empty result, never an error.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog

if TYPE_CHECKING:
    from evidence_pipeline.domain.criteria import Criteria
    from evidence_pipeline.domain.models import ScopeNode
    from evidence_pipeline.ports.registry import EntityRegistry

log = structlog.get_logger(__name__)


async def resolve_target(criteria: Criteria, registry: EntityRegistry) -> ScopeNode | None:
    """Return the scope node ``criteria.target`` refers to, or None.

    Registry I/O errors propagate unchanged.
    """
    if criteria.target is None:
        return None

    node = await registry.resolve(criteria.target)
    if node is None:
        log.debug("criteria_target_not_found", target=criteria.target)
    return node
