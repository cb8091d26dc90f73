"""Criteria -> predicate compilation.

Composes the independently varying filter dimensions of an evidence query
(time window, scope subtree, agent, type enumeration, free text) into one
``Predicate``.

Compile contract:
  - malformed payload        -> ``MalformedCriteria`` raised
  - no target / unknown one  -> ``CompileStatus.NO_SCOPE``, no predicate
  - otherwise                -> ``CompileStatus.OK`` with the predicate

Free-text precedence: ``info`` and ``note`` keyword clauses share the same
disjunction. Note-derived alternatives are appended to the info-derived
ones (union); neither source replaces the other.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

import structlog

from evidence_pipeline.domain.builder import FilterBuilder
from evidence_pipeline.domain.criteria import normalize_criteria, resolve_bound
from evidence_pipeline.domain.keywords import (
    STRUCTURAL_PREFIXES,
    filter_for_keywords,
    filter_for_position,
)
from evidence_pipeline.domain.models import CompileResult, CompileStatus
from evidence_pipeline.domain.scope import resolve_target

if TYPE_CHECKING:
    from collections.abc import Callable, Mapping

    from evidence_pipeline.domain.criteria import Criteria
    from evidence_pipeline.domain.models import Predicate, ScopeNode
    from evidence_pipeline.ports.registry import EntityRegistry

log = structlog.get_logger(__name__)

SCOPE_FIELD = "path"
AGENT_FIELD = "aid"
TYPE_FIELD = "type"

DEFAULT_WINDOW = "24h"


def _utcnow() -> datetime:
    return datetime.now(UTC)


class FilterCompiler:
    """Compiles criteria payloads against an entity registry.

    Holds no per-request state: every ``compile`` call creates its own
    ``FilterBuilder``, so one compiler may serve concurrent requests.
    """

    def __init__(
        self,
        registry: EntityRegistry,
        default_window: str | None = DEFAULT_WINDOW,
        structural_prefixes: frozenset[str] = STRUCTURAL_PREFIXES,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._registry = registry
        self._default_window = default_window
        self._structural_prefixes = structural_prefixes
        self._clock = clock

    async def compile(
        self,
        payload: str | bytes | Mapping[str, Any] | Criteria | None,
    ) -> CompileResult:
        """Compile one criteria payload.

        Raises ``MalformedCriteria`` for an unparseable payload. Registry
        errors propagate unchanged.
        """
        criteria = normalize_criteria(payload)

        if not criteria.has_target:
            log.debug("criteria_no_scope", reason="target_missing")
            return CompileResult(status=CompileStatus.NO_SCOPE)

        target = await resolve_target(criteria, self._registry)
        if target is None:
            log.debug("criteria_no_scope", reason="target_unresolved", target=criteria.target)
            return CompileResult(status=CompileStatus.NO_SCOPE)

        predicate = self.build_predicate(criteria, target)
        log.debug(
            "criteria_compiled",
            target=target.id,
            conditions=len(predicate.conditions),
            proximity=predicate.proximity is not None,
        )
        return CompileResult(status=CompileStatus.OK, predicate=predicate, target=target)

    def build_predicate(self, criteria: Criteria, target: ScopeNode) -> Predicate:
        """Build the predicate for already-resolved criteria. Pure."""
        builder = FilterBuilder()

        self._add_time_window(criteria, builder)

        # The scope id appears in the path of every record in its subtree
        builder.where(SCOPE_FIELD, "contains", target.id)

        # Agent ids are not checked against the registry: deleted or
        # not-yet-synced agents must still be filterable
        if criteria.agent is not None:
            builder.where(AGENT_FIELD, "eq", criteria.agent)

        if criteria.type:
            builder.where(TYPE_FIELD, "in", list(dict.fromkeys(criteria.type)))

        if criteria.info:
            filter_for_keywords(criteria.info, builder, self._structural_prefixes)
            filter_for_position(criteria.info, builder)

        if criteria.note:
            filter_for_keywords(criteria.note, builder, self._structural_prefixes)

        return builder.build()

    def _add_time_window(self, criteria: Criteria, builder: FilterBuilder) -> None:
        now = self._clock()
        field = str(criteria.date)

        lower = criteria.from_ if criteria.has_from else self._default_window
        start = resolve_bound(lower, now)
        # A relative token only makes sense as a lower bound
        end = resolve_bound(criteria.to, now, relative=False)

        if start is not None:
            builder.where(field, "gte", start)
        if end is not None:
            builder.where(field, "lte", end)
