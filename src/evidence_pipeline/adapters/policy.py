"""Connector policy evaluator.

A minimal ``PolicyEvaluator`` over connector rules stored as one Redis JSON
document. A rule matches a record when it is enabled, its ``path`` (if any)
shares an id with the record's scope chain, and its ``types`` (if any)
include the record's type. Any matching rule with ``keep: false`` discards
the record; otherwise the record is kept. With no matching rule the
configured default verdict applies.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import orjson
import structlog
from pydantic import BaseModel, Field

from evidence_pipeline.domain.models import Verdict

if TYPE_CHECKING:
    from redis.asyncio import Redis

    from evidence_pipeline.domain.models import Evidence, ScopeNode
    from evidence_pipeline.settings import PolicySettings

log = structlog.get_logger(__name__)


class ConnectorRule(BaseModel):
    """One export/retention connector rule."""

    name: str = ""
    enabled: bool = True
    path: list[str] = Field(default_factory=list)
    types: list[str] = Field(default_factory=list)
    keep: bool = True

    def matches(self, scope: ScopeNode, evidence: Evidence) -> bool:
        if not self.enabled:
            return False
        if self.path and not set(self.path) & {*scope.subtree_path, *evidence.path}:
            return False
        return not self.types or "*" in self.types or evidence.type in self.types


def evaluate_rules(
    rules: list[ConnectorRule],
    scope: ScopeNode,
    evidence: Evidence,
    default: Verdict = Verdict.KEEP,
) -> Verdict:
    """Apply connector rules to one record."""
    matching = [rule for rule in rules if rule.matches(scope, evidence)]
    if not matching:
        return default
    if any(not rule.keep for rule in matching):
        return Verdict.DISCARD
    return Verdict.KEEP


class ConnectorPolicy:
    """PolicyEvaluator reading connector rules from Redis on every call.

    Satisfies the ``evidence_pipeline.ports.policy.PolicyEvaluator``
    protocol.
    """

    def __init__(self, client: Redis, settings: PolicySettings) -> None:
        self._client = client
        self._settings = settings

    async def load_rules(self) -> list[ConnectorRule]:
        raw = await self._client.execute_command("JSON.GET", self._settings.rules_key, "$")  # type: ignore[no-untyped-call]
        if raw is None:
            return []
        parsed = orjson.loads(raw.decode() if isinstance(raw, bytes) else raw)
        # JSON.GET with $ path wraps the document in an array
        doc = parsed[0] if isinstance(parsed, list) and parsed and isinstance(parsed[0], list) else parsed
        return [ConnectorRule.model_validate(item) for item in doc]

    async def evaluate(self, scope: ScopeNode, evidence: Evidence) -> Verdict:
        rules = await self.load_rules()
        verdict = evaluate_rules(rules, scope, evidence, self._settings.default_verdict)
        log.debug(
            "policy_evaluated",
            evidence_id=evidence.id,
            scope=scope.id,
            rules=len(rules),
            verdict=verdict,
        )
        return verdict
