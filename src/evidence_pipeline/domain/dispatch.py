"""Post-ingestion evidence dispatch.

Each newly captured record goes through a two-step state machine:

    PENDING --policy: discard--> DISCARDED
    PENDING --policy: keep-----> DISTRIBUTED  (translation + aggregation)

The policy is consulted exactly once per call. OCR and intelligence queues
are fed by type-specific logic elsewhere and are never touched here. The
dispatcher does no deduplication and no retries; collaborator errors
propagate unchanged.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

import structlog

from evidence_pipeline.domain.models import DispatchState, EvidenceRef, Verdict

if TYPE_CHECKING:
    from evidence_pipeline.domain.models import Evidence, ScopeNode
    from evidence_pipeline.ports.policy import PolicyEvaluator
    from evidence_pipeline.ports.queue import EvidenceQueue

log = structlog.get_logger(__name__)


@dataclass
class DispatchOutcome:
    """Terminal state of one dispatch plus the ack ids of each enqueue."""

    state: DispatchState
    acks: dict[str, str] = field(default_factory=dict)


def evidence_ref(evidence: Evidence) -> EvidenceRef:
    return EvidenceRef(evidence_id=evidence.id, target_id=evidence.target_id, type=evidence.type)


class EvidenceDispatcher:
    """Routes a captured record according to the policy verdict."""

    def __init__(
        self,
        policy: PolicyEvaluator,
        translation_queue: EvidenceQueue,
        aggregation_queue: EvidenceQueue,
    ) -> None:
        if translation_queue.name == aggregation_queue.name:
            msg = f"translation and aggregation queues share the name {translation_queue.name!r}"
            raise ValueError(msg)
        self._policy = policy
        self._queues = (translation_queue, aggregation_queue)

    async def dispatch(self, scope: ScopeNode, evidence: Evidence) -> DispatchState:
        """Evaluate the policy for ``evidence`` and fan it out when kept."""
        outcome = await self.dispatch_with_acks(scope, evidence)
        return outcome.state

    async def dispatch_with_acks(self, scope: ScopeNode, evidence: Evidence) -> DispatchOutcome:
        """Same as ``dispatch``, also returning the queue ack ids."""
        verdict = Verdict(await self._policy.evaluate(scope, evidence))

        if verdict is Verdict.DISCARD:
            log.info(
                "evidence_discarded",
                evidence_id=evidence.id,
                scope=scope.id,
                type=evidence.type,
            )
            return DispatchOutcome(state=DispatchState.DISCARDED)

        ref = evidence_ref(evidence)
        acks: dict[str, str] = {}
        for queue in self._queues:
            acks[queue.name] = await queue.enqueue(ref)
            log.debug("evidence_enqueued", evidence_id=evidence.id, queue=queue.name)

        log.info(
            "evidence_distributed",
            evidence_id=evidence.id,
            scope=scope.id,
            queues=list(acks),
        )
        return DispatchOutcome(state=DispatchState.DISTRIBUTED, acks=acks)
