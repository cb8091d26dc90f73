"""Policy evaluator port interface.

Decides whether a newly captured record is kept for further processing.
The rule language behind the decision belongs to the implementation.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from evidence_pipeline.domain.models import Evidence, ScopeNode, Verdict


class PolicyEvaluator(Protocol):
    """Protocol for the keep/discard policy."""

    async def evaluate(self, scope: ScopeNode, evidence: Evidence) -> Verdict:
        """Return KEEP or DISCARD for ``evidence`` owned by ``scope``."""
        ...
