"""Per-family evidence counts for a scope.

The storage layer reports counts per raw ``type`` tag. Only the canonical
families are reported back: every family gets an entry (zero included) and
raw types outside the enumeration are dropped, not bucketed.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog

from evidence_pipeline.domain.models import CanonicalType

if TYPE_CHECKING:
    from collections.abc import Mapping

    from evidence_pipeline.domain.models import ScopeNode
    from evidence_pipeline.ports.evidence_store import EvidenceStore

log = structlog.get_logger(__name__)


def count_by_type(raw_counts: Mapping[str, int]) -> dict[str, int]:
    """Project raw per-type counts onto the canonical families."""
    histogram = {family.value: 0 for family in CanonicalType}
    for raw_type, count in raw_counts.items():
        key = raw_type.strip().lower()
        if key in histogram:
            histogram[key] += max(int(count), 0)
    return histogram


async def build_histogram(scope: ScopeNode, store: EvidenceStore) -> dict[str, int]:
    """Count evidence per canonical family over ``scope`` and its descendants."""
    raw_counts = await store.count_by_type(scope.id)
    histogram = count_by_type(raw_counts)

    unmapped = sorted(set(raw_counts) - set(histogram))
    if unmapped:
        log.debug("histogram_unmapped_types", scope=scope.id, types=unmapped)
    return histogram
