"""Predicate accumulator used during a single compile call.

The compiler and the free-text extractors write their clauses into one
``FilterBuilder`` under string keys. Two keys are reserved: the keyword
disjunction and the geo proximity constraint, so the two coexist without
colliding. A builder lives for exactly one compile call.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from evidence_pipeline.domain.models import AnyOf, FieldCondition, Predicate, Proximity

if TYPE_CHECKING:
    from collections.abc import Iterable, Iterator

    from evidence_pipeline.domain.models import Condition

KEYWORDS_KEY = "$or"
POSITION_KEY = "geoNear_coordinates"


class FilterBuilder:
    """Ordered key -> clause map that freezes into a ``Predicate``."""

    def __init__(self) -> None:
        self._entries: dict[str, Condition | Proximity] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def __iter__(self) -> Iterator[str]:
        return iter(self._entries)

    def get(self, key: str) -> Condition | Proximity | None:
        return self._entries.get(key)

    def set(self, key: str, entry: Condition | Proximity) -> None:
        """Store ``entry`` under ``key``, replacing any previous entry."""
        self._entries[key] = entry

    def where(self, field: str, op: str, value: object) -> None:
        """Shorthand for a single field condition keyed by field and operator."""
        self.set(f"{field}.{op}", FieldCondition(field=field, op=op, value=value))  # type: ignore[arg-type]

    def extend_any(self, key: str, conditions: Iterable[FieldCondition]) -> None:
        """Append ``conditions`` to the disjunction under ``key``.

        Existing alternatives are kept, so successive free-text sources
        (info, then note) widen the same disjunction.
        """
        new = tuple(conditions)
        if not new:
            return
        existing = self._entries.get(key)
        if isinstance(existing, AnyOf):
            new = existing.conditions + new
        self._entries[key] = AnyOf(conditions=new)

    def build(self) -> Predicate:
        """Freeze the accumulated clauses into an immutable predicate."""
        conditions: list[Condition] = []
        proximity: Proximity | None = None
        for entry in self._entries.values():
            if isinstance(entry, Proximity):
                proximity = entry
            else:
                conditions.append(entry)
        return Predicate(conditions=tuple(conditions), proximity=proximity)
