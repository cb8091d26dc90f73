"""Render compiled predicates as RediSearch query strings.

Field mapping (see ``indexes.evidence_index_fields``):
  - TAG:     aid, target_id, path, type, kw
  - NUMERIC: da, dr (epoch seconds)
  - GEO:     position
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from evidence_pipeline.domain.models import AnyOf

if TYPE_CHECKING:
    from evidence_pipeline.domain.models import FieldCondition, Predicate, Proximity

NUMERIC_FIELDS = frozenset({"da", "dr"})


def escape_tag_value(value: str) -> str:
    """Escape special characters in a RediSearch TAG value.

    RediSearch TAG fields need hyphens, dots, and other punctuation escaped
    with a backslash so they are treated as literal characters.
    """
    special_chars = r".,<>{}[]\"':;!@#$%^&*()-+=~/|\ "
    escaped = []
    for char in value:
        if char in special_chars:
            escaped.append("\\")
        escaped.append(char)
    return "".join(escaped)


def to_epoch_seconds(value: Any) -> int:
    """Convert a datetime (naive means UTC) or number to epoch seconds."""
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=UTC)
        return int(value.timestamp())
    return int(value)


def _tag(field: str, values: list[str]) -> str:
    joined = " | ".join(escape_tag_value(str(v)) for v in values)
    return f"@{field}:{{{joined}}}"


def render_condition(condition: FieldCondition) -> str:
    """Render a single field condition."""
    field, op, value = condition.field, condition.op, condition.value

    if op == "gte":
        return f"@{field}:[{to_epoch_seconds(value)} +inf]"
    if op == "lte":
        return f"@{field}:[-inf {to_epoch_seconds(value)}]"
    if field in NUMERIC_FIELDS:
        epoch = to_epoch_seconds(value)
        return f"@{field}:[{epoch} {epoch}]"
    if op in ("eq", "contains"):
        return _tag(field, [value])
    if op == "in":
        return _tag(field, list(value))
    if op == "all":
        return "(" + " ".join(_tag(field, [v]) for v in value) + ")"

    msg = f"unsupported operator {op!r} on field {field!r}"
    raise ValueError(msg)


def render_proximity(proximity: Proximity) -> str:
    return f"@position:[{proximity.lon} {proximity.lat} {proximity.radius} m]"


def render_predicate(predicate: Predicate) -> str:
    """Render a whole predicate; an empty predicate matches everything."""
    parts: list[str] = []
    for condition in predicate.conditions:
        if isinstance(condition, AnyOf):
            if not condition.conditions:
                continue
            alternatives = " | ".join(f"({render_condition(c)})" for c in condition.conditions)
            parts.append(f"({alternatives})")
        else:
            parts.append(render_condition(condition))

    if predicate.proximity is not None:
        parts.append(render_proximity(predicate.proximity))

    return " ".join(parts) if parts else "*"
