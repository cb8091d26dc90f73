"""Criteria normalization.

Turns the loosely-typed criteria payload sent by the operator console into a
typed, immutable ``Criteria`` object. The payload is conventionally a JSON
object serialized as text; an already-decoded mapping is accepted as is.

Recognized keys: from, to, target, agent, date, type, info, note.
Unknown keys are ignored.

Pure Python + Pydantic v2, no I/O.
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from datetime import UTC, datetime, timedelta
from typing import Any

import orjson
from pydantic import BaseModel, Field, field_validator
from pydantic import ValidationError as PydanticValidationError

from evidence_pipeline.domain.errors import MalformedCriteria
from evidence_pipeline.domain.models import DateField

# "24h", "7d", "2w": lower bound relative to now
RELATIVE_RANGE_PATTERN = re.compile(r"^\s*(\d+)\s*([hdw])\s*$", re.IGNORECASE)

_RANGE_UNITS: dict[str, timedelta] = {
    "h": timedelta(hours=1),
    "d": timedelta(days=1),
    "w": timedelta(weeks=1),
}

# Named ranges the console sends alongside the numeric tokens
NAMED_RANGES: dict[str, timedelta] = {
    "day": timedelta(days=1),
    "week": timedelta(weeks=1),
    "month": timedelta(days=30),
}

Bound = int | float | str | datetime | None


def parse_relative_range(token: str) -> timedelta | None:
    """Return the span a relative-range token denotes, or None if it is not one."""
    named = NAMED_RANGES.get(token.strip().lower())
    if named is not None:
        return named
    match = RELATIVE_RANGE_PATTERN.match(token)
    if match is None:
        return None
    amount, unit = match.groups()
    return int(amount) * _RANGE_UNITS[unit.lower()]


def resolve_bound(value: Bound, now: datetime, *, relative: bool = True) -> datetime | None:
    """Resolve a raw from/to value to an aware datetime.

    ``None``, ``0`` and empty strings mean the bound is disabled. Numbers are
    epoch seconds. Relative tokens resolve to ``now - span`` when ``relative``
    is set, and are ignored otherwise.
    """
    if value is None or value == 0 or value == "":
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo is not None else value.replace(tzinfo=UTC)
    if isinstance(value, int | float):
        return datetime.fromtimestamp(value, UTC)

    span = parse_relative_range(value)
    if span is not None:
        return now - span if relative else None
    stripped = value.strip()
    if stripped.lstrip("-").replace(".", "", 1).isdigit():
        seconds = float(stripped)
        return None if seconds == 0 else datetime.fromtimestamp(seconds, UTC)
    parsed = datetime.fromisoformat(stripped)
    return parsed if parsed.tzinfo is not None else parsed.replace(tzinfo=UTC)


def _as_str_list(value: Any) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    if isinstance(value, list | tuple):
        return [str(v) for v in value if v is not None]
    msg = f"expected a string or a list of strings, got {type(value).__name__}"
    raise ValueError(msg)


class Criteria(BaseModel):
    """Typed view of one criteria payload.

    ``from_`` is exposed under its wire name ``from``. Presence of a key is
    tracked through ``model_fields_set`` so that an absent ``from`` and an
    explicit ``from: 0`` can be told apart.
    """

    model_config = {"frozen": True, "populate_by_name": True, "extra": "ignore"}

    from_: Bound = Field(default=None, alias="from")
    to: Bound = None
    target: str | None = None
    agent: str | None = None
    date: DateField = DateField.ON_AGENT
    type: list[str] = Field(default_factory=list)
    info: list[str] = Field(default_factory=list)
    note: list[str] = Field(default_factory=list)

    @field_validator("target", "agent", mode="before")
    @classmethod
    def _scope_id(cls, value: Any) -> str | None:
        if value is None:
            return None
        text = str(value).strip()
        return text or None

    @field_validator("date", mode="before")
    @classmethod
    def _date_field(cls, value: Any) -> Any:
        return DateField.ON_AGENT if value in (None, "") else value

    @field_validator("type", "info", "note", mode="before")
    @classmethod
    def _string_list(cls, value: Any) -> list[str]:
        return _as_str_list(value)

    @field_validator("from_", "to", mode="after")
    @classmethod
    def _bound(cls, value: Bound) -> Bound:
        # Reject unparseable or out-of-range bounds here rather than mid-compile
        try:
            resolve_bound(value, datetime.now(UTC))
        except (ValueError, OverflowError, OSError) as exc:
            msg = f"unrecognized time bound {value!r}"
            raise ValueError(msg) from exc
        return value

    @property
    def has_from(self) -> bool:
        return "from_" in self.model_fields_set

    @property
    def has_target(self) -> bool:
        return self.target is not None


def normalize_criteria(payload: str | bytes | Mapping[str, Any] | Criteria | None) -> Criteria:
    """Parse and validate a criteria payload.

    Raises ``MalformedCriteria`` when the text is not valid JSON, when it does
    not decode to an object, or when a recognized key has an impossible shape.
    """
    if isinstance(payload, Criteria):
        return payload
    if payload is None:
        return Criteria()

    if isinstance(payload, str | bytes):
        try:
            decoded = orjson.loads(payload)
        except orjson.JSONDecodeError as exc:
            raise MalformedCriteria(str(exc), payload) from exc
    else:
        decoded = payload

    if not isinstance(decoded, Mapping):
        raise MalformedCriteria(
            f"expected a JSON object, got {type(decoded).__name__}", payload
        )

    try:
        return Criteria.model_validate(dict(decoded))
    except PydanticValidationError as exc:
        raise MalformedCriteria(str(exc), payload) from exc
