"""Domain models for the evidence pipeline.

This module defines the shared contract between the filter compiler, the
histogram builder, the dispatcher and the storage adapters.

All models are pure Python + Pydantic v2. Zero framework imports.

Sections:
  - Scope hierarchy (operation -> target -> agent)
  - Evidence records
  - Compiled predicate tree
  - Result variants for compile and dispatch
"""

from __future__ import annotations

import enum
from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, Field, model_validator

# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class ScopeKind(enum.StrEnum):
    """Levels of the scope hierarchy, root first."""

    OPERATION = "operation"
    TARGET = "target"
    AGENT = "agent"


class DateField(enum.StrEnum):
    """Timestamp field a time window applies to.

    dr: date received (captured by the collection pipeline)
    da: date on agent (event time on the monitored endpoint)
    """

    RECEIVED = "dr"
    ON_AGENT = "da"


class CanonicalType(enum.StrEnum):
    """Closed enumeration of evidence families used for aggregate counts.

    Raw evidence types outside this set (e.g. "ip") are never counted.
    """

    ADDRESSBOOK = "addressbook"
    APPLICATION = "application"
    CALENDAR = "calendar"
    CALL = "call"
    CAMERA = "camera"
    CHAT = "chat"
    CLIPBOARD = "clipboard"
    DEVICE = "device"
    FILE = "file"
    FILESYSTEM = "filesystem"
    INFO = "info"
    KEYLOG = "keylog"
    MESSAGE = "message"
    MIC = "mic"
    MOUSE = "mouse"
    PASSWORD = "password"
    POSITION = "position"
    PRINT = "print"
    SCREENSHOT = "screenshot"
    URL = "url"


class Verdict(enum.StrEnum):
    """Policy evaluator outcome for a newly captured record."""

    KEEP = "keep"
    DISCARD = "discard"


class DispatchState(enum.StrEnum):
    """Per-record dispatch state. PENDING is the only non-terminal state."""

    PENDING = "pending"
    DISCARDED = "discarded"
    DISTRIBUTED = "distributed"


class CompileStatus(enum.StrEnum):
    """Outcome of compiling a criteria payload.

    PARSE_ERROR is never returned by the compiler itself (it raises
    ``MalformedCriteria``); the API layer uses it when reporting.
    """

    OK = "ok"
    NO_SCOPE = "no_scope"
    PARSE_ERROR = "parse_error"


# ---------------------------------------------------------------------------
# Scope hierarchy
# ---------------------------------------------------------------------------


class ScopeNode(BaseModel):
    """A node of the operation -> target -> agent tree.

    ``path`` holds the ancestor identifiers, root first. An operation has an
    empty path, a target has ``[operation_id]``, an agent has
    ``[operation_id, target_id]``.
    """

    model_config = {"frozen": True}

    id: str = Field(..., min_length=1)
    name: str = ""
    kind: ScopeKind
    path: list[str] = Field(default_factory=list)

    @model_validator(mode="after")
    def _check_path(self) -> ScopeNode:
        if self.id in self.path:
            msg = f"scope {self.id} appears in its own ancestor path"
            raise ValueError(msg)
        if len(set(self.path)) != len(self.path):
            msg = f"scope {self.id} has a repeated ancestor in its path"
            raise ValueError(msg)
        return self

    @property
    def subtree_path(self) -> list[str]:
        """Path prefix shared by this node and every descendant."""
        return [*self.path, self.id]


# ---------------------------------------------------------------------------
# Evidence
# ---------------------------------------------------------------------------


class GeoPoint(BaseModel):
    """Structured position attached to an evidence record."""

    model_config = {"frozen": True}

    lat: float = Field(..., ge=-90.0, le=90.0)
    lon: float = Field(..., ge=-180.0, le=180.0)
    accuracy: float | None = None


class Evidence(BaseModel):
    """One captured record. Immutable once ingested.

    ``path`` is the ancestor chain of the owning agent plus the agent itself
    (operation, target, agent), denormalized so that a single membership test
    restricts a query to any subtree.
    """

    model_config = {"frozen": True}

    id: str = Field(..., min_length=1)
    aid: str = Field(..., min_length=1)
    target_id: str = Field(..., min_length=1)
    path: list[str] = Field(default_factory=list)
    type: str = Field(..., min_length=1)
    dr: datetime
    da: datetime
    info: str | list[str] = Field(default_factory=list)
    note: list[str] = Field(default_factory=list)
    kw: list[str] = Field(default_factory=list)
    position: GeoPoint | None = None

    @property
    def info_list(self) -> list[str]:
        return [self.info] if isinstance(self.info, str) else list(self.info)


class EvidenceRef(BaseModel):
    """Reference placed on downstream processing queues."""

    model_config = {"frozen": True}

    evidence_id: str
    target_id: str
    type: str


# ---------------------------------------------------------------------------
# Compiled predicate
# ---------------------------------------------------------------------------

ConditionOp = Literal["eq", "in", "contains", "gte", "lte", "all"]


class FieldCondition(BaseModel):
    """A single field/operator/value constraint."""

    model_config = {"frozen": True}

    kind: Literal["field"] = "field"
    field: str
    op: ConditionOp
    value: Any


class AnyOf(BaseModel):
    """Disjunction of field conditions."""

    model_config = {"frozen": True}

    kind: Literal["any"] = "any"
    conditions: tuple[FieldCondition, ...] = ()


Condition = FieldCondition | AnyOf


class Proximity(BaseModel):
    """Geo proximity constraint: within ``radius`` metres of lat/lon."""

    model_config = {"frozen": True}

    lat: float
    lon: float
    radius: float = Field(..., ge=0.0)


class Predicate(BaseModel):
    """Storage-ready query condition.

    ``conditions`` are combined with AND; ``proximity`` adds at most one geo
    sub-constraint.
    """

    model_config = {"frozen": True}

    conditions: tuple[Condition, ...] = ()
    proximity: Proximity | None = None

    def referenced_fields(self) -> set[str]:
        """Every field name referenced anywhere in the tree."""
        names: set[str] = set()
        for condition in self.conditions:
            if isinstance(condition, AnyOf):
                names.update(c.field for c in condition.conditions)
            else:
                names.add(condition.field)
        return names

    def find(self, field: str) -> list[FieldCondition]:
        """Top-level conditions on ``field``."""
        return [
            c for c in self.conditions if isinstance(c, FieldCondition) and c.field == field
        ]


# ---------------------------------------------------------------------------
# Result variants
# ---------------------------------------------------------------------------


class CompileResult(BaseModel):
    """Result of one compile call.

    ``predicate`` and ``target`` are set only when ``status`` is OK.
    """

    model_config = {"frozen": True}

    status: CompileStatus
    predicate: Predicate | None = None
    target: ScopeNode | None = None

    @property
    def ok(self) -> bool:
        return self.status == CompileStatus.OK
