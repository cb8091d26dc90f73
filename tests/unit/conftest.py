"""Unit test conftest with in-memory port stubs."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

import pytest

from evidence_pipeline.domain.models import AnyOf, Verdict

if TYPE_CHECKING:
    from fastapi.testclient import TestClient

    from evidence_pipeline.domain.models import (
        Evidence,
        EvidenceRef,
        FieldCondition,
        Predicate,
        ScopeNode,
    )


class InMemoryRegistry:
    """Minimal in-memory EntityRegistry that satisfies the protocol."""

    def __init__(self, nodes: list[ScopeNode] | None = None) -> None:
        self._nodes: dict[str, ScopeNode] = {n.id: n for n in nodes or []}
        self.calls: list[str] = []

    def add(self, *nodes: ScopeNode) -> None:
        for node in nodes:
            self._nodes[node.id] = node

    async def resolve(self, scope_id: str) -> ScopeNode | None:
        self.calls.append(scope_id)
        return self._nodes.get(scope_id)


def _as_utc(value: datetime) -> datetime:
    return value if value.tzinfo is not None else value.replace(tzinfo=UTC)


def _matches(condition: FieldCondition, evidence: Evidence) -> bool:
    actual: Any = getattr(evidence, condition.field)
    if condition.op == "eq":
        return actual == condition.value
    if condition.op == "contains":
        return condition.value in actual
    if condition.op == "in":
        return actual in condition.value
    if condition.op == "gte":
        return _as_utc(actual) >= condition.value
    if condition.op == "lte":
        return _as_utc(actual) <= condition.value
    if condition.op == "all":
        return set(condition.value) <= set(actual)
    return False


class InMemoryEvidenceStore:
    """Minimal in-memory EvidenceStore that satisfies the protocol."""

    def __init__(self) -> None:
        self._evidence: dict[str, Evidence] = {}
        self._counter = 0

    async def append(self, evidence: Evidence) -> str:
        self._counter += 1
        self._evidence[evidence.id] = evidence
        return f"{self._counter}-0"

    async def get_by_id(self, evidence_id: str) -> Evidence | None:
        return self._evidence.get(evidence_id)

    async def search(
        self,
        predicate: Predicate,
        limit: int = 100,
        offset: int = 0,
    ) -> list[Evidence]:
        results = []
        for evidence in self._evidence.values():
            ok = True
            for condition in predicate.conditions:
                if isinstance(condition, AnyOf):
                    ok = any(_matches(c, evidence) for c in condition.conditions)
                else:
                    ok = _matches(condition, evidence)
                if not ok:
                    break
            if ok:
                results.append(evidence)
        return results[offset : offset + limit]

    async def count_by_type(self, scope_id: str) -> dict[str, int]:
        counts: dict[str, int] = {}
        for evidence in self._evidence.values():
            if scope_id in evidence.path:
                counts[evidence.type] = counts.get(evidence.type, 0) + 1
        return counts

    async def ping(self) -> bool:
        return True

    async def close(self) -> None:
        pass


class RecordingQueue:
    """EvidenceQueue stub that records every enqueued reference."""

    def __init__(self, name: str) -> None:
        self.name = name
        self.refs: list[EvidenceRef] = []

    async def enqueue(self, ref: EvidenceRef) -> str:
        self.refs.append(ref)
        return f"{len(self.refs)}-0"


class StubPolicy:
    """PolicyEvaluator stub returning a fixed verdict and recording calls."""

    def __init__(self, verdict: Verdict = Verdict.KEEP) -> None:
        self.verdict = verdict
        self.calls: list[tuple[ScopeNode, Evidence]] = []

    async def evaluate(self, scope: ScopeNode, evidence: Evidence) -> Verdict:
        self.calls.append((scope, evidence))
        return self.verdict


@pytest.fixture()
def registry(scope_tree) -> InMemoryRegistry:
    """Registry holding ``scope_tree``."""
    return InMemoryRegistry(scope_tree.nodes)


@pytest.fixture()
def in_memory_store() -> InMemoryEvidenceStore:
    """Return a fresh in-memory evidence store."""
    return InMemoryEvidenceStore()


@pytest.fixture()
def queues() -> dict[str, RecordingQueue]:
    """All four downstream queues, keyed by name."""
    return {name: RecordingQueue(name) for name in ("translation", "aggregation", "ocr", "intelligence")}


@pytest.fixture()
def test_client(registry: InMemoryRegistry, in_memory_store: InMemoryEvidenceStore) -> TestClient:
    """FastAPI TestClient with in-memory stubs (no Redis needed)."""
    from fastapi import FastAPI
    from fastapi.responses import ORJSONResponse
    from fastapi.testclient import TestClient as _TestClient

    from evidence_pipeline.api.middleware import register_middleware
    from evidence_pipeline.api.routes.evidence import router as evidence_router
    from evidence_pipeline.api.routes.health import router as health_router
    from evidence_pipeline.domain.filters import FilterCompiler

    app = FastAPI(default_response_class=ORJSONResponse)
    register_middleware(app)
    app.include_router(evidence_router, prefix="/v1")
    app.include_router(health_router, prefix="/v1")

    app.state.evidence_store = in_memory_store
    app.state.registry = registry
    app.state.compiler = FilterCompiler(registry)

    return _TestClient(app)
