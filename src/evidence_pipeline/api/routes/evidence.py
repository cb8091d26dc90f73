"""Evidence query endpoints.

POST /v1/evidence/compile             compile criteria to a predicate
POST /v1/evidence/search              compile criteria and run the query
GET  /v1/scopes/{scope_id}/histogram  per-family counts for a scope

The console posts criteria as ``{"filter": "<json text>"}``; an already
decoded object is accepted too. A body without ``filter`` compiles to
``no_scope``.
"""

from __future__ import annotations

from typing import Annotated, Any

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field

from evidence_pipeline.api.dependencies import get_compiler, get_evidence_store, get_registry
from evidence_pipeline.domain.filters import FilterCompiler  # noqa: TCH001 (runtime: Depends())
from evidence_pipeline.domain.histogram import build_histogram
from evidence_pipeline.domain.models import (  # noqa: TCH001 (runtime: response_model)
    CompileStatus,
    Evidence,
    Predicate,
    ScopeNode,
)
from evidence_pipeline.ports.evidence_store import EvidenceStore  # noqa: TCH001 (runtime: Depends())
from evidence_pipeline.ports.registry import EntityRegistry  # noqa: TCH001 (runtime: Depends())

router = APIRouter(tags=["evidence"])

CompilerDep = Annotated[FilterCompiler, Depends(get_compiler)]
StoreDep = Annotated[EvidenceStore, Depends(get_evidence_store)]
RegistryDep = Annotated[EntityRegistry, Depends(get_registry)]


class CriteriaRequest(BaseModel):
    """Criteria envelope as sent by the console."""

    filter: str | dict[str, Any] | None = None


class SearchRequest(CriteriaRequest):
    limit: int = Field(default=100, ge=1, le=1000)
    offset: int = Field(default=0, ge=0)


class CompileResponse(BaseModel):
    status: CompileStatus
    predicate: Predicate | None = None
    target: ScopeNode | None = None


class SearchResponse(BaseModel):
    status: CompileStatus
    evidence: list[Evidence] = Field(default_factory=list)


@router.post("/evidence/compile", response_model=CompileResponse)
async def compile_criteria(body: CriteriaRequest, compiler: CompilerDep) -> CompileResponse:
    """Compile criteria without running the query."""
    result = await compiler.compile(body.filter)
    return CompileResponse(status=result.status, predicate=result.predicate, target=result.target)


@router.post("/evidence/search", response_model=SearchResponse)
async def search_evidence(
    body: SearchRequest,
    compiler: CompilerDep,
    store: StoreDep,
) -> SearchResponse:
    """Compile criteria and return matching evidence.

    ``no_scope`` means no query ran: the response carries no evidence.
    """
    result = await compiler.compile(body.filter)
    if not result.ok or result.predicate is None:
        return SearchResponse(status=result.status)

    evidence = await store.search(result.predicate, limit=body.limit, offset=body.offset)
    return SearchResponse(status=result.status, evidence=evidence)


@router.get("/scopes/{scope_id}/histogram")
async def scope_histogram(
    scope_id: str,
    store: StoreDep,
    registry: RegistryDep,
    nonzero: Annotated[bool, Query()] = False,
) -> dict[str, int]:
    """Per-family evidence counts over a scope and its descendants."""
    scope = await registry.resolve(scope_id)
    if scope is None:
        raise HTTPException(status_code=404, detail=f"Scope {scope_id} not found")

    histogram = await build_histogram(scope, store)
    if nonzero:
        return {family: count for family, count in histogram.items() if count}
    return histogram
