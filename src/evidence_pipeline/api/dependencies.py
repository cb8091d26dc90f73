"""FastAPI dependency injection helpers.

Extracts shared resources from ``app.state`` so route handlers can
declare them via ``Depends()``.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from fastapi import Request  # noqa: TCH002 (runtime: FastAPI dependency injection)

if TYPE_CHECKING:
    from evidence_pipeline.domain.filters import FilterCompiler
    from evidence_pipeline.ports.evidence_store import EvidenceStore
    from evidence_pipeline.ports.registry import EntityRegistry
    from evidence_pipeline.settings import Settings


def get_settings(request: Request) -> Settings:
    """Return the application settings from app state."""
    return request.app.state.settings  # type: ignore[no-any-return]


def get_evidence_store(request: Request) -> EvidenceStore:
    """Return the evidence store from app state."""
    return request.app.state.evidence_store  # type: ignore[no-any-return]


def get_registry(request: Request) -> EntityRegistry:
    """Return the entity registry from app state."""
    return request.app.state.registry  # type: ignore[no-any-return]


def get_compiler(request: Request) -> FilterCompiler:
    """Return the filter compiler from app state."""
    return request.app.state.compiler  # type: ignore[no-any-return]
