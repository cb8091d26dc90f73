"""Shared pytest fixtures for the evidence-pipeline test suite.

This conftest provides scope and evidence factory fixtures that wrap the
helpers in ``tests.fixtures.evidence``. No external service dependencies
are required for unit tests.
"""

from __future__ import annotations

import pytest

from tests.fixtures.evidence import (
    make_chat_evidence,
    make_evidence,
    make_position_evidence,
    make_scope_tree,
)


@pytest.fixture()
def evidence_factory():
    """Return the ``make_evidence`` factory callable."""
    return make_evidence


@pytest.fixture()
def chat_evidence_factory():
    """Return the ``make_chat_evidence`` factory callable."""
    return make_chat_evidence


@pytest.fixture()
def position_evidence_factory():
    """Return the ``make_position_evidence`` factory callable."""
    return make_position_evidence


@pytest.fixture()
def scope_tree():
    """A single operation -> target -> agent chain."""
    return make_scope_tree()


@pytest.fixture()
def sample_evidence(scope_tree):
    """A single pre-built chat record owned by ``scope_tree.agent``."""
    return make_chat_evidence(scope_tree.agent)
