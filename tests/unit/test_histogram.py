"""Unit tests for evidence_pipeline.domain.histogram."""

from __future__ import annotations

from evidence_pipeline.domain.histogram import build_histogram, count_by_type
from evidence_pipeline.domain.models import CanonicalType
from tests.fixtures.evidence import (
    make_chat_evidence,
    make_evidence,
    make_position_evidence,
    make_scope_tree,
)


class TestCountByType:
    def test_every_family_present(self) -> None:
        histogram = count_by_type({})
        assert set(histogram) == {family.value for family in CanonicalType}
        assert all(count == 0 for count in histogram.values())

    def test_unmapped_types_dropped(self) -> None:
        histogram = count_by_type({"chat": 3, "ip": 2, "other": 9})
        assert histogram["chat"] == 3
        assert "ip" not in histogram
        assert "other" not in histogram

    def test_raw_type_case_folded(self) -> None:
        assert count_by_type({"Chat": 2, "chat": 1})["chat"] == 3

    def test_negative_counts_ignored(self) -> None:
        assert count_by_type({"file": -4})["file"] == 0


class TestBuildHistogram:
    async def test_expected_counts(self, in_memory_store) -> None:
        tree = make_scope_tree()
        for _ in range(3):
            await in_memory_store.append(make_chat_evidence(tree.agent))
        for _ in range(2):
            await in_memory_store.append(make_position_evidence(tree.agent))
        for _ in range(2):
            await in_memory_store.append(make_evidence(tree.agent, type="ip"))

        results = await build_histogram(tree.target, in_memory_store)

        assert results["chat"] == 3
        assert results["position"] == 2
        assert results["file"] == 0
        assert "ip" not in results

    async def test_aggregates_over_subtree(self, in_memory_store) -> None:
        tree = make_scope_tree("a")
        other = make_scope_tree("b")
        await in_memory_store.append(make_chat_evidence(tree.agent))
        await in_memory_store.append(make_chat_evidence(other.agent))

        by_operation = await build_histogram(tree.operation, in_memory_store)
        by_agent = await build_histogram(tree.agent, in_memory_store)

        assert by_operation["chat"] == 1
        assert by_agent["chat"] == 1

    async def test_empty_scope(self, in_memory_store, scope_tree) -> None:
        results = await build_histogram(scope_tree.target, in_memory_store)
        assert sum(results.values()) == 0
        assert len(results) == len(CanonicalType)
