"""Unit tests for the evidence dispatcher state machine."""

from __future__ import annotations

from unittest.mock import AsyncMock

import pytest

from evidence_pipeline.domain.dispatch import EvidenceDispatcher, evidence_ref
from evidence_pipeline.domain.models import DispatchState, Verdict
from tests.unit.conftest import RecordingQueue, StubPolicy


def _dispatcher(policy, queues) -> EvidenceDispatcher:
    return EvidenceDispatcher(policy, queues["translation"], queues["aggregation"])


class TestDiscard:
    async def test_discard_enqueues_nowhere(self, scope_tree, sample_evidence, queues) -> None:
        policy = StubPolicy(Verdict.DISCARD)

        state = await _dispatcher(policy, queues).dispatch(scope_tree.target, sample_evidence)

        assert state == DispatchState.DISCARDED
        assert policy.calls == [(scope_tree.target, sample_evidence)]
        for queue in queues.values():
            assert queue.refs == []

    async def test_discard_outcome_has_no_acks(self, scope_tree, sample_evidence, queues) -> None:
        outcome = await _dispatcher(StubPolicy(Verdict.DISCARD), queues).dispatch_with_acks(
            scope_tree.target, sample_evidence
        )
        assert outcome.state == DispatchState.DISCARDED
        assert outcome.acks == {}


class TestKeep:
    async def test_keep_enqueues_translation_and_aggregation_once(
        self, scope_tree, sample_evidence, queues
    ) -> None:
        policy = StubPolicy(Verdict.KEEP)

        state = await _dispatcher(policy, queues).dispatch(scope_tree.target, sample_evidence)

        assert state == DispatchState.DISTRIBUTED
        assert len(policy.calls) == 1
        assert queues["translation"].refs == [evidence_ref(sample_evidence)]
        assert queues["aggregation"].refs == [evidence_ref(sample_evidence)]
        assert queues["ocr"].refs == []
        assert queues["intelligence"].refs == []

    async def test_keep_outcome_collects_acks(self, scope_tree, sample_evidence, queues) -> None:
        outcome = await _dispatcher(StubPolicy(), queues).dispatch_with_acks(
            scope_tree.target, sample_evidence
        )
        assert outcome.acks == {"translation": "1-0", "aggregation": "1-0"}

    async def test_ref_carries_ids_and_type(self, sample_evidence) -> None:
        ref = evidence_ref(sample_evidence)
        assert ref.evidence_id == sample_evidence.id
        assert ref.target_id == sample_evidence.target_id
        assert ref.type == "chat"

    async def test_string_verdict_accepted(self, scope_tree, sample_evidence, queues) -> None:
        policy = AsyncMock()
        policy.evaluate.return_value = "keep"
        state = await _dispatcher(policy, queues).dispatch(scope_tree.target, sample_evidence)
        assert state == DispatchState.DISTRIBUTED


class TestNoDedupNoRetry:
    async def test_dispatching_twice_enqueues_twice(
        self, scope_tree, sample_evidence, queues
    ) -> None:
        dispatcher = _dispatcher(StubPolicy(), queues)
        await dispatcher.dispatch(scope_tree.target, sample_evidence)
        await dispatcher.dispatch(scope_tree.target, sample_evidence)
        assert len(queues["translation"].refs) == 2
        assert len(queues["aggregation"].refs) == 2

    async def test_policy_error_propagates(self, scope_tree, sample_evidence, queues) -> None:
        policy = AsyncMock()
        policy.evaluate.side_effect = TimeoutError("policy unavailable")
        with pytest.raises(TimeoutError):
            await _dispatcher(policy, queues).dispatch(scope_tree.target, sample_evidence)
        assert queues["translation"].refs == []

    async def test_queue_error_propagates(self, scope_tree, sample_evidence, queues) -> None:
        broken = RecordingQueue("translation")
        broken.enqueue = AsyncMock(side_effect=ConnectionError("queue down"))  # type: ignore[method-assign]
        dispatcher = EvidenceDispatcher(StubPolicy(), broken, queues["aggregation"])
        with pytest.raises(ConnectionError):
            await dispatcher.dispatch(scope_tree.target, sample_evidence)
        broken.enqueue.assert_awaited_once()


class TestConstruction:
    def test_queue_names_must_differ(self) -> None:
        with pytest.raises(ValueError, match="share the name"):
            EvidenceDispatcher(StubPolicy(), RecordingQueue("q"), RecordingQueue("q"))
