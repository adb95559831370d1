"""Tests for engine/state_machine.py

Validates:
- The step transition table accepts exactly the listed moves
- Dependency gates reject a start and leave the state unchanged
- Completion is strict: every declared step completed or saved
"""

from __future__ import annotations

import pytest

from docflow.core.exceptions import (
    AlreadyRunningError,
    DependencyNotMetError,
    InvalidTransitionError,
    NotFoundError,
)
from docflow.engine.state_machine import (
    VALID_TRANSITIONS,
    WorkflowStateMachine,
    can_transition,
    validate_transition,
)
from docflow.models.pipeline import (
    PipelineDefinition,
    StepDefinition,
    StepResult,
    StepStatus,
    WorkflowState,
)


def _state(pipeline: PipelineDefinition | None = None) -> WorkflowState:
    pipeline = pipeline or PipelineDefinition.linear(
        "test", [("one", "One"), ("two", "Two"), ("three", "Three")],
    )
    return WorkflowState(workflow_id="test_proj_1", project_key="/tmp/proj", pipeline=pipeline)


@pytest.fixture
def machine():
    return WorkflowStateMachine(_state())


# ---------------------------------------------------------------------------
# Transition table
# ---------------------------------------------------------------------------

VALID_TRANSITION_PAIRS = [
    (StepStatus.NOT_STARTED, StepStatus.RUNNING),
    (StepStatus.RUNNING, StepStatus.COMPLETED),
    (StepStatus.RUNNING, StepStatus.FAILED),
    (StepStatus.FAILED, StepStatus.RUNNING),
    (StepStatus.COMPLETED, StepStatus.SAVED),
]


@pytest.mark.parametrize("from_status,to_status", VALID_TRANSITION_PAIRS)
def test_valid_transitions_do_not_raise(from_status, to_status):
    validate_transition(from_status, to_status, step_id=1)
    assert can_transition(from_status, to_status) is True


INVALID_TRANSITION_PAIRS = [
    (StepStatus.NOT_STARTED, StepStatus.COMPLETED),
    (StepStatus.NOT_STARTED, StepStatus.FAILED),
    (StepStatus.NOT_STARTED, StepStatus.SAVED),
    (StepStatus.RUNNING, StepStatus.SAVED),
    (StepStatus.COMPLETED, StepStatus.RUNNING),
    (StepStatus.COMPLETED, StepStatus.FAILED),
    (StepStatus.FAILED, StepStatus.COMPLETED),
    (StepStatus.SAVED, StepStatus.RUNNING),
    (StepStatus.SAVED, StepStatus.COMPLETED),
]


@pytest.mark.parametrize("from_status,to_status", INVALID_TRANSITION_PAIRS)
def test_invalid_transitions_raise(from_status, to_status):
    with pytest.raises(InvalidTransitionError) as exc_info:
        validate_transition(from_status, to_status, step_id=4)
    assert exc_info.value.entity == "step 4"
    assert exc_info.value.code == "INVALID_TRANSITION"


def test_saved_is_terminal():
    assert VALID_TRANSITIONS[StepStatus.SAVED] == frozenset()


# ---------------------------------------------------------------------------
# start_step
# ---------------------------------------------------------------------------

class TestStartStep:
    def test_first_step_starts(self, machine):
        machine.start_step(1)
        step = machine.state.steps[1]
        assert step.status == StepStatus.RUNNING
        assert step.attempts == 1
        assert step.started_at is not None

    def test_dependency_not_met_leaves_state_unchanged(self, machine):
        machine.start_step(1)
        machine.complete_step(1, {"ok": True})
        before = machine.state.model_dump()
        with pytest.raises(DependencyNotMetError) as exc_info:
            machine.start_step(3)
        assert exc_info.value.missing == [2]
        assert machine.state.model_dump() == before

    def test_already_running(self, machine):
        machine.start_step(1)
        with pytest.raises(AlreadyRunningError):
            machine.start_step(1)

    def test_completed_step_cannot_restart(self, machine):
        machine.start_step(1)
        machine.complete_step(1)
        with pytest.raises(InvalidTransitionError):
            machine.start_step(1)

    def test_unknown_step(self, machine):
        with pytest.raises(NotFoundError):
            machine.start_step(42)

    def test_saved_predecessor_satisfies_gate(self, machine):
        machine.start_step(1)
        machine.complete_step(1)
        machine.mark_saved(1, "memory://a.md")
        machine.start_step(2)
        assert machine.state.steps[2].status == StepStatus.RUNNING

    def test_diamond_dependencies(self):
        pipeline = PipelineDefinition(mode="dag", steps=[
            StepDefinition(step_id=1, name="root"),
            StepDefinition(step_id=2, name="left", depends_on={1}),
            StepDefinition(step_id=3, name="right", depends_on={1}),
            StepDefinition(step_id=4, name="join", depends_on={2, 3}),
        ])
        machine = WorkflowStateMachine(_state(pipeline))
        machine.start_step(1)
        machine.complete_step(1)
        machine.start_step(2)
        machine.start_step(3)
        machine.complete_step(2)
        with pytest.raises(DependencyNotMetError) as exc_info:
            machine.start_step(4)
        assert exc_info.value.missing == [3]
        machine.complete_step(3)
        machine.start_step(4)
        assert machine.running_steps() == [4]


# ---------------------------------------------------------------------------
# complete_step / fail_step / mark_saved
# ---------------------------------------------------------------------------

class TestCompleteStep:
    @pytest.mark.parametrize("status", [StepStatus.NOT_STARTED, StepStatus.FAILED, StepStatus.SAVED])
    def test_requires_running(self, machine, status):
        machine.state.steps[1].status = status
        with pytest.raises(InvalidTransitionError):
            machine.complete_step(1, "x")

    def test_stores_payload_tagged_with_step_name(self, machine):
        machine.start_step(1)
        result = machine.complete_step(1, {"files": 3})
        assert result.kind == "one"
        assert result.payload == {"files": 3}
        assert machine.state.step_results[1] == result
        assert machine.state.steps[1].status == StepStatus.COMPLETED

    def test_accepts_prebuilt_result(self, machine):
        machine.start_step(1)
        result = machine.complete_step(1, StepResult(step_id=99, kind="custom", version=2))
        assert result.step_id == 1
        assert result.kind == "custom"
        assert result.version == 2

    def test_current_step_index_never_goes_back(self):
        pipeline = PipelineDefinition(mode="dag", steps=[
            StepDefinition(step_id=1, name="a"),
            StepDefinition(step_id=2, name="b"),
        ])
        machine = WorkflowStateMachine(_state(pipeline))
        machine.start_step(2)
        machine.complete_step(2)
        machine.start_step(1)
        machine.complete_step(1)
        assert machine.state.current_step_index == 2


class TestFailStep:
    def test_records_error_and_allows_retry(self, machine):
        machine.start_step(1)
        machine.fail_step(1, "model timeout")
        assert machine.state.steps[1].status == StepStatus.FAILED
        assert machine.state.last_error == "model timeout"
        assert [e.message for e in machine.state.errors] == ["model timeout"]

        machine.start_step(1)
        assert machine.state.steps[1].status == StepStatus.RUNNING
        assert machine.state.steps[1].attempts == 2
        assert machine.state.steps[1].error == ""

    def test_does_not_erase_other_results(self, machine):
        machine.start_step(1)
        machine.complete_step(1, "first")
        machine.start_step(2)
        machine.fail_step(2, "boom")
        assert machine.state.step_results[1].payload == "first"

    def test_requires_running(self, machine):
        with pytest.raises(InvalidTransitionError):
            machine.fail_step(1, "never started")


class TestMarkSaved:
    def test_records_artifact_uri(self, machine):
        machine.start_step(1)
        machine.complete_step(1, "doc")
        machine.mark_saved(1, "s3://bucket/doc.md")
        assert machine.state.steps[1].status == StepStatus.SAVED
        assert machine.state.step_results[1].artifact_uri == "s3://bucket/doc.md"

    def test_requires_completed(self, machine):
        machine.start_step(1)
        with pytest.raises(InvalidTransitionError):
            machine.mark_saved(1)


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------

class TestQueries:
    def test_next_step_follows_chain(self, machine):
        assert machine.next_step().step_id == 1
        machine.start_step(1)
        assert machine.next_step() is None
        machine.complete_step(1)
        assert machine.next_step().step_id == 2

    def test_next_step_offers_failed_step_for_retry(self, machine):
        machine.start_step(1)
        machine.fail_step(1, "x")
        assert machine.next_step().step_id == 1

    def test_is_complete_is_strict(self, machine):
        for step_id in (1, 2):
            machine.start_step(step_id)
            machine.complete_step(step_id)
        assert machine.is_complete() is False
        machine.start_step(3)
        machine.complete_step(3)
        machine.mark_saved(3)
        assert machine.is_complete() is True

    def test_get_progress(self, machine):
        machine.start_step(1)
        machine.complete_step(1)
        machine.start_step(2)
        progress = machine.get_progress()
        assert progress.completed_steps == 1
        assert progress.running_steps == 1
        assert progress.percentage == 33
        assert progress.statuses[3] == StepStatus.NOT_STARTED
        assert progress.is_complete is False
