"""Tests for the workflow state table."""

import pytest

from ai_dev_team.engine.states import (
    PIPELINE,
    STATE_TABLE,
    TERMINAL_STATES,
    ExecutorRoute,
    WorkflowState,
    describe,
    next_in_pipeline,
    route_for,
    step_for,
)


class TestStateTable:
    """Test the static state table."""

    def test_every_state_has_a_row(self):
        """Test no state is missing from the table."""
        assert set(STATE_TABLE) == set(WorkflowState)

    def test_terminal_states(self):
        """Test COMPLETE and ERROR end a run."""
        assert TERMINAL_STATES == {WorkflowState.COMPLETE, WorkflowState.ERROR}
        assert WorkflowState.PAUSED not in TERMINAL_STATES

    @pytest.mark.parametrize(
        ("state", "step"),
        [
            (WorkflowState.IDLE, 0),
            (WorkflowState.INITIAL_PLANNING, 1),
            (WorkflowState.CODE_TESTING, 3),
            (WorkflowState.IMPLEMENTING_ENHANCEMENT, 8),
            (WorkflowState.COMPLETE, 10),
            (WorkflowState.ERROR, -1),
            (WorkflowState.PAUSED, -1),
        ],
    )
    def test_step_numbers(self, state, step):
        """Test canonical step numbers."""
        assert step_for(state) == step

    def test_descriptions(self):
        """Test human-readable descriptions."""
        assert describe(WorkflowState.BUG_FIXING) == "Fixing identified issues"
        assert describe(WorkflowState.COMPLETE) == "Workflow complete"

    def test_routes(self):
        """Test executor routes for executable states."""
        assert route_for(WorkflowState.INITIAL_PLANNING) == ExecutorRoute("planner", "initial_plan")
        assert route_for(WorkflowState.CODE_TESTING) == ExecutorRoute("tester", "analyze_code")
        assert route_for(WorkflowState.ENHANCEMENT_REVIEW) == ExecutorRoute("enhancer", "review_project")
        assert route_for(WorkflowState.BUG_FIXING).executor == route_for(WorkflowState.CORE_DEVELOPMENT).executor

    @pytest.mark.parametrize(
        "state", [WorkflowState.IDLE, WorkflowState.COMPLETE, WorkflowState.ERROR, WorkflowState.PAUSED]
    )
    def test_resting_states_have_no_route(self, state):
        """Test states without an executor."""
        assert route_for(state) is None

    def test_str_is_value(self):
        """Test str() renders the persisted value."""
        assert str(WorkflowState.CODE_TESTING) == "code_testing"


class TestPipeline:
    """Test pipeline ordering."""

    def test_pipeline_in_step_order(self):
        """Test executable states are sorted by step."""
        assert PIPELINE[0] == WorkflowState.INITIAL_PLANNING
        assert PIPELINE[-1] == WorkflowState.IMPLEMENTING_ENHANCEMENT
        steps = [step_for(state) for state in PIPELINE]
        assert steps == sorted(steps)
        assert len(PIPELINE) == 8

    def test_next_in_pipeline(self):
        """Test successor lookup."""
        assert next_in_pipeline(WorkflowState.CODE_TESTING) == WorkflowState.BUG_FIXING
        assert next_in_pipeline(WorkflowState.ENHANCEMENT_REVIEW) == WorkflowState.ENHANCEMENT_PLANNING

    def test_last_state_is_followed_by_complete(self):
        """Test the final executable state leads to COMPLETE."""
        assert next_in_pipeline(WorkflowState.IMPLEMENTING_ENHANCEMENT) == WorkflowState.COMPLETE

    def test_next_in_pipeline_rejects_resting_state(self):
        """Test states outside the pipeline raise."""
        with pytest.raises(ValueError, match="not part of the pipeline"):
            next_in_pipeline(WorkflowState.PAUSED)
