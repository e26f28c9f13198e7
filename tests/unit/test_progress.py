"""Tests for progress and ETA reporting."""

import pytest

from ai_dev_team.engine.progress import ProgressTracker
from ai_dev_team.engine.states import WorkflowState


class FakeClock:
    def __init__(self) -> None:
        self.now = 100.0

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


def test_no_progress_yet():
    """Test output before tracking begins."""
    tracker = ProgressTracker()

    assert tracker.current is None
    assert tracker.bar_text() == "Preparing..."
    assert tracker.report() == "No active progress tracking"


def test_begin_has_no_eta(clock, make_context):
    """Test the ETA is unknown until a step completes."""
    tracker = ProgressTracker(clock=clock)

    info = tracker.begin(make_context(current_step_description="Creating development plan"))

    assert info.current_step == 0
    assert info.percentage == 0
    assert info.estimated_time_remaining is None
    assert info.current_operation == "Creating development plan"


def test_eta_extrapolates_average_step_time(clock, make_context):
    """Test the ETA uses the average time per completed step."""
    tracker = ProgressTracker(clock=clock)
    context = make_context()
    tracker.begin(context)

    clock.now += 30.0
    context.current_step = 2
    info = tracker.update(context)

    assert info.percentage == 20
    assert info.estimated_time_remaining == pytest.approx(120.0)


def test_eta_counts_from_resume_step(clock, make_context):
    """Test a resumed run measures only the steps it completed."""
    tracker = ProgressTracker(clock=clock)
    context = make_context(current_step=4)
    tracker.begin(context)

    clock.now += 10.0
    context.current_step = 5
    info = tracker.update(context)

    assert info.estimated_time_remaining == pytest.approx(50.0)


def test_percentage_clamped(make_context):
    """Test steps past the estimate report 100 percent."""
    tracker = ProgressTracker()

    info = tracker.begin(make_context(current_step=14))

    assert info.percentage == 100
    assert info.estimated_time_remaining is None


def test_files_processed(make_context, sample_checkpoints):
    """Test checkpoint files are summed."""
    tracker = ProgressTracker()

    info = tracker.begin(make_context(checkpoints=sample_checkpoints), total_files=10)

    assert info.files_processed == 4
    assert info.total_files == 10


def test_operation_falls_back_to_state_description(make_context):
    """Test the state description is used when the context has none."""
    tracker = ProgressTracker()

    info = tracker.begin(make_context(WorkflowState.BUG_FIXING))

    assert info.current_operation == "Fixing identified issues"


def test_bar_and_report(clock, make_context):
    """Test rendered progress output."""
    tracker = ProgressTracker(clock=clock)
    context = make_context(current_step_description="Testing and analyzing code")
    tracker.begin(context)
    clock.now += 60.0
    context.current_step = 3
    tracker.update(context)

    assert tracker.bar_text() == "██████░░░░░░░░░░░░░░ 30% (3/10) - Testing and analyzing code"
    report = tracker.report()
    assert "Current Step: 3 of 10" in report
    assert "Progress: 30%" in report
    assert "Estimated Time Remaining: 2.3 minutes" in report


def test_reset(make_context):
    """Test reset clears tracking."""
    tracker = ProgressTracker()
    tracker.begin(make_context())

    tracker.reset()

    assert tracker.current is None
