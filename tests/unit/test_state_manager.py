"""Tests for workflow record persistence."""

import json
from datetime import datetime

import pytest

from ai_dev_team.engine.state_manager import StateManager, WorkflowRecord
from ai_dev_team.engine.states import WorkflowState
from ai_dev_team.engine.types import AgentStats, WorkflowStats
from ai_dev_team.exceptions import PersistenceError


@pytest.mark.asyncio
async def test_load_missing_record(state_manager):
    """Test a workflow that was never saved yields an empty record."""
    record = await state_manager.load("never-saved")

    assert record == WorkflowRecord()


@pytest.mark.asyncio
async def test_save_and_load_round_trip(state_manager, make_context, sample_checkpoints):
    """Test a saved context is restored with every timestamp as datetime."""
    context = make_context(
        WorkflowState.CODE_TESTING,
        current_step=3,
        checkpoints=sample_checkpoints,
        data={"issues_found": 2},
    )
    stats = WorkflowStats(total_tokens_used=1500, agent_stats={"planner": AgentStats(execution_count=1)})

    await state_manager.save("default", context, stats)
    record = await state_manager.load("default")

    assert record.context == context
    assert record.stats == stats
    assert isinstance(record.context.start_time, datetime)
    assert isinstance(record.context.last_update, datetime)
    assert all(isinstance(cp.timestamp, datetime) for cp in record.context.checkpoints)
    assert record.context.checkpoints[1].timestamp == sample_checkpoints[1].timestamp


@pytest.mark.asyncio
async def test_saved_record_is_a_snapshot(state_manager, make_context):
    """Test later mutation of the live context does not leak into the record."""
    context = make_context()
    await state_manager.save("default", context, None)

    context.state = WorkflowState.ERROR
    context.data["mutated"] = True

    record = await state_manager.load("default")
    assert record.context.state == WorkflowState.INITIAL_PLANNING
    assert "mutated" not in record.context.data
    assert record.context is not context


@pytest.mark.asyncio
async def test_record_layout(state_manager, make_context):
    """Test the on-disk JSON layout."""
    await state_manager.save("default", make_context(), WorkflowStats())

    payload = json.loads(state_manager.path_for("default").read_text())

    assert payload["workflow_id"] == "default"
    assert payload["context"]["state"] == "initial_planning"
    assert "saved_at" in payload
    assert payload["stats"]["end_time"] is None
    assert not state_manager.path_for("default").with_suffix(".tmp").exists()


@pytest.mark.asyncio
async def test_clear_persists_empty_record(state_manager, make_context):
    """Test clearing stores null context and stats."""
    await state_manager.save("default", make_context(), WorkflowStats())

    await state_manager.clear("default")

    payload = json.loads(state_manager.path_for("default").read_text())
    assert payload["context"] is None
    assert payload["stats"] is None
    assert await state_manager.load("default") == WorkflowRecord()


@pytest.mark.asyncio
async def test_delete(state_manager, make_context):
    """Test deleting the record file."""
    await state_manager.save("default", make_context(), None)

    assert await state_manager.delete("default") is True
    assert await state_manager.delete("default") is False
    assert not state_manager.path_for("default").exists()


@pytest.mark.asyncio
async def test_invalid_json_raises(state_manager):
    """Test a corrupted record file raises PersistenceError."""
    state_manager.path_for("default").write_text("{not json")

    with pytest.raises(PersistenceError, match="Failed to read workflow record") as exc_info:
        await state_manager.load("default")

    assert exc_info.value.workflow_id == "default"


@pytest.mark.asyncio
async def test_non_object_record_raises(state_manager):
    """Test a record that is not a JSON object raises PersistenceError."""
    state_manager.path_for("default").write_text("[1, 2, 3]")

    with pytest.raises(PersistenceError, match="not a JSON object"):
        await state_manager.load("default")


@pytest.mark.asyncio
async def test_invalid_context_raises(state_manager):
    """Test a record with an unknown state raises PersistenceError."""
    state_manager.path_for("default").write_text(
        json.dumps({"context": {"state": "dreaming", "project_path": "p", "workspace_path": "w"}})
    )

    with pytest.raises(PersistenceError, match="Invalid workflow record"):
        await state_manager.load("default")


@pytest.mark.asyncio
async def test_transaction_saves_on_exit(state_manager, make_context):
    """Test transaction loads, lets the body modify, then saves."""
    await state_manager.save("default", make_context(), None)

    async with state_manager.transaction("default") as record:
        record.context.data["note"] = "reviewed"

    record = await state_manager.load("default")
    assert record.context.data["note"] == "reviewed"


@pytest.mark.asyncio
async def test_transaction_rolls_back_on_error(state_manager, make_context):
    """Test nothing is saved when the transaction body raises."""
    await state_manager.save("default", make_context(), None)

    with pytest.raises(RuntimeError):
        async with state_manager.transaction("default") as record:
            record.context.data["note"] = "lost"
            raise RuntimeError("boom")

    record = await state_manager.load("default")
    assert "note" not in record.context.data


@pytest.mark.asyncio
async def test_records_are_keyed_by_workflow(state_manager, make_context):
    """Test separate workflows use separate files."""
    await state_manager.save("alpha", make_context(WorkflowState.CODE_TESTING), None)
    await state_manager.save("beta", make_context(WorkflowState.COMPLETE), None)

    assert (await state_manager.load("alpha")).context.state == WorkflowState.CODE_TESTING
    assert (await state_manager.load("beta")).context.state == WorkflowState.COMPLETE


def test_state_dir_created(tmp_path):
    """Test the state directory is created on construction."""
    manager = StateManager(tmp_path / "nested" / "state")

    assert manager.state_dir.is_dir()
