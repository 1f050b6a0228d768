"""
Tests for ExecutionStore.

Covers:
- Transition table consistency
- Valid and invalid status transitions
- Terminal states are final
- JSON round trip of conversation and staged changes
- Step persistence while a stop lands mid-step
"""
from unittest.mock import patch

import pytest

from agent_engine.models.execution import ExecutionStatus, TERMINAL_STATUSES
from agent_engine.schemas.conversation import (
    ConversationTurn,
    TextBlock,
    ToolResultBlock,
    ToolUseBlock,
)
from agent_engine.services.execution_store import (
    TRANSITIONS,
    ExecutionConflictError,
    ExecutionNotFoundError,
    ExecutionStore,
    InvalidTransitionError,
)
from agent_engine.services.staging import StagedChanges


class TestTransitionTable:
    """Test the TRANSITIONS table."""

    def test_all_statuses_in_transitions(self):
        """Every enum value must appear as a key in TRANSITIONS."""
        for status in ExecutionStatus:
            assert status.value in TRANSITIONS, (
                f"Status {status.value} missing from TRANSITIONS table"
            )

    def test_all_transition_targets_are_valid_statuses(self):
        valid_values = {s.value for s in ExecutionStatus}
        for source, targets in TRANSITIONS.items():
            for target in targets:
                assert target in valid_values, (
                    f"Invalid target '{target}' in transition from '{source}'"
                )

    def test_terminal_statuses_have_no_exit(self):
        for status in TERMINAL_STATUSES:
            assert TRANSITIONS[status.value] == []

    def test_paused_can_resume_but_not_stop(self):
        assert "running" in TRANSITIONS["paused"]
        assert "stopped" not in TRANSITIONS["paused"]


class TestTransitions:

    def test_running_to_done_sets_completed_at(self, db, make_execution):
        execution = make_execution()
        store = ExecutionStore(db)

        store.transition(execution.id, ExecutionStatus.DONE, commit_sha="abc123")

        db.refresh(execution)
        assert execution.status == ExecutionStatus.DONE
        assert execution.commit_sha == "abc123"
        assert execution.completed_at is not None

    def test_pause_does_not_set_completed_at(self, db, make_execution):
        execution = make_execution()
        ExecutionStore(db).transition(execution.id, ExecutionStatus.PAUSED)
        db.refresh(execution)
        assert execution.completed_at is None

    @pytest.mark.parametrize("terminal", list(TERMINAL_STATUSES))
    def test_terminal_rejects_every_target(self, db, make_execution, terminal):
        execution = make_execution()
        store = ExecutionStore(db)
        store.transition(execution.id, terminal)

        for target in ExecutionStatus:
            with pytest.raises(InvalidTransitionError) as exc_info:
                store.transition(execution.id, target)
            assert exc_info.value.current == terminal.value
            assert exc_info.value.target == target.value

        db.refresh(execution)
        assert execution.status == terminal

    def test_finish_returns_false_when_refused(self, db, make_execution):
        execution = make_execution()
        store = ExecutionStore(db)
        store.transition(execution.id, ExecutionStatus.STOPPED)

        assert store.finish(execution.id, ExecutionStatus.DONE, commit_sha="abc") is False
        db.refresh(execution)
        assert execution.status == ExecutionStatus.STOPPED
        assert execution.commit_sha is None

    def test_unknown_execution(self, db):
        with pytest.raises(ExecutionNotFoundError):
            ExecutionStore(db).transition(42, ExecutionStatus.STOPPED)


class TestPersistence:

    def test_load_rebuilds_typed_state(self, db, make_execution):
        execution = make_execution()
        store = ExecutionStore(db)
        call = ToolUseBlock(id="toolu_x", name="read_file", input={"path": "a.py"})
        turns = [
            ConversationTurn(role="user", content="Task AGT-1"),
            ConversationTurn(role="assistant", content=[TextBlock(text="Reading"), call]),
            ConversationTurn(role="user", content=[ToolResultBlock(tool_use_id="toolu_x", content="x = 1")]),
        ]
        staged = StagedChanges()
        staged.write("a.py", "x = 2\n")
        staged.delete("b.py")

        assert store.save_step(execution.id, turns, staged, step=1, tokens_delta=120) is True

        snapshot = store.load(execution.id)
        assert snapshot.conversation == turns
        assert snapshot.staged.to_dict() == {"a.py": "x = 2\n", "b.py": None}
        assert snapshot.staged.get("b.py").deleted is True
        assert snapshot.current_step == 1
        assert snapshot.tokens_used == 120

    def test_tokens_accumulate_across_steps(self, db, make_execution):
        execution = make_execution()
        store = ExecutionStore(db)
        snapshot = store.load(execution.id)

        store.save_step(execution.id, snapshot.conversation, snapshot.staged, 1, 100)
        store.save_step(execution.id, snapshot.conversation, snapshot.staged, 2, 50)

        assert store.load(execution.id).tokens_used == 150

    def test_save_step_reports_stop_but_keeps_results(self, db, make_execution):
        execution = make_execution()
        store = ExecutionStore(db)
        snapshot = store.load(execution.id)
        store.transition(execution.id, ExecutionStatus.STOPPED)

        still_running = store.save_step(execution.id, snapshot.conversation, snapshot.staged, 1, 30)

        assert still_running is False
        db.refresh(execution)
        assert execution.status == ExecutionStatus.STOPPED
        assert execution.current_step == 1
        assert execution.tokens_used == 30

    def test_attempts_increment_per_task(self, db, make_execution):
        first = make_execution(task_id="AGT-7")
        second = make_execution(task_id="AGT-7")
        other = make_execution(task_id="AGT-8")

        assert (first.attempt, second.attempt, other.attempt) == (1, 2, 1)

    def test_attempt_race_retries_with_next_number(self, db, make_execution):
        make_execution(task_id="AGT-7")

        # First read is stale, as if another start committed attempt 1 meanwhile
        with patch.object(ExecutionStore, "_next_attempt", side_effect=[1, 2]):
            second = make_execution(task_id="AGT-7")

        assert second.attempt == 2

    def test_attempt_race_gives_up_with_conflict(self, db, make_execution):
        first = make_execution(task_id="AGT-7")

        with patch.object(ExecutionStore, "_next_attempt", return_value=1):
            with pytest.raises(ExecutionConflictError):
                make_execution(task_id="AGT-7")

        assert [e.id for e in ExecutionStore(db).list()] == [first.id]

    def test_list_and_running_ids(self, db, make_execution):
        store = ExecutionStore(db)
        a = make_execution(task_id="AGT-1")
        b = make_execution(task_id="AGT-2")
        store.transition(a.id, ExecutionStatus.FAILED, error="boom")

        assert store.running_ids() == [b.id]
        assert [e.id for e in store.list(status="failed")] == [a.id]
        assert [e.id for e in store.list(limit=1)] == [b.id]
