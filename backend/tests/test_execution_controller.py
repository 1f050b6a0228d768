"""
Tests for ExecutionController: start, stop, pause/resume and read access.
"""
import dataclasses

import pytest

from agent_engine.models.engine_log import EngineLog, LogType
from agent_engine.models.execution import Execution, ExecutionStatus
from agent_engine.schemas.conversation import load_conversation
from agent_engine.services.execution_controller import (
    ExecutionController,
    MissingConfigurationError,
    UnknownAgentError,
)
from agent_engine.services.execution_store import ExecutionNotFoundError, InvalidTransitionError

from fakes import RecordingScheduler


@pytest.fixture
def controller(db, engine_config, scheduler):
    return ExecutionController(db, engine_config, scheduler)


async def start_default(controller, task_id="AGT-42"):
    return await controller.start(
        task_id=task_id,
        agent_name="sam",
        task_title="Add health endpoint",
        task_description="Expose GET /health returning ok.",
        priority="High",
        labels=["backend", "api"],
    )


class TestStart:

    @pytest.mark.asyncio
    async def test_start_creates_running_execution_and_schedules_step_one(self, db, controller, scheduler, agent):
        result = await start_default(controller)

        assert result["status"] == "started"
        executions = db.query(Execution).all()
        assert len(executions) == 1
        execution = executions[0]
        assert result["execution_id"] == execution.id
        assert execution.status == ExecutionStatus.RUNNING
        assert execution.current_step == 0
        assert execution.tokens_used == 0
        assert execution.staged_changes == {}
        assert execution.agent_id == agent.id
        assert execution.agent_name == "SAM"
        assert execution.repo == "acme/web"
        assert execution.branch == "main"
        assert execution.attempt == 1

        turns = load_conversation(execution.conversation)
        assert len(turns) == 1
        assert turns[0].role == "user"
        assert "AGT-42" in turns[0].content

        assert scheduler.calls == [(execution.id, 1, execution.system_prompt)]
        assert "Ticket: AGT-42" in execution.system_prompt
        assert "Labels: backend, api" in execution.system_prompt

        logs = db.query(EngineLog).filter(EngineLog.execution_id == execution.id).all()
        assert len(logs) == 1
        assert logs[0].step == 0
        assert logs[0].type == LogType.SYSTEM
        assert "Starting execution: AGT-42" in logs[0].content

    @pytest.mark.asyncio
    async def test_start_uses_registered_soul(self, db, controller, agent):
        agent.soul = "You are SAM, keeper of the schema."
        db.commit()

        result = await start_default(controller)

        execution = controller.get_execution(result["execution_id"])
        assert "keeper of the schema" in execution.system_prompt

    @pytest.mark.asyncio
    async def test_start_is_case_insensitive_on_agent_name(self, db, controller, agent):
        result = await controller.start("AGT-1", "Sam", "Title", "")
        assert controller.get_execution(result["execution_id"]).agent_name == "SAM"

    @pytest.mark.asyncio
    async def test_unknown_persona(self, db, controller, scheduler, agent):
        with pytest.raises(UnknownAgentError, match="no persona"):
            await controller.start("AGT-1", "zed", "Title", "")
        assert db.query(Execution).count() == 0
        assert scheduler.calls == []

    @pytest.mark.asyncio
    async def test_persona_without_registered_agent(self, db, controller, scheduler):
        with pytest.raises(UnknownAgentError, match="not registered"):
            await controller.start("AGT-1", "sam", "Title", "")
        assert db.query(Execution).count() == 0

    @pytest.mark.asyncio
    async def test_missing_credentials_create_nothing(self, db, engine_config, scheduler, agent):
        config = dataclasses.replace(engine_config, github_token=None, anthropic_api_key="")
        controller = ExecutionController(db, config, scheduler)

        with pytest.raises(MissingConfigurationError) as exc_info:
            await start_default(controller)

        assert set(exc_info.value.missing) == {"ANTHROPIC_API_KEY", "GITHUB_TOKEN"}
        assert db.query(Execution).count() == 0
        assert db.query(EngineLog).count() == 0
        assert scheduler.calls == []

    @pytest.mark.asyncio
    async def test_attempt_counts_previous_runs(self, controller, agent):
        first = await start_default(controller)
        controller.stop(first["execution_id"])
        second = await start_default(controller)

        assert controller.get_execution(first["execution_id"]).attempt == 1
        assert controller.get_execution(second["execution_id"]).attempt == 2

    @pytest.mark.asyncio
    async def test_scheduler_failure_marks_failed(self, db, engine_config, agent):
        controller = ExecutionController(db, engine_config, RecordingScheduler(fail=True))

        with pytest.raises(ConnectionError):
            await start_default(controller)

        execution = db.query(Execution).one()
        assert execution.status == ExecutionStatus.FAILED
        assert "Failed to schedule" in execution.error

    @pytest.mark.asyncio
    async def test_branch_and_model_overrides(self, controller, agent):
        result = await controller.start(
            "AGT-2", "sam", "Title", "", model="claude-opus-4-1", branch="feature/x",
        )
        execution = controller.get_execution(result["execution_id"])
        assert execution.branch == "feature/x"
        assert execution.model == "claude-opus-4-1"
        assert "Branch: feature/x" in execution.system_prompt


class TestStopPauseResume:

    @pytest.mark.asyncio
    async def test_stop_running_execution(self, controller, agent):
        result = await start_default(controller)

        assert controller.stop(result["execution_id"])["status"] == "stopped"
        execution = controller.get_execution(result["execution_id"])
        assert execution.status == ExecutionStatus.STOPPED
        assert execution.completed_at is not None

    @pytest.mark.asyncio
    async def test_stop_terminal_execution_is_rejected(self, controller, agent):
        result = await start_default(controller)
        controller.stop(result["execution_id"])

        with pytest.raises(InvalidTransitionError):
            controller.stop(result["execution_id"])
        assert controller.get_execution(result["execution_id"]).status == ExecutionStatus.STOPPED

    @pytest.mark.asyncio
    async def test_pause_then_resume_schedules_next_step(self, controller, scheduler, agent):
        result = await start_default(controller)
        execution_id = result["execution_id"]

        assert controller.pause(execution_id)["status"] == "paused"
        assert controller.get_execution(execution_id).status == ExecutionStatus.PAUSED

        assert (await controller.resume(execution_id))["status"] == "running"
        assert [call[1] for call in scheduler.calls] == [1, 1]

    @pytest.mark.asyncio
    async def test_resume_running_execution_is_rejected(self, controller, agent):
        result = await start_default(controller)
        with pytest.raises(InvalidTransitionError):
            await controller.resume(result["execution_id"])

    @pytest.mark.asyncio
    async def test_stop_paused_execution_is_rejected(self, controller, agent):
        result = await start_default(controller)
        controller.pause(result["execution_id"])

        with pytest.raises(InvalidTransitionError) as exc_info:
            controller.stop(result["execution_id"])

        assert exc_info.value.current == "paused"
        assert controller.get_execution(result["execution_id"]).status == ExecutionStatus.PAUSED

    def test_stop_unknown_execution(self, controller):
        with pytest.raises(ExecutionNotFoundError):
            controller.stop(999)


class TestReadAccess:

    @pytest.mark.asyncio
    async def test_list_filters_by_status(self, controller, agent):
        first = await start_default(controller, "AGT-1")
        await start_default(controller, "AGT-2")
        controller.stop(first["execution_id"])

        running = controller.list_executions(status="running")
        stopped = controller.list_executions(status="stopped")

        assert [e.task_id for e in running] == ["AGT-2"]
        assert [e.task_id for e in stopped] == ["AGT-1"]
        assert [e.task_id for e in controller.list_executions()] == ["AGT-2", "AGT-1"]

    @pytest.mark.asyncio
    async def test_get_logs_oldest_first(self, controller, agent):
        result = await start_default(controller)
        controller.pause(result["execution_id"])

        logs = controller.get_logs(result["execution_id"])
        assert [log.content for log in logs][-1] == "Paused."
        assert logs[0].content.startswith("Starting execution")

    def test_get_logs_unknown_execution(self, controller):
        with pytest.raises(ExecutionNotFoundError):
            controller.get_logs(12345)
