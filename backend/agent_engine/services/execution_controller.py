"""
Execution Controller — entry point of the engine.

Creates executions and schedules their first step, handles cooperative
cancellation (stop / pause / resume) and exposes read access for dashboards.
`start` never waits on the model or the repository.
"""
import logging
from typing import Any, Dict, List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from agent_engine.config import EngineConfig
from agent_engine.models.agent import Agent
from agent_engine.models.engine_log import EngineLog, LogType
from agent_engine.models.execution import Execution, ExecutionStatus
from agent_engine.schemas.conversation import ConversationTurn
from agent_engine.services.engine_log_service import DEFAULT_LOG_LIMIT, EngineLogSink
from agent_engine.services.execution_store import ExecutionStore
from agent_engine.services.persona_service import (
    TaskContext,
    build_system_prompt,
    build_user_message,
    get_persona,
    get_repo_context,
)
from agent_engine.services.step_scheduler import StepScheduler

logger = logging.getLogger(__name__)


class UnknownAgentError(Exception):
    """No persona or registered agent for the requested name."""

    def __init__(self, agent_name: str, reason: str = "unknown agent"):
        self.agent_name = agent_name
        super().__init__(f"Unknown agent: {agent_name} ({reason})")


class MissingConfigurationError(Exception):
    """Required credentials are not configured."""

    def __init__(self, missing: List[str]):
        self.missing = missing
        super().__init__(f"Missing configuration: {', '.join(missing)}")


class ExecutionController:
    """
    Starts and controls executions.

    Usage:
        controller = ExecutionController(db, EngineConfig.from_settings(settings), scheduler)
        result = await controller.start("AGT-42", "sam", "Add endpoint", "...")
    """

    def __init__(self, db: Session, config: EngineConfig, scheduler: StepScheduler):
        self.db = db
        self.config = config
        self.scheduler = scheduler
        self.store = ExecutionStore(db)
        self.log = EngineLogSink(db)

    def _find_agent(self, agent_name: str) -> Optional[Agent]:
        return self.db.query(Agent).filter(
            func.lower(Agent.name) == agent_name.strip().lower()
        ).first()

    async def start(
        self,
        task_id: str,
        agent_name: str,
        task_title: str,
        task_description: str,
        priority: Optional[str] = None,
        labels: Optional[List[str]] = None,
        model: Optional[str] = None,
        branch: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Create an execution and schedule its first step.

        Returns:
            {"execution_id": int, "status": "started"}

        Raises:
            UnknownAgentError: no persona or no registered agent for the name
            MissingConfigurationError: a credential is missing; nothing is created
            ExecutionConflictError: a concurrent start of the same task won every retry
        """
        persona = get_persona(agent_name)
        if persona is None:
            raise UnknownAgentError(agent_name, "no persona")

        missing = self.config.missing_credentials()
        if missing:
            raise MissingConfigurationError(missing)

        agent = self._find_agent(agent_name)
        if agent is None:
            raise UnknownAgentError(agent_name, "not registered in agents table")

        branch = branch or self.config.default_branch
        model = model or self.config.default_model
        task = TaskContext(
            id=task_id,
            title=task_title,
            description=task_description,
            priority=priority or "Medium",
            labels=list(labels or []),
        )
        repo_ctx = get_repo_context(self.config.github_owner, self.config.github_repo, branch)
        system_prompt = build_system_prompt(persona, task, repo_ctx, soul=agent.soul)
        initial_turns = [ConversationTurn(role="user", content=build_user_message(task))]

        execution = self.store.create(
            task_id=task_id,
            agent_id=agent.id,
            agent_name=persona.name,
            model=model,
            repo=repo_ctx.full_name,
            branch=branch,
            system_prompt=system_prompt,
            initial_turns=initial_turns,
            max_steps=self.config.max_steps,
        )
        self.log.write(
            execution.id, 0, LogType.SYSTEM,
            f"Starting execution: {task_id} with agent {persona.name}",
            metadata={"model": model, "repo": repo_ctx.full_name, "branch": branch, "attempt": execution.attempt},
        )

        try:
            await self.scheduler.schedule(execution.id, 1, system_prompt)
        except Exception as e:
            error = f"Failed to schedule first step: {e}"
            self.log.write(execution.id, 0, LogType.ERROR, error)
            self.store.finish(execution.id, ExecutionStatus.FAILED, error=error)
            raise

        logger.info(f"[Controller] Execution {execution.id} started for {task_id} by {persona.name}")
        return {"execution_id": execution.id, "status": "started"}

    def stop(self, execution_id: int) -> Dict[str, Any]:
        """
        Request cancellation. Observed by the next step, at most one step later.

        Raises:
            InvalidTransitionError: the execution is not running (paused or terminal)
        """
        execution = self.store.transition(execution_id, ExecutionStatus.STOPPED)
        self.log.write(execution_id, execution.current_step, LogType.SYSTEM, "Stop requested.")
        return {"execution_id": execution_id, "status": ExecutionStatus.STOPPED.value}

    def pause(self, execution_id: int) -> Dict[str, Any]:
        execution = self.store.transition(execution_id, ExecutionStatus.PAUSED)
        self.log.write(execution_id, execution.current_step, LogType.SYSTEM, "Paused.")
        return {"execution_id": execution_id, "status": ExecutionStatus.PAUSED.value}

    async def resume(self, execution_id: int) -> Dict[str, Any]:
        """Return a paused execution to running and schedule its next step."""
        execution = self.store.transition(execution_id, ExecutionStatus.RUNNING)
        self.log.write(execution_id, execution.current_step, LogType.SYSTEM, "Resumed.")
        await self.scheduler.schedule(execution_id, execution.current_step + 1, execution.system_prompt)
        return {"execution_id": execution_id, "status": ExecutionStatus.RUNNING.value}

    # ═══════════════════════════════════════════════════════════════
    # READ ACCESS
    # ═══════════════════════════════════════════════════════════════

    def get_execution(self, execution_id: int) -> Execution:
        return self.store.get(execution_id)

    def list_executions(self, status: Optional[str] = None, limit: int = 20) -> List[Execution]:
        return self.store.list(status=status, limit=limit)

    def get_logs(self, execution_id: int, limit: int = DEFAULT_LOG_LIMIT) -> List[EngineLog]:
        self.store.get(execution_id)
        return self.log.list_for_execution(execution_id, limit=limit)
