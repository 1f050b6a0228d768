"""
Execution Store — persistence boundary and status state machine.

The only place that converts between the persisted JSON columns and the
typed in-memory state (conversation turns, staged changes). Status changes
go through one transition table; terminal states have no way out.
Row-level locking (FOR UPDATE) guards every read-modify-write.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Dict, List, Optional

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from agent_engine.models.execution import DEFAULT_MAX_STEPS, Execution, ExecutionStatus
from agent_engine.schemas.conversation import (
    ConversationTurn,
    dump_conversation,
    load_conversation,
)
from agent_engine.services.staging import StagedChanges

logger = logging.getLogger(__name__)

MAX_CREATE_RETRIES = 3


# Transition table: current status -> valid target statuses
TRANSITIONS: Dict[str, List[str]] = {
    "running": ["paused", "done", "failed", "stopped"],
    "paused":  ["running", "failed"],  # stop only applies to a running execution
    "done":    [],
    "failed":  [],
    "stopped": [],
}


class ExecutionNotFoundError(Exception):
    """Raised when no execution exists with the given id."""

    def __init__(self, execution_id: int):
        self.execution_id = execution_id
        super().__init__(f"Execution {execution_id} not found")


class ExecutionConflictError(Exception):
    """Raised when no attempt number could be allocated for a task."""

    def __init__(self, task_id: str):
        self.task_id = task_id
        super().__init__(f"Concurrent starts of task {task_id}; try again")


class InvalidTransitionError(Exception):
    """Raised when an invalid status transition is attempted."""

    def __init__(self, current: str, target: str):
        self.current = current
        self.target = target
        super().__init__(f"Invalid transition: {current} → {target}")


@dataclass
class ExecutionSnapshot:
    """Typed view of an execution as loaded at the start of a step."""
    id: int
    task_id: str
    agent_name: str
    status: ExecutionStatus
    conversation: List[ConversationTurn]
    staged: StagedChanges
    current_step: int
    max_steps: int
    tokens_used: int
    model: str
    repo: str
    branch: str
    system_prompt: str


def _now() -> datetime:
    return datetime.now(timezone.utc)


class ExecutionStore:
    """
    Reads and writes execution records.

    Usage:
        store = ExecutionStore(db)
        snapshot = store.load(execution_id)
        still_running = store.save_step(execution_id, turns, staged, step, tokens)
        store.finish(execution_id, ExecutionStatus.DONE, commit_sha=sha)
    """

    def __init__(self, db: Session):
        self.db = db

    def _locked(self, execution_id: int) -> Execution:
        """Fetch execution with row-level lock for safe concurrent updates."""
        execution = self.db.query(Execution).filter(
            Execution.id == execution_id
        ).with_for_update().first()
        if not execution:
            raise ExecutionNotFoundError(execution_id)
        return execution

    def _commit(self):
        try:
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

    # ═══════════════════════════════════════════════════════════════
    # CREATE / READ
    # ═══════════════════════════════════════════════════════════════

    def create(
        self,
        task_id: str,
        agent_id: Optional[int],
        agent_name: str,
        model: str,
        repo: str,
        branch: str,
        system_prompt: str,
        initial_turns: List[ConversationTurn],
        max_steps: int = DEFAULT_MAX_STEPS,
    ) -> Execution:
        """
        Insert a new running execution; attempt = 1 + latest attempt of the task.

        Two concurrent starts of the same task race for the same attempt
        number; the loser re-reads the latest attempt and tries again.

        Raises:
            ExecutionConflictError: no free attempt number after retrying
        """
        for retry in range(MAX_CREATE_RETRIES):
            attempt = self._next_attempt(task_id)
            execution = Execution(
                task_id=task_id,
                attempt=attempt,
                agent_id=agent_id,
                agent_name=agent_name,
                status=ExecutionStatus.RUNNING,
                system_prompt=system_prompt,
                conversation=dump_conversation(initial_turns),
                staged_changes={},
                current_step=0,
                max_steps=max_steps,
                tokens_used=0,
                files_changed=[],
                model=model,
                repo=repo,
                branch=branch,
                started_at=_now(),
            )
            try:
                self.db.add(execution)
                self.db.commit()
            except IntegrityError:
                self.db.rollback()
                logger.warning(
                    f"[StateMachine] Attempt {attempt} of {task_id} already taken "
                    f"(try {retry + 1}/{MAX_CREATE_RETRIES})"
                )
                continue
            except Exception:
                self.db.rollback()
                raise
            self.db.refresh(execution)
            return execution

        raise ExecutionConflictError(task_id)

    def _next_attempt(self, task_id: str) -> int:
        latest = self.db.query(func.max(Execution.attempt)).filter(
            Execution.task_id == task_id
        ).scalar()
        return (latest or 0) + 1

    def get(self, execution_id: int) -> Execution:
        execution = self.db.query(Execution).filter(Execution.id == execution_id).first()
        if not execution:
            raise ExecutionNotFoundError(execution_id)
        return execution

    def load(self, execution_id: int) -> ExecutionSnapshot:
        """Deserialize the persisted loop state of an execution."""
        execution = self.get(execution_id)
        self.db.refresh(execution)
        return ExecutionSnapshot(
            id=execution.id,
            task_id=execution.task_id,
            agent_name=execution.agent_name,
            status=execution.status,
            conversation=load_conversation(execution.conversation),
            staged=StagedChanges(execution.staged_changes or {}),
            current_step=execution.current_step,
            max_steps=execution.max_steps,
            tokens_used=execution.tokens_used,
            model=execution.model,
            repo=execution.repo,
            branch=execution.branch,
            system_prompt=execution.system_prompt,
        )

    def list(self, status: Optional[str] = None, limit: int = 20) -> List[Execution]:
        query = self.db.query(Execution)
        if status:
            query = query.filter(Execution.status == ExecutionStatus(status))
        return query.order_by(Execution.id.desc()).limit(limit).all()

    def running_ids(self) -> List[int]:
        rows = self.db.query(Execution.id).filter(
            Execution.status == ExecutionStatus.RUNNING
        ).all()
        return [row[0] for row in rows]

    # ═══════════════════════════════════════════════════════════════
    # WRITE
    # ═══════════════════════════════════════════════════════════════

    def save_step(
        self,
        execution_id: int,
        conversation: List[ConversationTurn],
        staged: StagedChanges,
        step: int,
        tokens_delta: int,
    ) -> bool:
        """
        Persist one step's results in a single update.

        Returns:
            True if the execution is still running after the write. False
            means a stop or pause landed while the step was in flight.
        """
        execution = self._locked(execution_id)
        execution.conversation = dump_conversation(conversation)
        execution.staged_changes = staged.to_dict()
        execution.files_changed = staged.paths()
        execution.current_step = step
        execution.tokens_used = (execution.tokens_used or 0) + tokens_delta
        still_running = execution.status == ExecutionStatus.RUNNING
        self._commit()
        return still_running

    def transition(
        self,
        execution_id: int,
        target: ExecutionStatus,
        commit_sha: Optional[str] = None,
        error: Optional[str] = None,
    ) -> Execution:
        """
        Move an execution to ``target``.

        Raises:
            InvalidTransitionError: if the transition table forbids it
            ExecutionNotFoundError: if the execution does not exist
        """
        execution = self._locked(execution_id)  # Row lock (FOR UPDATE)
        current = execution.status.value

        if target.value not in TRANSITIONS.get(current, []):
            self.db.rollback()  # release FOR UPDATE lock on invalid transition
            raise InvalidTransitionError(current, target.value)

        execution.status = target
        if target in (ExecutionStatus.DONE, ExecutionStatus.FAILED, ExecutionStatus.STOPPED):
            execution.completed_at = _now()
        if commit_sha:
            execution.commit_sha = commit_sha
        if error:
            execution.error = error
        self._commit()

        logger.info(f"[StateMachine] Execution {execution_id}: {current} → {target.value}")
        return execution

    def finish(
        self,
        execution_id: int,
        status: ExecutionStatus,
        commit_sha: Optional[str] = None,
        error: Optional[str] = None,
    ) -> bool:
        """Terminal transition from the step executor. False if refused."""
        try:
            self.transition(execution_id, status, commit_sha=commit_sha, error=error)
            return True
        except InvalidTransitionError as e:
            logger.warning(f"[StateMachine] Execution {execution_id}: {e} (skipped)")
            return False
