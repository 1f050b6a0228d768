"""
Step Executor — one tick of the agentic loop.

Each invocation:
1. Loads the persisted conversation and staged changes
2. Calls the completion service (the step's only await on the model)
3. Applies tool calls to the staged buffer through the tool registry
4. Persists the new state in a single update
5. Completes (commit + done), schedules the next step, or ends

Steps are chained through the scheduler, never by recursion, so no single
invocation holds more than one model call's worth of time.
"""
import asyncio
import logging
from enum import Enum
from typing import List, Optional

from sqlalchemy.orm import Session

from agent_engine.config import EngineConfig
from agent_engine.models.engine_log import LogType
from agent_engine.models.execution import ExecutionStatus
from agent_engine.schemas.conversation import (
    ConversationTurn,
    TextBlock,
    ThinkingBlock,
    ToolResultBlock,
    ToolUseBlock,
)
from agent_engine.services.completion_client import CompletionClient, CompletionError, CompletionResult
from agent_engine.services.engine_log_service import (
    TOOL_CALL_PREVIEW,
    TOOL_RESULT_PREVIEW,
    EngineLogSink,
    truncate,
)
from agent_engine.services.execution_store import ExecutionSnapshot, ExecutionStore
from agent_engine.services.repository_client import GitHubRepositoryClient
from agent_engine.services.staging import StagedChanges
from agent_engine.services.step_scheduler import StepScheduler
from agent_engine.services.tools import (
    TASK_COMPLETE_TOOL,
    ToolContext,
    ToolRegistry,
    describe_call,
)

logger = logging.getLogger(__name__)

END_TURN = "end_turn"
DEFAULT_SUMMARY = "Task completed"


class StepOutcome(str, Enum):
    """What a step invocation did."""
    HALTED = "halted"        # execution was not running; nothing changed
    CONTINUED = "continued"  # next step scheduled
    COMPLETED = "completed"  # execution marked done
    FAILED = "failed"        # execution marked failed


class StepExecutor:
    """
    Runs single steps of an execution.

    Usage:
        executor = StepExecutor(db, config, completion_client, repository, scheduler)
        outcome = await executor.execute_step(execution_id, system_prompt)
    """

    def __init__(
        self,
        db: Session,
        config: EngineConfig,
        completion_client: CompletionClient,
        repository: GitHubRepositoryClient,
        scheduler: StepScheduler,
        tools: Optional[ToolRegistry] = None,
    ):
        self.config = config
        self.completion_client = completion_client
        self.repository = repository
        self.scheduler = scheduler
        self.tools = tools or ToolRegistry.default()
        self.store = ExecutionStore(db)
        self.log = EngineLogSink(db)

    async def execute_step(self, execution_id: int, system_prompt: str) -> StepOutcome:
        snapshot = self.store.load(execution_id)

        if snapshot.status != ExecutionStatus.RUNNING:
            self.log.write(
                execution_id, snapshot.current_step, LogType.SYSTEM,
                f"Execution {snapshot.status.value}. Halting.",
            )
            return StepOutcome.HALTED

        if snapshot.current_step >= snapshot.max_steps:
            reason = f"Step budget exceeded: max steps reached ({snapshot.max_steps})"
            self.log.write(execution_id, snapshot.current_step, LogType.ERROR, reason)
            self.store.finish(execution_id, ExecutionStatus.FAILED, error=reason)
            return StepOutcome.FAILED

        step = snapshot.current_step + 1
        try:
            return await self._run_step(snapshot, step, system_prompt)
        except asyncio.CancelledError:
            # Job timeout or worker shutdown; the next step will never be scheduled
            logger.warning(f"[Step] Execution {execution_id} step {step} cancelled")
            self._fail(execution_id, step, f"Step {step} cancelled (job timeout or worker shutdown)")
            raise
        except Exception as e:
            logger.exception(f"[Step] Execution {execution_id} step {step} failed")
            return self._fail(execution_id, step, str(e) or e.__class__.__name__)

    async def _run_step(self, snapshot: ExecutionSnapshot, step: int, system_prompt: str) -> StepOutcome:
        execution_id = snapshot.id
        conversation = list(snapshot.conversation)
        staged = snapshot.staged

        self.log.write(execution_id, step, LogType.SYSTEM, f"Step {step}: calling {snapshot.model}...")

        try:
            result = await self.completion_client.complete(
                system_prompt=system_prompt,
                conversation=conversation,
                tools=self.tools.schemas(),
                model=snapshot.model,
                max_tokens=self.config.max_tokens_per_step,
            )
        except CompletionError as e:
            return self._fail(execution_id, step, str(e))

        repository = self.repository.for_branch(snapshot.branch)
        context = ToolContext(repository=repository, staged=staged)
        completion_signalled = False
        summary = DEFAULT_SUMMARY
        tool_results: List[ToolResultBlock] = []

        for block in result.content_blocks:
            if isinstance(block, TextBlock):
                if block.text.strip():
                    self.log.write(execution_id, step, LogType.MESSAGE, block.text)
            elif isinstance(block, ThinkingBlock):
                if block.thinking.strip():
                    self.log.write(execution_id, step, LogType.THINKING, block.thinking)
            elif isinstance(block, ToolUseBlock):
                self.log.write(
                    execution_id, step, LogType.TOOL_CALL,
                    describe_call(block, TOOL_CALL_PREVIEW),
                    metadata={"tool": block.name, "input": block.input},
                )
                if block.name == TASK_COMPLETE_TOOL:
                    completion_signalled = True
                    summary = str(block.input.get("summary") or DEFAULT_SUMMARY)
                tool_result = await self.tools.execute(block, context)
                self.log.write(
                    execution_id, step, LogType.TOOL_RESULT,
                    truncate(tool_result.content, TOOL_RESULT_PREVIEW),
                    metadata={"tool": block.name, "is_error": tool_result.is_error},
                )
                tool_results.append(tool_result)

        if result.content_blocks:
            conversation.append(ConversationTurn(role="assistant", content=list(result.content_blocks)))
        if tool_results:
            conversation.append(ConversationTurn(role="user", content=list(tool_results)))

        # Single state write for the whole step
        still_running = self.store.save_step(execution_id, conversation, staged, step, result.tokens_used)
        if not still_running:
            status = self.store.get(execution_id).status.value
            self.log.write(execution_id, step, LogType.SYSTEM, f"Execution {status} during step {step}. Halting.")
            return StepOutcome.HALTED

        tokens_used = snapshot.tokens_used + result.tokens_used

        if completion_signalled or result.stop_reason == END_TURN:
            return await self._complete(snapshot, step, repository, staged, completion_signalled, summary, tokens_used)

        if tool_results:
            await self.scheduler.schedule(execution_id, step + 1, system_prompt)
            return StepOutcome.CONTINUED

        return self._dead_end(snapshot, step, result, staged.paths())

    async def _complete(
        self,
        snapshot: ExecutionSnapshot,
        step: int,
        repository: GitHubRepositoryClient,
        staged: StagedChanges,
        completion_signalled: bool,
        summary: str,
        tokens_used: int,
    ) -> StepOutcome:
        execution_id = snapshot.id
        files_changed = staged.paths()
        commit_sha = None

        if completion_signalled and len(staged) > 0:
            if self.store.get(execution_id).status != ExecutionStatus.RUNNING:
                self.log.write(execution_id, step, LogType.SYSTEM, "Execution no longer running. Skipping commit.")
                return StepOutcome.HALTED
            self.log.write(
                execution_id, step, LogType.SYSTEM,
                f"Committing {len(staged)} files to {snapshot.repo}@{snapshot.branch}...",
            )
            message = f"[{snapshot.agent_name}] {snapshot.task_id} — {summary}"
            try:
                commit = await repository.commit(staged.to_dict(), message)
                commit_sha = commit.sha
                self.log.write(
                    execution_id, step, LogType.COMMIT,
                    f"Committed {commit.sha[:7]} ({commit.files_committed} files)",
                    metadata={"sha": commit.sha, "files_committed": commit.files_committed},
                )
            except Exception as e:
                logger.warning(f"[Step] Commit failed for execution {execution_id}: {e}")
                self.log.write(
                    execution_id, step, LogType.ERROR,
                    f"Commit failed: {e}. Changes remain staged.",
                    metadata={"severity": "warning", "files": files_changed},
                )

        if not self.store.finish(execution_id, ExecutionStatus.DONE, commit_sha=commit_sha):
            return StepOutcome.HALTED

        outcome = "committed" if commit_sha else "staged"
        self.log.write(
            execution_id, step, LogType.SYSTEM,
            f"Complete! {len(files_changed)} files {outcome}. Tokens: {tokens_used}",
            metadata={"files_changed": files_changed, "tokens_used": tokens_used, "commit_sha": commit_sha},
        )
        return StepOutcome.COMPLETED

    def _dead_end(
        self,
        snapshot: ExecutionSnapshot,
        step: int,
        result: CompletionResult,
        files_changed: List[str],
    ) -> StepOutcome:
        """No tool call and no completion signal: apply the configured policy."""
        if self.config.dead_end_policy == "fail":
            return self._fail(
                snapshot.id, step,
                f"Agent stopped without calling a tool or task_complete (stop_reason: {result.stop_reason})",
            )

        if not self.store.finish(snapshot.id, ExecutionStatus.DONE):
            return StepOutcome.HALTED
        self.log.write(
            snapshot.id, step, LogType.SYSTEM,
            f"Done (stop_reason: {result.stop_reason}). {len(files_changed)} files staged.",
            metadata={"files_changed": files_changed},
        )
        return StepOutcome.COMPLETED

    def _fail(self, execution_id: int, step: int, error: str) -> StepOutcome:
        self.log.write(execution_id, step, LogType.ERROR, f"Error: {error}")
        self.store.finish(execution_id, ExecutionStatus.FAILED, error=error)
        return StepOutcome.FAILED
