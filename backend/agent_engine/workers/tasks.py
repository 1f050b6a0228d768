"""ARQ task definitions: one job per execution step."""
import logging

from agent_engine.database import SessionLocal
from agent_engine.models.execution import ExecutionStatus
from agent_engine.services.execution_store import ExecutionNotFoundError, ExecutionStore
from agent_engine.services.step_executor import StepExecutor
from agent_engine.services.step_scheduler import ArqStepScheduler, StepScheduler

logger = logging.getLogger("arq.worker")


async def execute_step_task(ctx, execution_id: int, system_prompt: str):
    """ARQ task: run one step of an execution in the worker process."""
    db = SessionLocal()
    try:
        executor = StepExecutor(
            db=db,
            config=ctx["engine_config"],
            completion_client=ctx["completion_client"],
            repository=ctx["repository"],
            scheduler=ArqStepScheduler(ctx["redis"]),
        )
        outcome = await executor.execute_step(execution_id, system_prompt)
        logger.info(f"[Step] Execution {execution_id}: {outcome.value}")
        return {"execution_id": execution_id, "outcome": outcome.value}
    except ExecutionNotFoundError:
        logger.warning(f"[Step] Execution {execution_id} not found, skipping")
        return {"skipped": True, "reason": "not_found", "execution_id": execution_id}
    except Exception as e:
        logger.error(f"[Step] Execution {execution_id} failed outside the step boundary: {e}")
        # Ensure execution is not left running
        try:
            db.rollback()
            ExecutionStore(db).finish(execution_id, ExecutionStatus.FAILED, error=str(e))
        except Exception:
            logger.exception(f"[Step] Could not mark execution {execution_id} as failed")
        raise
    finally:
        db.close()


async def recover_running_executions(db, scheduler: StepScheduler) -> int:
    """
    Re-enqueue the next step of every running execution.

    Used at worker start-up: steps lost with a previous worker are picked up
    again. Steps still queued keep their job id and are not duplicated.
    """
    store = ExecutionStore(db)
    recovered = 0
    for execution_id in store.running_ids():
        execution = store.get(execution_id)
        await scheduler.schedule(execution.id, execution.current_step + 1, execution.system_prompt)
        recovered += 1
    return recovered
