"""
Step scheduling on the ARQ queue.

Each step is its own job. The job id is derived from (execution, step) so a
step that is already queued or running is never enqueued a second time,
which keeps at most one step per execution in flight.
"""
import logging
from typing import Optional

from arq.connections import ArqRedis

from agent_engine.config import settings

logger = logging.getLogger(__name__)

STEP_TASK_NAME = "execute_step_task"


def step_job_id(execution_id: int, step: int) -> str:
    return f"execution:{execution_id}:step:{step}"


class StepScheduler:
    """Interface used by the controller and step executor to chain steps."""

    async def schedule(self, execution_id: int, step: int, system_prompt: str) -> None:
        raise NotImplementedError


class ArqStepScheduler(StepScheduler):
    """Enqueues steps as ARQ jobs."""

    def __init__(self, redis: ArqRedis, queue_name: Optional[str] = None):
        self.redis = redis
        self.queue_name = queue_name or settings.ARQ_QUEUE_NAME

    async def schedule(self, execution_id: int, step: int, system_prompt: str) -> None:
        job = await self.redis.enqueue_job(
            STEP_TASK_NAME,
            execution_id,
            system_prompt,
            _job_id=step_job_id(execution_id, step),
            _queue_name=self.queue_name,
        )
        if job is None:
            logger.info(f"[ARQ] Step {step} of execution {execution_id} already queued, not re-enqueued")
            return
        logger.info(f"[ARQ] Job {job.job_id} enqueued")
