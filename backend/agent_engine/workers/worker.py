"""
ARQ worker entry point.

Run with: arq agent_engine.workers.worker.WorkerSettings
"""
import logging

from agent_engine.config import EngineConfig, settings
from agent_engine.database import SessionLocal
from agent_engine.logging_config import setup_logging
from agent_engine.services.completion_client import CompletionClient
from agent_engine.services.repository_client import GitHubRepositoryClient
from agent_engine.services.step_scheduler import ArqStepScheduler
from agent_engine.workers.arq_config import REDIS_SETTINGS
from agent_engine.workers.tasks import execute_step_task, recover_running_executions

logger = logging.getLogger("arq.worker")


async def startup(ctx: dict):
    """Build shared clients and resume executions left running by a previous worker."""
    setup_logging()
    config = EngineConfig.from_settings(settings)
    missing = config.missing_credentials()
    if missing:
        raise RuntimeError(f"Worker cannot start, missing configuration: {', '.join(missing)}")

    ctx["engine_config"] = config
    ctx["completion_client"] = CompletionClient(
        api_key=config.anthropic_api_key,
        timeout=config.completion_timeout,
    )
    ctx["repository"] = GitHubRepositoryClient(
        token=config.github_token,
        owner=config.github_owner,
        repo=config.github_repo,
        branch=config.default_branch,
        api_base=config.github_api_base,
    )

    db = SessionLocal()
    try:
        recovered = await recover_running_executions(db, ArqStepScheduler(ctx["redis"]))
        if recovered:
            logger.info(f"[Startup] Re-enqueued next step for {recovered} running executions")
    except Exception as e:
        logger.warning(f"[Startup] Recovery failed (non-fatal): {e}")
    finally:
        db.close()
    logger.info("[Startup] ARQ worker ready")


async def shutdown(ctx: dict):
    """Clean shutdown."""
    repository = ctx.get("repository")
    if repository is not None:
        await repository.aclose()
    logger.info("[Shutdown] ARQ worker stopping")


class WorkerSettings:
    """ARQ worker settings."""
    redis_settings = REDIS_SETTINGS
    functions = [execute_step_task]
    on_startup = startup
    on_shutdown = shutdown
    max_jobs = settings.WORKER_MAX_JOBS
    job_timeout = settings.WORKER_JOB_TIMEOUT
    keep_result = 0  # frees the step job id as soon as the step finishes
    health_check_interval = 30
    queue_name = settings.ARQ_QUEUE_NAME
