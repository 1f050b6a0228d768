"""
FastAPI dependencies for the execution routes.
"""
from fastapi import Depends
from sqlalchemy.orm import Session

from agent_engine.config import EngineConfig, settings
from agent_engine.database import get_db
from agent_engine.services.execution_controller import ExecutionController
from agent_engine.services.step_scheduler import ArqStepScheduler
from agent_engine.workers.arq_config import get_redis_pool


def get_engine_config() -> EngineConfig:
    return EngineConfig.from_settings(settings)


async def get_scheduler() -> ArqStepScheduler:
    return ArqStepScheduler(await get_redis_pool())


def get_controller(
    db: Session = Depends(get_db),
    config: EngineConfig = Depends(get_engine_config),
    scheduler: ArqStepScheduler = Depends(get_scheduler),
) -> ExecutionController:
    return ExecutionController(db, config, scheduler)
