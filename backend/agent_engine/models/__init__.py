"""
Database models package.
Import all models to ensure they are registered with SQLAlchemy.
"""
from agent_engine.models.agent import Agent
from agent_engine.models.execution import (
    DEFAULT_MAX_STEPS,
    TERMINAL_STATUSES,
    Execution,
    ExecutionStatus,
)
from agent_engine.models.engine_log import EngineLog, LogType

__all__ = [
    "Agent",
    "Execution",
    "ExecutionStatus",
    "TERMINAL_STATUSES",
    "DEFAULT_MAX_STEPS",
    "EngineLog",
    "LogType",
]
