"""
Engine log model: append-only narration of every execution step.
"""
import enum

from sqlalchemy import JSON, Column, DateTime, Enum, ForeignKey, Integer, Text
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from agent_engine.database import Base


class LogType(str, enum.Enum):
    """Kinds of log entries written by the engine."""
    SYSTEM = "system"
    THINKING = "thinking"
    TOOL_CALL = "tool_call"
    TOOL_RESULT = "tool_result"
    MESSAGE = "message"
    ERROR = "error"
    COMMIT = "commit"


class EngineLog(Base):
    """One log entry of an execution. Never updated after insert."""

    __tablename__ = "engine_logs"

    id = Column(Integer, primary_key=True, index=True)
    execution_id = Column(Integer, ForeignKey("executions.id", ondelete="CASCADE"), nullable=False, index=True)
    step = Column(Integer, nullable=False, default=0)
    timestamp = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    type = Column(Enum(LogType), nullable=False)
    content = Column(Text, nullable=False)
    # "metadata" is reserved on declarative classes
    log_metadata = Column("metadata", JSON)

    execution = relationship("Execution", back_populates="logs")

    def __repr__(self):
        return f"<EngineLog {self.id} exec={self.execution_id} step={self.step} type={self.type}>"
