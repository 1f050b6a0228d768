"""
Execution model: one run of an agent against one task through the step loop.
"""
import enum

from sqlalchemy import (
    JSON,
    Column,
    DateTime,
    Enum,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from agent_engine.database import Base


class ExecutionStatus(str, enum.Enum):
    """Execution status enumeration."""
    RUNNING = "running"
    PAUSED = "paused"
    DONE = "done"
    FAILED = "failed"
    STOPPED = "stopped"


TERMINAL_STATUSES = (ExecutionStatus.DONE, ExecutionStatus.FAILED, ExecutionStatus.STOPPED)

DEFAULT_MAX_STEPS = 50


class Execution(Base):
    """
    Persisted execution record.

    ``conversation`` and ``staged_changes`` are stored as plain JSON; the
    typed in-memory forms live in ``agent_engine.schemas.conversation`` and
    are converted only by ``ExecutionStore``.
    """

    __tablename__ = "executions"
    __table_args__ = (
        UniqueConstraint("task_id", "attempt", name="uq_executions_task_attempt"),
    )

    id = Column(Integer, primary_key=True, index=True)
    task_id = Column(String(100), nullable=False, index=True)
    attempt = Column(Integer, nullable=False, default=1)
    agent_id = Column(Integer, ForeignKey("agents.id", ondelete="SET NULL"), nullable=True)
    agent_name = Column(String(50), nullable=False)

    status = Column(Enum(ExecutionStatus), default=ExecutionStatus.RUNNING, nullable=False, index=True)

    # Loop state
    system_prompt = Column(Text, nullable=False)
    conversation = Column(JSON, nullable=False, default=list)  # Ordered role-tagged turns
    staged_changes = Column(JSON, nullable=False, default=dict)  # {path: content | null (deleted)}
    current_step = Column(Integer, nullable=False, default=0)
    max_steps = Column(Integer, nullable=False, default=DEFAULT_MAX_STEPS)
    tokens_used = Column(Integer, nullable=False, default=0)
    files_changed = Column(JSON, nullable=False, default=list)

    # Outcome
    commit_sha = Column(String(64))
    error = Column(Text)

    # Target
    model = Column(String(100), nullable=False)
    repo = Column(String(200), nullable=False)  # owner/name
    branch = Column(String(200), nullable=False)

    # Timing
    started_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    completed_at = Column(DateTime(timezone=True))

    # Relationships
    agent = relationship("Agent", back_populates="executions")
    logs = relationship("EngineLog", back_populates="execution", order_by="EngineLog.id")

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def __repr__(self):
        return f"<Execution {self.id} task={self.task_id} status={self.status}>"
