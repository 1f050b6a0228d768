"""
Agent model for registered team members that can run executions.
"""
from sqlalchemy import Column, DateTime, Integer, String, Text
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from agent_engine.database import Base


class Agent(Base):
    """A registered agent. Names are matched case-insensitively."""

    __tablename__ = "agents"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(50), unique=True, nullable=False, index=True)
    role = Column(String(50), nullable=False)  # backend, frontend, qa, pm, devops
    soul = Column(Text)  # Optional identity text overriding the built-in persona
    status = Column(String(20), default="idle")
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    # Relationships
    executions = relationship("Execution", back_populates="agent")

    def __repr__(self):
        return f"<Agent {self.id} name={self.name} role={self.role}>"
