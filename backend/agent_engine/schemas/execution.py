"""
Pydantic schemas for Execution and engine log serialization.
"""
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from agent_engine.models.engine_log import LogType
from agent_engine.models.execution import ExecutionStatus


class ExecutionStartRequest(BaseModel):
    """Schema for starting an execution of an agent against a task."""
    task_id: str = Field(..., min_length=1, description="Task identifier, e.g. 'AGT-42'")
    agent_name: str = Field(..., min_length=1, description="Agent name, e.g. 'sam'")
    task_title: str = Field(..., min_length=1)
    task_description: str = ""
    priority: Optional[str] = None
    labels: Optional[List[str]] = None
    model: Optional[str] = None
    branch: Optional[str] = None


class ExecutionStartResponse(BaseModel):
    """Response when starting a new execution."""
    execution_id: int
    status: str
    message: str


class ExecutionActionResponse(BaseModel):
    """Response for stop / pause / resume."""
    execution_id: int
    status: ExecutionStatus


class ExecutionRead(BaseModel):
    """Public view of an execution (loop blobs excluded)."""
    id: int
    task_id: str
    attempt: int
    agent_name: str
    status: ExecutionStatus
    current_step: int
    max_steps: int
    tokens_used: int
    files_changed: List[str] = []
    commit_sha: Optional[str] = None
    error: Optional[str] = None
    model: str
    repo: str
    branch: str
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    is_terminal: bool = False

    class Config:
        from_attributes = True


class EngineLogRead(BaseModel):
    """Schema for one engine log entry."""
    id: int
    execution_id: int
    step: int
    timestamp: Optional[datetime] = None
    type: LogType
    content: str
    metadata: Optional[Dict[str, Any]] = Field(None, validation_alias="log_metadata")

    class Config:
        from_attributes = True
