"""Pydantic schemas package."""
from agent_engine.schemas.conversation import (
    ContentBlock,
    ConversationTurn,
    TextBlock,
    ThinkingBlock,
    ToolResultBlock,
    ToolUseBlock,
)
from agent_engine.schemas.execution import (
    EngineLogRead,
    ExecutionActionResponse,
    ExecutionRead,
    ExecutionStartRequest,
    ExecutionStartResponse,
)

__all__ = [
    "ContentBlock",
    "ConversationTurn",
    "TextBlock",
    "ThinkingBlock",
    "ToolResultBlock",
    "ToolUseBlock",
    "EngineLogRead",
    "ExecutionActionResponse",
    "ExecutionRead",
    "ExecutionStartRequest",
    "ExecutionStartResponse",
]
