"""
Typed conversation turns exchanged with the completion service.

The persisted form is plain JSON (see ExecutionStore); everything between
load and save works with these models.
"""
from typing import Any, Dict, List, Literal, Union

from pydantic import BaseModel, Field, TypeAdapter
from typing_extensions import Annotated


class TextBlock(BaseModel):
    type: Literal["text"] = "text"
    text: str


class ThinkingBlock(BaseModel):
    type: Literal["thinking"] = "thinking"
    thinking: str
    signature: str = ""


class RedactedThinkingBlock(BaseModel):
    type: Literal["redacted_thinking"] = "redacted_thinking"
    data: str


class ToolUseBlock(BaseModel):
    """A tool call requested by the model."""
    type: Literal["tool_use"] = "tool_use"
    id: str
    name: str
    input: Dict[str, Any] = Field(default_factory=dict)


class ToolResultBlock(BaseModel):
    """The engine's answer to a ToolUseBlock, echoed in the next user turn."""
    type: Literal["tool_result"] = "tool_result"
    tool_use_id: str
    content: str
    is_error: bool = False


ContentBlock = Annotated[
    Union[TextBlock, ThinkingBlock, RedactedThinkingBlock, ToolUseBlock, ToolResultBlock],
    Field(discriminator="type"),
]


class ConversationTurn(BaseModel):
    """One role-tagged turn. User turns may be plain text."""
    role: Literal["user", "assistant"]
    content: Union[str, List[ContentBlock]]

    def to_api(self) -> Dict[str, Any]:
        return self.model_dump(mode="json")


_conversation_adapter = TypeAdapter(List[ConversationTurn])


def dump_conversation(turns: List[ConversationTurn]) -> List[Dict[str, Any]]:
    """Serialize turns to JSON-compatible dicts."""
    return _conversation_adapter.dump_python(turns, mode="json")


def load_conversation(raw: Any) -> List[ConversationTurn]:
    """Rebuild typed turns from their persisted JSON form."""
    return _conversation_adapter.validate_python(raw or [])
