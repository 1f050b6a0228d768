"""
Completion Client - Anthropic Messages API

Thin adapter: sends system prompt + conversation + tool schema, returns the
typed content blocks, stop reason and token usage. No retry or backoff:
transport failures surface as CompletionError and are fatal to the step.
"""
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from anthropic import APIError, AsyncAnthropic

from agent_engine.schemas.conversation import (
    ContentBlock,
    ConversationTurn,
    RedactedThinkingBlock,
    TextBlock,
    ThinkingBlock,
    ToolUseBlock,
)

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 300.0


class CompletionError(Exception):
    """Completion service returned a non-success response or was unreachable"""
    pass


@dataclass
class CompletionResult:
    content_blocks: List[ContentBlock] = field(default_factory=list)
    stop_reason: Optional[str] = None
    input_tokens: int = 0
    output_tokens: int = 0

    @property
    def tokens_used(self) -> int:
        return self.input_tokens + self.output_tokens


class CompletionClient:
    """
    Async client for the completion service.

    Usage:
        client = CompletionClient(api_key=config.anthropic_api_key)
        result = await client.complete(system_prompt, turns, tool_schemas, model, 8096)
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        timeout: float = DEFAULT_TIMEOUT,
        client: Optional[Any] = None,
    ):
        # SDK retries are disabled; retry policy belongs to the dispatcher
        self._client = client or AsyncAnthropic(api_key=api_key, max_retries=0, timeout=timeout)

    async def complete(
        self,
        system_prompt: str,
        conversation: List[ConversationTurn],
        tools: List[Dict[str, Any]],
        model: str,
        max_tokens: int,
    ) -> CompletionResult:
        """Run one completion call."""
        try:
            response = await self._client.messages.create(
                model=model,
                max_tokens=max_tokens,
                system=system_prompt,
                messages=[turn.to_api() for turn in conversation],
                tools=tools,
            )
        except APIError as e:
            status = getattr(e, "status_code", None)
            prefix = f"Completion API {status}" if status else "Completion API error"
            raise CompletionError(f"{prefix}: {e.message}") from e

        usage = getattr(response, "usage", None)
        result = CompletionResult(
            content_blocks=_convert_blocks(response.content),
            stop_reason=response.stop_reason,
            input_tokens=getattr(usage, "input_tokens", 0) or 0,
            output_tokens=getattr(usage, "output_tokens", 0) or 0,
        )
        logger.info(
            f"[Completion] model={model} blocks={len(result.content_blocks)} "
            f"stop={result.stop_reason} tokens={result.tokens_used}"
        )
        return result


def _convert_blocks(blocks: List[Any]) -> List[ContentBlock]:
    """Map SDK content blocks onto the engine's typed blocks."""
    converted: List[ContentBlock] = []
    for block in blocks or []:
        block_type = getattr(block, "type", None)
        if block_type == "text":
            converted.append(TextBlock(text=block.text))
        elif block_type == "tool_use":
            converted.append(ToolUseBlock(id=block.id, name=block.name, input=dict(block.input or {})))
        elif block_type == "thinking":
            converted.append(ThinkingBlock(thinking=block.thinking, signature=getattr(block, "signature", "") or ""))
        elif block_type == "redacted_thinking":
            converted.append(RedactedThinkingBlock(data=block.data))
        else:
            logger.warning(f"[Completion] Dropping unsupported content block type: {block_type}")
    return converted
