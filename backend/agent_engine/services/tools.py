"""
Tool Registry - tools the model can call during a step.

Every tool works against the execution's staged changes buffer. The only
remote effect allowed is reading: writes and deletions stay staged until
the step executor commits them at completion.
"""
import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Type

from pydantic import BaseModel, Field, ValidationError

from agent_engine.schemas.conversation import ToolResultBlock, ToolUseBlock
from agent_engine.services.repository_client import (
    GitHubRepositoryClient,
    RepositoryFileNotFoundError,
)
from agent_engine.services.staging import StagedChanges, normalize_path

logger = logging.getLogger(__name__)

TASK_COMPLETE_TOOL = "task_complete"


class ToolInputError(Exception):
    """Tool input failed validation"""
    pass


@dataclass
class ToolContext:
    """What a tool may touch: the repository (read only) and the staged buffer."""
    repository: GitHubRepositoryClient
    staged: StagedChanges


@dataclass
class ToolOutput:
    content: str
    is_error: bool = False


# ═══════════════════════════════════════════════════════════════
# INPUT MODELS
# ═══════════════════════════════════════════════════════════════

class PathInput(BaseModel):
    path: str = Field(..., min_length=1, description="Repository-relative file path, e.g. 'src/app.py'")


class WriteFileInput(BaseModel):
    path: str = Field(..., min_length=1, description="Repository-relative file path")
    content: str = Field(..., description="Complete new content of the file")


class ListFilesInput(BaseModel):
    path: str = Field("", description="Directory to list; empty for the repository root")


class TaskCompleteInput(BaseModel):
    summary: str = Field("Task completed", description="Short summary of what was done")


# ═══════════════════════════════════════════════════════════════
# TOOLS
# ═══════════════════════════════════════════════════════════════

class Tool:
    """Base class: a name, a description, an input model and a handler."""

    name: str = ""
    description: str = ""
    input_model: Type[BaseModel] = BaseModel

    def schema(self) -> Dict[str, Any]:
        input_schema = self.input_model.model_json_schema()
        input_schema.pop("title", None)
        return {"name": self.name, "description": self.description, "input_schema": input_schema}

    def parse(self, raw: Dict[str, Any]) -> BaseModel:
        try:
            return self.input_model.model_validate(raw or {})
        except ValidationError as e:
            details = "; ".join(
                f"{'.'.join(str(p) for p in err['loc']) or 'input'}: {err['msg']}" for err in e.errors()
            )
            raise ToolInputError(f"Invalid input for {self.name}: {details}") from e

    async def run(self, params: BaseModel, context: ToolContext) -> ToolOutput:
        raise NotImplementedError


class ReadFileTool(Tool):
    name = "read_file"
    description = (
        "Read a file. Returns your staged version if you have written it during this "
        "task, otherwise the version on the target branch."
    )
    input_model = PathInput

    async def run(self, params: PathInput, context: ToolContext) -> ToolOutput:
        staged = context.staged.get(params.path)
        if staged is not None:
            if staged.deleted:
                return ToolOutput(f"File not found: {staged.path} (deleted in staged changes)", is_error=True)
            return ToolOutput(staged.content)
        try:
            return ToolOutput(await context.repository.read_file(params.path))
        except RepositoryFileNotFoundError:
            return ToolOutput(f"File not found: {normalize_path(params.path)}", is_error=True)


class WriteFileTool(Tool):
    name = "write_file"
    description = "Write the full content of a file. The change is staged and committed when you call task_complete."
    input_model = WriteFileInput

    async def run(self, params: WriteFileInput, context: ToolContext) -> ToolOutput:
        change = context.staged.write(params.path, params.content)
        return ToolOutput(f"Staged {change.path} ({len(params.content)} chars)")


class CreateFileTool(WriteFileTool):
    name = "create_file"
    description = "Create a new file with the given content. The change is staged like write_file."


class DeleteFileTool(Tool):
    name = "delete_file"
    description = "Delete a file. The deletion is staged and applied when you call task_complete."
    input_model = PathInput

    async def run(self, params: PathInput, context: ToolContext) -> ToolOutput:
        path = normalize_path(params.path)
        if not await context.repository.exists(path):
            # Only ever staged: forget it instead of sending a deletion to the repository
            staged = context.staged.get(path)
            if staged is not None and not staged.deleted:
                context.staged.discard(path)
                return ToolOutput(f"Discarded staged file {path} (not in the repository)")
            return ToolOutput(f"File not found: {path}", is_error=True)
        change = context.staged.delete(path)
        return ToolOutput(f"Staged deletion of {change.path}")


class ListFilesTool(Tool):
    name = "list_files"
    description = "List files in a directory of the target branch, including your staged additions and deletions."
    input_model = ListFilesInput

    async def run(self, params: ListFilesInput, context: ToolContext) -> ToolOutput:
        directory = normalize_path(params.path).rstrip("/")
        prefix = f"{directory}/" if directory else ""
        entries: Dict[str, str] = {}
        try:
            for entry in await context.repository.list_directory(directory):
                entries[entry.path] = entry.type
        except RepositoryFileNotFoundError:
            pass

        for change in context.staged:
            if not change.path.startswith(prefix):
                continue
            remainder = change.path[len(prefix):]
            if "/" in remainder:
                subdir = prefix + remainder.split("/", 1)[0]
                if not change.deleted:
                    entries.setdefault(subdir, "dir")
                continue
            if change.deleted:
                entries.pop(change.path, None)
            else:
                entries[change.path] = "file"

        if not entries:
            return ToolOutput(f"Directory not found or empty: {directory or '/'}", is_error=True)
        lines = [f"{path}/" if kind == "dir" else path for path, kind in sorted(entries.items())]
        return ToolOutput("\n".join(lines))


class TaskCompleteTool(Tool):
    name = TASK_COMPLETE_TOOL
    description = "Call when the task is finished. All staged changes are committed in one commit."
    input_model = TaskCompleteInput

    async def run(self, params: TaskCompleteInput, context: ToolContext) -> ToolOutput:
        return ToolOutput(f"Task marked complete: {params.summary}")


# ═══════════════════════════════════════════════════════════════
# REGISTRY
# ═══════════════════════════════════════════════════════════════

class ToolRegistry:
    """
    Single dispatch table from tool name to tool.

    Usage:
        registry = ToolRegistry.default()
        result = await registry.execute(tool_use_block, ToolContext(repo, staged))
    """

    def __init__(self, tools: Optional[List[Tool]] = None):
        self._tools: Dict[str, Tool] = {}
        for tool in tools or []:
            self.register(tool)

    @classmethod
    def default(cls) -> "ToolRegistry":
        return cls([
            ReadFileTool(),
            WriteFileTool(),
            CreateFileTool(),
            DeleteFileTool(),
            ListFilesTool(),
            TaskCompleteTool(),
        ])

    def register(self, tool: Tool):
        self._tools[tool.name] = tool

    def names(self) -> List[str]:
        return list(self._tools.keys())

    def schemas(self) -> List[Dict[str, Any]]:
        return [tool.schema() for tool in self._tools.values()]

    async def execute(self, call: ToolUseBlock, context: ToolContext) -> ToolResultBlock:
        """Run one tool call. Never raises: every failure becomes an error-flagged result."""
        output = await self._dispatch(call, context)
        return ToolResultBlock(tool_use_id=call.id, content=output.content, is_error=output.is_error)

    async def _dispatch(self, call: ToolUseBlock, context: ToolContext) -> ToolOutput:
        tool = self._tools.get(call.name)
        if tool is None:
            return ToolOutput(f"Unknown tool: {call.name}. Available: {', '.join(self.names())}", is_error=True)
        try:
            params = tool.parse(call.input)
            return await tool.run(params, context)
        except ToolInputError as e:
            return ToolOutput(str(e), is_error=True)
        except Exception as e:
            logger.warning(f"[Tools] {call.name} failed: {e}")
            return ToolOutput(f"Error in {call.name}: {e}", is_error=True)


def describe_call(call: ToolUseBlock, limit: int = 200) -> str:
    """Short human-readable rendering of a tool call for the log."""
    return f"{call.name}({json.dumps(call.input, ensure_ascii=False)[:limit]})"
