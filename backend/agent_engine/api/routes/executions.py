"""
Execution routes: start, control and inspect executions.
"""
import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status

from agent_engine.api.dependencies import get_controller
from agent_engine.models.execution import ExecutionStatus
from agent_engine.schemas.execution import (
    EngineLogRead,
    ExecutionActionResponse,
    ExecutionRead,
    ExecutionStartRequest,
    ExecutionStartResponse,
)
from agent_engine.services.execution_controller import (
    ExecutionController,
    MissingConfigurationError,
    UnknownAgentError,
)
from agent_engine.services.execution_store import (
    ExecutionConflictError,
    ExecutionNotFoundError,
    InvalidTransitionError,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/executions", tags=["Executions"])


def _not_found(e: ExecutionNotFoundError) -> HTTPException:
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))


def _conflict(e: InvalidTransitionError) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_409_CONFLICT,
        detail=f"Cannot change execution from {e.current} to {e.target}",
    )


@router.post("", response_model=ExecutionStartResponse, status_code=status.HTTP_202_ACCEPTED)
async def start_execution(
    request: ExecutionStartRequest,
    controller: ExecutionController = Depends(get_controller),
):
    """Start an execution; the first step runs on the worker."""
    try:
        result = await controller.start(
            task_id=request.task_id,
            agent_name=request.agent_name,
            task_title=request.task_title,
            task_description=request.task_description,
            priority=request.priority,
            labels=request.labels,
            model=request.model,
            branch=request.branch,
        )
    except UnknownAgentError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except MissingConfigurationError as e:
        logger.error(f"[API] Cannot start execution: {e}")
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(e))
    except ExecutionConflictError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))

    return ExecutionStartResponse(
        execution_id=result["execution_id"],
        status=result["status"],
        message="Execution started. Poll the execution or its logs to track progress.",
    )


@router.post("/{execution_id}/stop", response_model=ExecutionActionResponse)
def stop_execution(execution_id: int, controller: ExecutionController = Depends(get_controller)):
    """Request cancellation; takes effect at the next step."""
    try:
        return controller.stop(execution_id)
    except ExecutionNotFoundError as e:
        raise _not_found(e)
    except InvalidTransitionError as e:
        raise _conflict(e)


@router.post("/{execution_id}/pause", response_model=ExecutionActionResponse)
def pause_execution(execution_id: int, controller: ExecutionController = Depends(get_controller)):
    try:
        return controller.pause(execution_id)
    except ExecutionNotFoundError as e:
        raise _not_found(e)
    except InvalidTransitionError as e:
        raise _conflict(e)


@router.post("/{execution_id}/resume", response_model=ExecutionActionResponse)
async def resume_execution(execution_id: int, controller: ExecutionController = Depends(get_controller)):
    try:
        return await controller.resume(execution_id)
    except ExecutionNotFoundError as e:
        raise _not_found(e)
    except InvalidTransitionError as e:
        raise _conflict(e)


@router.get("", response_model=List[ExecutionRead])
def list_executions(
    status_filter: Optional[ExecutionStatus] = Query(None, alias="status"),
    limit: int = Query(20, ge=1, le=200),
    controller: ExecutionController = Depends(get_controller),
):
    """Most recent executions first."""
    return controller.list_executions(
        status=status_filter.value if status_filter else None,
        limit=limit,
    )


@router.get("/{execution_id}", response_model=ExecutionRead)
def get_execution(execution_id: int, controller: ExecutionController = Depends(get_controller)):
    try:
        return controller.get_execution(execution_id)
    except ExecutionNotFoundError as e:
        raise _not_found(e)


@router.get("/{execution_id}/logs", response_model=List[EngineLogRead])
def get_execution_logs(
    execution_id: int,
    limit: int = Query(100, ge=1, le=1000),
    controller: ExecutionController = Depends(get_controller),
):
    """Latest ``limit`` log entries in chronological order."""
    try:
        return controller.get_logs(execution_id, limit=limit)
    except ExecutionNotFoundError as e:
        raise _not_found(e)
