"""
Engine Log Sink - append-only record of every step.

Each entry is committed on its own so dashboards polling the table see
progress while a step is still running. Entries are never updated.
"""
import logging
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from agent_engine.models.engine_log import EngineLog, LogType

logger = logging.getLogger(__name__)

MAX_CONTENT_LENGTH = 10000
TOOL_CALL_PREVIEW = 200
TOOL_RESULT_PREVIEW = 500
DEFAULT_LOG_LIMIT = 100


def truncate(text: str, limit: int) -> str:
    if len(text) <= limit:
        return text
    return text[:limit] + f"... [truncated {len(text) - limit} chars]"


class EngineLogSink:
    """
    Writes and reads engine log entries.

    Usage:
        sink = EngineLogSink(db)
        sink.write(execution_id, step, LogType.SYSTEM, "Starting")
    """

    def __init__(self, db: Session):
        self.db = db

    def write(
        self,
        execution_id: int,
        step: int,
        log_type: LogType,
        content: str,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> EngineLog:
        entry = EngineLog(
            execution_id=execution_id,
            step=step,
            type=log_type,
            content=truncate(content or "", MAX_CONTENT_LENGTH),
            log_metadata=metadata,
        )
        try:
            self.db.add(entry)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        level = logging.ERROR if log_type == LogType.ERROR else logging.INFO
        logger.log(
            level,
            f"[Engine] exec={execution_id} step={step} {log_type.value}: {truncate(entry.content, 300)}",
            extra={"execution_id": execution_id, "step": step},
        )
        return entry

    def list_for_execution(self, execution_id: int, limit: int = DEFAULT_LOG_LIMIT) -> List[EngineLog]:
        """Latest ``limit`` entries, returned oldest first."""
        latest = (
            self.db.query(EngineLog)
            .filter(EngineLog.execution_id == execution_id)
            .order_by(EngineLog.id.desc())
            .limit(limit)
            .all()
        )
        return list(reversed(latest))
