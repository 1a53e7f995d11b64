"""Append-only audit trail of node visits.

Each visit of a node writes a ``started`` entry followed by exactly one
``completed`` or ``failed`` entry. Entries are never updated or deleted
while their execution exists; the store assigns the sequence number.
"""

import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import structlog

from pulse.backends.base import ExecutionStore
from pulse.core.models import (
    ExecutionLogEntry,
    LogStatus,
    NodeDefinition,
    utcnow,
)

logger = structlog.get_logger(__name__)


@dataclass
class VisitRecord:
    """Bookkeeping for one open node visit.

    Attributes:
        execution_id: Execution the visit belongs to
        visit: Index of the visit in the execution path
        node: Node being visited
        input: Snapshot written with the started entry
        started_at: Monotonic clock reading used for ``duration_ms``
    """

    execution_id: str
    visit: int
    node: NodeDefinition
    input: Dict[str, Any] = field(default_factory=dict)
    started_at: float = field(default_factory=time.perf_counter)

    @property
    def elapsed_ms(self) -> float:
        return round((time.perf_counter() - self.started_at) * 1000, 3)


class ExecutionLogger:
    """Writes visit entries to an ExecutionStore and mirrors them to structlog.

    Example:
        >>> audit = ExecutionLogger(store)
        >>> visit = await audit.started(execution_id, 0, node, {"event": ...})
        >>> await audit.completed(visit, {"branch": "yes"})
    """

    def __init__(self, store: ExecutionStore):
        self.store = store

    async def started(
        self,
        execution_id: str,
        visit: int,
        node: NodeDefinition,
        input: Optional[Dict[str, Any]] = None,
    ) -> VisitRecord:
        record = VisitRecord(execution_id=execution_id, visit=visit, node=node, input=input or {})
        await self.store.append_log(
            ExecutionLogEntry(
                execution_id=execution_id,
                visit=visit,
                node_id=node.node_id,
                node_type=node.kind,
                node_subtype=node.subtype,
                status=LogStatus.STARTED,
                input=record.input,
                executed_at=utcnow(),
            )
        )
        logger.debug(
            "Node visit started",
            execution_id=execution_id,
            visit=visit,
            node_id=node.node_id,
            node_type=node.kind.value,
            subtype=node.subtype,
        )
        return record

    async def completed(
        self, record: VisitRecord, output: Optional[Dict[str, Any]] = None
    ) -> ExecutionLogEntry:
        entry = await self.store.append_log(
            ExecutionLogEntry(
                execution_id=record.execution_id,
                visit=record.visit,
                node_id=record.node.node_id,
                node_type=record.node.kind,
                node_subtype=record.node.subtype,
                status=LogStatus.COMPLETED,
                input=record.input,
                output=output or {},
                duration_ms=record.elapsed_ms,
                executed_at=utcnow(),
            )
        )
        logger.info(
            "Node visit completed",
            execution_id=record.execution_id,
            visit=record.visit,
            node_id=record.node.node_id,
            duration_ms=entry.duration_ms,
        )
        return entry

    async def failed(
        self,
        record: VisitRecord,
        error: str,
        code: Optional[str] = None,
        output: Optional[Dict[str, Any]] = None,
    ) -> ExecutionLogEntry:
        entry = await self.store.append_log(
            ExecutionLogEntry(
                execution_id=record.execution_id,
                visit=record.visit,
                node_id=record.node.node_id,
                node_type=record.node.kind,
                node_subtype=record.node.subtype,
                status=LogStatus.FAILED,
                input=record.input,
                output=output or {},
                error=error,
                error_code=code,
                duration_ms=record.elapsed_ms,
                executed_at=utcnow(),
            )
        )
        logger.warning(
            "Node visit failed",
            execution_id=record.execution_id,
            visit=record.visit,
            node_id=record.node.node_id,
            error=error,
            error_code=code,
        )
        return entry

    async def entries(self, execution_id: str) -> List[ExecutionLogEntry]:
        """Entries of an execution in write order."""
        return await self.store.get_logs(execution_id)
