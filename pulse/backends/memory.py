"""In-memory stores for testing and development.

State is lost when the process terminates. Each store serializes its
mutations with an asyncio.Lock, which gives the same atomicity the
durable backend gets from SQLite transactions. Records are copied on the
way in and out to avoid external mutations.
"""

import asyncio
from datetime import datetime
from typing import Dict, List, Optional, Sequence

from pulse.backends.base import check_edge_endpoints, graph_from_rows
from pulse.core.graph import AutomationGraph
from pulse.core.models import (
    Automation,
    AutomationStatus,
    EdgeDefinition,
    Execution,
    ExecutionLogEntry,
    ExecutionStatus,
    NodeDefinition,
    NodeKind,
    utcnow,
)
from pulse.utils.errors import ConcurrencyConflict, NotFoundError, ValidationError


def _has_trigger(nodes: Dict[str, NodeDefinition]) -> bool:
    return any(node.kind == NodeKind.TRIGGER for node in nodes.values())


def _is_due(execution: Execution, now: datetime) -> bool:
    """Waiting past its resume time, or running under an expired lease."""
    lease_free = execution.lease_expires_at is None or execution.lease_expires_at <= now
    if execution.status == ExecutionStatus.WAITING:
        return execution.resume_at is not None and execution.resume_at <= now and lease_free
    if execution.status == ExecutionStatus.RUNNING:
        return execution.lease_expires_at is not None and lease_free
    return False


class MemoryGraphStore:
    """In-memory automation, node and edge storage.

    Useful for:
    - Testing
    - Development
    - Single-process deployments without durability needs
    """

    def __init__(self):
        self._automations: Dict[str, Automation] = {}
        self._nodes: Dict[str, Dict[str, NodeDefinition]] = {}
        self._edges: Dict[str, Dict[str, EdgeDefinition]] = {}
        self._lock = asyncio.Lock()

    def _require(self, automation_id: str) -> Automation:
        if automation_id not in self._automations:
            raise NotFoundError("Automation", automation_id)
        return self._automations[automation_id]

    def _touch(self, automation_id: str) -> None:
        automation = self._automations[automation_id]
        self._automations[automation_id] = automation.model_copy(
            update={"graph_version": automation.graph_version + 1, "updated_at": utcnow()}
        )

    async def create_automation(self, automation: Automation) -> Automation:
        async with self._lock:
            if automation.id in self._automations:
                raise ValidationError(f"Automation already exists: {automation.id}")
            self._automations[automation.id] = automation.model_copy(deep=True)
            self._nodes[automation.id] = {}
            self._edges[automation.id] = {}
            return automation.model_copy(deep=True)

    async def get_automation(self, automation_id: str) -> Automation:
        return self._require(automation_id).model_copy(deep=True)

    async def list_automations(self, status: Optional[AutomationStatus] = None) -> List[Automation]:
        return [
            automation.model_copy(deep=True)
            for automation in self._automations.values()
            if status is None or automation.status == status
        ]

    async def set_automation_status(self, automation_id: str, status: AutomationStatus) -> Automation:
        async with self._lock:
            automation = self._require(automation_id)
            updated = automation.model_copy(update={"status": status, "updated_at": utcnow()})
            self._automations[automation_id] = updated
            return updated.model_copy(deep=True)

    async def delete_automation(self, automation_id: str) -> None:
        async with self._lock:
            self._require(automation_id)
            del self._automations[automation_id]
            self._nodes.pop(automation_id, None)
            self._edges.pop(automation_id, None)

    async def upsert_node(self, node: NodeDefinition) -> NodeDefinition:
        async with self._lock:
            self._require(node.automation_id)
            nodes = dict(self._nodes[node.automation_id])
            existing = nodes.get(node.node_id)
            stored = node.model_copy(deep=True)
            if existing is not None:
                stored = stored.model_copy(update={"created_at": existing.created_at, "updated_at": utcnow()})
            nodes[node.node_id] = stored
            if not _has_trigger(nodes):
                raise ValidationError(
                    f"Automation {node.automation_id} must keep at least one trigger node"
                )
            self._nodes[node.automation_id] = nodes
            self._touch(node.automation_id)
            return stored.model_copy(deep=True)

    async def upsert_edge(self, edge: EdgeDefinition) -> EdgeDefinition:
        async with self._lock:
            self._require(edge.automation_id)
            check_edge_endpoints(edge, self._nodes[edge.automation_id])
            edges = self._edges[edge.automation_id]
            for other in edges.values():
                if other.id != edge.id and other.key == edge.key:
                    raise ValidationError(f"Duplicate edge {edge.source} -> {edge.target}")
            edges[edge.id] = edge.model_copy(deep=True)
            self._touch(edge.automation_id)
            return edge.model_copy(deep=True)

    async def delete_node(self, automation_id: str, node_id: str) -> None:
        async with self._lock:
            self._require(automation_id)
            nodes = dict(self._nodes[automation_id])
            if node_id not in nodes:
                raise NotFoundError("Node", node_id)
            del nodes[node_id]
            if not _has_trigger(nodes):
                raise ValidationError(
                    f"Cannot delete '{node_id}': automation {automation_id} must keep a trigger node"
                )
            self._nodes[automation_id] = nodes
            self._edges[automation_id] = {
                edge_id: edge
                for edge_id, edge in self._edges[automation_id].items()
                if node_id not in (edge.source, edge.target)
            }
            self._touch(automation_id)

    async def delete_edge(self, automation_id: str, edge_id: str) -> None:
        async with self._lock:
            self._require(automation_id)
            if edge_id not in self._edges[automation_id]:
                raise NotFoundError("Edge", edge_id)
            del self._edges[automation_id][edge_id]
            self._touch(automation_id)

    async def replace_graph(
        self,
        automation_id: str,
        nodes: List[NodeDefinition],
        edges: List[EdgeDefinition],
    ) -> AutomationGraph:
        async with self._lock:
            automation = self._require(automation_id)
            graph = graph_from_rows(automation, nodes, edges)
            graph.validate()
            self._nodes[automation_id] = {n.node_id: n.model_copy(deep=True) for n in nodes}
            self._edges[automation_id] = {e.id: e.model_copy(deep=True) for e in edges}
            self._touch(automation_id)
        return await self.get_graph(automation_id)

    async def get_graph(self, automation_id: str) -> AutomationGraph:
        automation = self._require(automation_id)
        return graph_from_rows(
            automation.model_copy(deep=True),
            [node.model_copy(deep=True) for node in self._nodes[automation_id].values()],
            [edge.model_copy(deep=True) for edge in self._edges[automation_id].values()],
        )

    async def list_active_automation_ids(self, channel_id: Optional[str] = None) -> List[str]:
        return [
            automation.id
            for automation in self._automations.values()
            if automation.is_active
            and (channel_id is None or automation.channel_id in (None, channel_id))
        ]

    async def record_run(self, automation_id: str, at: datetime) -> None:
        async with self._lock:
            automation = self._require(automation_id)
            self._automations[automation_id] = automation.model_copy(
                update={"execution_count": automation.execution_count + 1, "last_executed_at": at}
            )

    def __repr__(self) -> str:
        return f"MemoryGraphStore(automations={len(self._automations)})"


class MemoryExecutionStore:
    """In-memory execution and log storage."""

    def __init__(self):
        self._executions: Dict[str, Execution] = {}
        self._logs: Dict[str, List[ExecutionLogEntry]] = {}
        self._lock = asyncio.Lock()

    def _require(self, execution_id: str) -> Execution:
        if execution_id not in self._executions:
            raise NotFoundError("Execution", execution_id)
        return self._executions[execution_id]

    async def create_execution(self, execution: Execution) -> Execution:
        async with self._lock:
            if execution.id in self._executions:
                raise ValidationError(f"Execution already exists: {execution.id}")
            self._executions[execution.id] = execution.model_copy(deep=True)
            self._logs[execution.id] = []
            return execution.model_copy(deep=True)

    async def get_execution(self, execution_id: str) -> Execution:
        return self._require(execution_id).model_copy(deep=True)

    async def update_execution(self, execution: Execution) -> Execution:
        async with self._lock:
            stored = self._require(execution.id)
            if stored.version != execution.version:
                raise ConcurrencyConflict(
                    execution.id,
                    f"expected version {execution.version}, found {stored.version}",
                )
            updated = execution.model_copy(update={"version": stored.version + 1}, deep=True)
            self._executions[execution.id] = updated
            return updated.model_copy(deep=True)

    async def claim_execution(
        self, execution_id: str, owner: str, lease_until: datetime, now: datetime
    ) -> Execution:
        async with self._lock:
            stored = self._require(execution_id)
            if stored.is_leased_by_other(owner, now):
                raise ConcurrencyConflict(execution_id, f"leased by {stored.lease_owner}")
            claimed = stored.model_copy(
                update={
                    "lease_owner": owner,
                    "lease_expires_at": lease_until,
                    "version": stored.version + 1,
                },
                deep=True,
            )
            self._executions[execution_id] = claimed
            return claimed.model_copy(deep=True)

    async def list_executions(
        self,
        automation_id: Optional[str] = None,
        status: Optional[ExecutionStatus] = None,
    ) -> List[Execution]:
        matches = [
            execution.model_copy(deep=True)
            for execution in self._executions.values()
            if (automation_id is None or execution.automation_id == automation_id)
            and (status is None or execution.status == status)
        ]
        return sorted(matches, key=lambda e: e.started_at, reverse=True)

    async def list_due_executions(
        self,
        now: datetime,
        limit: int = 100,
        exclude_automation_ids: Optional[Sequence[str]] = None,
    ) -> List[Execution]:
        excluded = set(exclude_automation_ids or ())
        due = [
            execution
            for execution in self._executions.values()
            if _is_due(execution, now) and execution.automation_id not in excluded
        ]
        due.sort(key=lambda e: e.resume_at or e.lease_expires_at)
        return [execution.model_copy(deep=True) for execution in due[:limit]]

    async def append_log(self, entry: ExecutionLogEntry) -> ExecutionLogEntry:
        async with self._lock:
            self._require(entry.execution_id)
            logs = self._logs[entry.execution_id]
            for existing in logs:
                if existing.visit == entry.visit and existing.status == entry.status:
                    raise ConcurrencyConflict(
                        entry.execution_id,
                        f"visit {entry.visit} already has a '{entry.status.value}' entry",
                    )
            stored = entry.model_copy(update={"sequence": len(logs) + 1})
            logs.append(stored)
            return stored

    async def get_logs(self, execution_id: str) -> List[ExecutionLogEntry]:
        return list(self._logs.get(execution_id, []))

    async def delete_execution(self, execution_id: str) -> None:
        async with self._lock:
            self._require(execution_id)
            del self._executions[execution_id]
            self._logs.pop(execution_id, None)

    def clear_all(self) -> None:
        """Clear all stored executions and logs."""
        self._executions.clear()
        self._logs.clear()

    def __repr__(self) -> str:
        return f"MemoryExecutionStore(executions={len(self._executions)})"
