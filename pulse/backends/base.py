"""Protocols for the graph and execution stores.

The engine treats persistence as an abstract store. Backends must make
each method atomic: a write either fully applies or leaves stored state
unchanged.
"""

from datetime import datetime
from typing import Dict, List, Optional, Protocol, Sequence, runtime_checkable

from pulse.core.graph import AutomationGraph
from pulse.core.models import (
    Automation,
    AutomationStatus,
    EdgeDefinition,
    Execution,
    ExecutionLogEntry,
    ExecutionStatus,
    NodeDefinition,
)
from pulse.utils.errors import ValidationError


@runtime_checkable
class GraphStore(Protocol):
    """Automations and their node/edge definitions."""

    async def create_automation(self, automation: Automation) -> Automation:
        ...

    async def get_automation(self, automation_id: str) -> Automation:
        """Raises NotFoundError if absent."""
        ...

    async def list_automations(self, status: Optional[AutomationStatus] = None) -> List[Automation]:
        ...

    async def set_automation_status(self, automation_id: str, status: AutomationStatus) -> Automation:
        ...

    async def delete_automation(self, automation_id: str) -> None:
        """Delete an automation with its nodes and edges. Executions are kept."""
        ...

    async def upsert_node(self, node: NodeDefinition) -> NodeDefinition:
        """Insert or replace a node by (automation_id, node_id).

        Raises:
            NotFoundError: If the automation does not exist
            ValidationError: If the write would leave the automation
                without a trigger node
        """
        ...

    async def upsert_edge(self, edge: EdgeDefinition) -> EdgeDefinition:
        """Insert or replace an edge by id.

        Raises:
            ValidationError: If an endpoint is not a node of the same automation
        """
        ...

    async def delete_node(self, automation_id: str, node_id: str) -> None:
        """Delete a node and every edge touching it."""
        ...

    async def delete_edge(self, automation_id: str, edge_id: str) -> None:
        ...

    async def replace_graph(
        self,
        automation_id: str,
        nodes: List[NodeDefinition],
        edges: List[EdgeDefinition],
    ) -> AutomationGraph:
        """Atomically replace an automation's whole graph after validating it."""
        ...

    async def get_graph(self, automation_id: str) -> AutomationGraph:
        """Raises NotFoundError if the automation is absent."""
        ...

    async def list_active_automation_ids(self, channel_id: Optional[str] = None) -> List[str]:
        """Active automations for a channel (plus channel-less ones)."""
        ...

    async def record_run(self, automation_id: str, at: datetime) -> None:
        """Increment the execution counter and set the last-executed time."""
        ...


@runtime_checkable
class ExecutionStore(Protocol):
    """Execution records and their append-only logs."""

    async def create_execution(self, execution: Execution) -> Execution:
        ...

    async def get_execution(self, execution_id: str) -> Execution:
        """Raises NotFoundError if absent."""
        ...

    async def update_execution(self, execution: Execution) -> Execution:
        """Compare-and-swap on ``execution.version``.

        Returns the stored copy with the version incremented.

        Raises:
            ConcurrencyConflict: If the stored version differs
        """
        ...

    async def claim_execution(
        self, execution_id: str, owner: str, lease_until: datetime, now: datetime
    ) -> Execution:
        """Take the lease on an execution.

        Raises:
            ConcurrencyConflict: If another owner holds a live lease
            NotFoundError: If the execution does not exist
        """
        ...

    async def list_executions(
        self,
        automation_id: Optional[str] = None,
        status: Optional[ExecutionStatus] = None,
    ) -> List[Execution]:
        """Executions newest first."""
        ...

    async def list_due_executions(
        self,
        now: datetime,
        limit: int = 100,
        exclude_automation_ids: Optional[Sequence[str]] = None,
    ) -> List[Execution]:
        """Executions ready for a resume sweep.

        These are waiting executions whose resume time has passed and whose
        lease is free, plus running executions whose lease expired because
        their worker stopped mid-turn. Executions of the automations in
        ``exclude_automation_ids`` are skipped before ``limit`` applies.
        """
        ...

    async def append_log(self, entry: ExecutionLogEntry) -> ExecutionLogEntry:
        """Append an entry; the store assigns the next sequence number."""
        ...

    async def get_logs(self, execution_id: str) -> List[ExecutionLogEntry]:
        """Entries in sequence order."""
        ...

    async def delete_execution(self, execution_id: str) -> None:
        """Delete an execution and its logs."""
        ...


def graph_from_rows(
    automation: Automation,
    nodes: List[NodeDefinition],
    edges: List[EdgeDefinition],
) -> AutomationGraph:
    """Build the adjacency view from stored rows."""
    return AutomationGraph.from_nodes_and_edges(automation, nodes, edges)


def check_edge_endpoints(edge: EdgeDefinition, node_ids: Dict[str, NodeDefinition]) -> None:
    """Raise ValidationError unless both endpoints exist in the automation."""
    for endpoint in (edge.source, edge.target):
        if endpoint not in node_ids:
            raise ValidationError(
                f"Edge {edge.source} -> {edge.target}: node '{endpoint}' does not exist "
                f"in automation {edge.automation_id}"
            )
