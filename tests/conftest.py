"""Pytest configuration and fixtures for Pulse tests."""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

import pytest

from pulse.backends.memory import MemoryExecutionStore, MemoryGraphStore
from pulse.core.dispatcher import TriggerDispatcher
from pulse.core.engine import ExecutionEngine
from pulse.core.events import InboundEvent
from pulse.core.models import (
    Automation,
    AutomationStatus,
    EdgeDefinition,
    NodeDefinition,
    NodeKind,
)
from pulse.core.queries import ExecutionQueryService
from pulse.transport.base import RecordingSender
from pulse.utils.config import EngineConfig


NOW = datetime(2026, 3, 2, 9, 30, tzinfo=timezone.utc)


def node(automation_id: str, node_id: str, kind: str, subtype: str, **config) -> NodeDefinition:
    """Shorthand for a node definition."""
    return NodeDefinition(
        automation_id=automation_id,
        node_id=node_id,
        kind=NodeKind(kind),
        subtype=subtype,
        config=config,
    )


def edge(automation_id: str, source: str, target: str, branch: Optional[str] = None) -> EdgeDefinition:
    """Shorthand for an edge definition."""
    return EdgeDefinition(automation_id=automation_id, source=source, target=target, branch=branch)


async def create_automation(
    graph_store,
    nodes: List[Tuple[str, str, str, Dict[str, Any]]],
    edges: List[Tuple],
    status: AutomationStatus = AutomationStatus.ACTIVE,
    channel_id: Optional[str] = "ch-1",
    name: str = "Test automation",
) -> Automation:
    """Create an automation and its graph in one call.

    Args:
        graph_store: Store to write to
        nodes: (node_id, kind, subtype, config) tuples
        edges: (source, target) or (source, target, branch) tuples
    """
    automation = await graph_store.create_automation(
        Automation(name=name, channel_id=channel_id, status=status)
    )
    await graph_store.replace_graph(
        automation.id,
        [node(automation.id, node_id, kind, subtype, **config) for node_id, kind, subtype, config in nodes],
        [edge(automation.id, *link) for link in edges],
    )
    return await graph_store.get_automation(automation.id)


def message(text: str = "hello", channel_id: str = "ch-1", contact_id: str = "contact-1") -> InboundEvent:
    """Inbound message event at a fixed time."""
    event = InboundEvent.message(
        text, channel_id=channel_id, contact_id=contact_id, conversation_id="conv-1"
    )
    return event.model_copy(update={"occurred_at": NOW})


@pytest.fixture
def graph_store():
    """Create a fresh in-memory graph store."""
    return MemoryGraphStore()


@pytest.fixture
def execution_store():
    """Create a fresh in-memory execution store."""
    return MemoryExecutionStore()


@pytest.fixture
def sender():
    """Create a recording message sender."""
    return RecordingSender()


@pytest.fixture
def config():
    """Engine config with a small step limit."""
    return EngineConfig(max_steps=50)


@pytest.fixture
def engine(graph_store, execution_store, sender, config):
    """Create an engine over the in-memory stores."""
    return ExecutionEngine(graph_store, execution_store, sender=sender, config=config, worker_id="worker-a")


@pytest.fixture
def dispatcher(engine):
    """Create a dispatcher for the engine."""
    return TriggerDispatcher(engine)


@pytest.fixture
def queries(execution_store):
    """Create the read-only query service."""
    return ExecutionQueryService(execution_store)
