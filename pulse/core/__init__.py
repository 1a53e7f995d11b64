"""Core records, graph structure and execution components."""

from pulse.core.models import (
    Automation,
    AutomationStatus,
    EdgeDefinition,
    Execution,
    ExecutionLogEntry,
    ExecutionStatus,
    LogStatus,
    NodeDefinition,
    NodeKind,
)
from pulse.core.graph import AutomationGraph
from pulse.core.events import EventType, InboundEvent
from pulse.core.state import ExecutionContext

__all__ = [
    "Automation",
    "AutomationStatus",
    "EdgeDefinition",
    "Execution",
    "ExecutionLogEntry",
    "ExecutionStatus",
    "LogStatus",
    "NodeDefinition",
    "NodeKind",
    "AutomationGraph",
    "EventType",
    "InboundEvent",
    "ExecutionContext",
]
