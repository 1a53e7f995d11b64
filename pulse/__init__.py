"""
Pulse: automation execution engine for messaging platforms

Pulse runs user-authored automation graphs (trigger, condition, action
and delay nodes) in response to conversational events. Executions are
persisted after every step, resumed after delays by a scheduler, and
leave an append-only audit log of every node visit.

Example:
    >>> from pulse import (
    ...     ExecutionEngine, TriggerDispatcher, InboundEvent,
    ...     MemoryGraphStore, MemoryExecutionStore, RecordingSender,
    ... )
    >>>
    >>> graphs, executions = MemoryGraphStore(), MemoryExecutionStore()
    >>> engine = ExecutionEngine(graphs, executions, sender=RecordingSender())
    >>> dispatcher = TriggerDispatcher(engine)
    >>>
    >>> started = await dispatcher.on_event(
    ...     InboundEvent.message("hello", channel_id="ch-1", contact_id="c-1")
    ... )
    >>> [execution.status for execution in started]
"""

__version__ = "0.1.0"

# Records
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

# Execution
from pulse.core.logger import ExecutionLogger
from pulse.core.engine import ExecutionEngine
from pulse.core.dispatcher import TriggerDispatcher
from pulse.core.scheduler import Scheduler
from pulse.core.queries import ExecutionQueryService

# Evaluators
from pulse.nodes.base import Advance, Defer, Fail, Outcome
from pulse.utils.registry import EvaluatorRegistry

# Backends
from pulse.backends.base import ExecutionStore, GraphStore
from pulse.backends.memory import MemoryExecutionStore, MemoryGraphStore
from pulse.backends.sqlite import SQLiteExecutionStore, SQLiteGraphStore

# Transport
from pulse.transport.base import MessageSender, RecordingSender, SendResult
from pulse.transport.http import HttpMessageSender

# Parsers
from pulse.parsers.react_flow import ReactFlowParser

# Configuration and errors
from pulse.utils.config import EngineConfig, load_env
from pulse.utils.logging import configure_logging
from pulse.utils.errors import (
    CapabilityError,
    ConcurrencyConflict,
    ConfigurationError,
    InvalidNodeTypeError,
    NodeEvaluationError,
    NotFoundError,
    PulseError,
    ValidationError,
)

__all__ = [
    # Version
    "__version__",
    # Records
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
    # Execution
    "ExecutionLogger",
    "ExecutionEngine",
    "TriggerDispatcher",
    "Scheduler",
    "ExecutionQueryService",
    # Evaluators
    "Advance",
    "Defer",
    "Fail",
    "Outcome",
    "EvaluatorRegistry",
    # Backends
    "ExecutionStore",
    "GraphStore",
    "MemoryExecutionStore",
    "MemoryGraphStore",
    "SQLiteExecutionStore",
    "SQLiteGraphStore",
    # Transport
    "MessageSender",
    "RecordingSender",
    "SendResult",
    "HttpMessageSender",
    # Parsers
    "ReactFlowParser",
    # Configuration and errors
    "EngineConfig",
    "load_env",
    "configure_logging",
    "CapabilityError",
    "ConcurrencyConflict",
    "ConfigurationError",
    "InvalidNodeTypeError",
    "NodeEvaluationError",
    "NotFoundError",
    "PulseError",
    "ValidationError",
]
