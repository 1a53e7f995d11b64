"""Custom error classes for Pulse."""

from typing import Optional


class PulseError(Exception):
    """Base exception for all Pulse errors."""

    pass


class ValidationError(PulseError):
    """Raised when an authoring write would break a graph invariant.

    The store rejects the whole write; nothing is persisted.
    """

    pass


class NotFoundError(PulseError):
    """Raised when an automation, execution or node does not exist."""

    def __init__(self, kind: str, identifier: str):
        self.kind = kind
        self.identifier = identifier
        super().__init__(f"{kind} not found: {identifier}")


class ConcurrencyConflict(PulseError):
    """Raised when another worker holds or has changed an execution.

    The caller must reload the execution and retry from fresh state.
    """

    def __init__(self, execution_id: str, message: str = "execution was modified concurrently"):
        self.execution_id = execution_id
        super().__init__(f"Execution '{execution_id}': {message}")


class NodeEvaluationError(PulseError):
    """Base class for failures raised while evaluating a node."""

    code = "node_error"

    def __init__(
        self,
        message: str,
        node_id: Optional[str] = None,
        node_type: Optional[str] = None,
        code: Optional[str] = None,
    ):
        self.message = message
        self.node_id = node_id
        self.node_type = node_type
        if code:
            self.code = code
        super().__init__(message)


class ConfigurationError(NodeEvaluationError):
    """Malformed node/edge graph, unknown node kind or missing branch.

    Always terminal for the execution.
    """

    code = "configuration_error"


class CapabilityError(NodeEvaluationError):
    """The injected action capability (message transport) reported a failure."""

    code = "capability_error"


class InvalidNodeTypeError(ConfigurationError):
    """Raised when no evaluator is registered for a (kind, subtype) pair."""

    code = "unknown_node_type"
