"""Evaluator protocol and outcome types.

Every node kind/subtype has one evaluator. An evaluator is a decision
function of (node definition, execution context) returning an Outcome:

- ``Advance`` - move on to the listed successor(s)
- ``Defer`` - halt until ``resume_at`` (delay nodes only)
- ``Fail`` - the node cannot proceed; the run is failed

Evaluators signal failure by raising ``NodeEvaluationError`` subclasses
or returning ``Fail``; BaseEvaluator turns raised errors into ``Fail``.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Protocol, Union, runtime_checkable

from pulse.core.models import NodeDefinition, NodeKind
from pulse.core.state import ExecutionContext
from pulse.utils.errors import ConfigurationError, NodeEvaluationError


@dataclass
class Advance:
    """Continue to the next node(s).

    Attributes:
        next_node_ids: Selected successors; empty means end of path
        output: Snapshot written to the node's log entry
        variables: Variable updates merged into the execution
        branch: Branch key chosen by a condition node
    """

    next_node_ids: List[str] = field(default_factory=list)
    output: Dict[str, Any] = field(default_factory=dict)
    variables: Dict[str, Any] = field(default_factory=dict)
    branch: Optional[str] = None


@dataclass
class Defer:
    """Halt the execution until ``resume_at``; the node is re-evaluated then."""

    resume_at: datetime
    output: Dict[str, Any] = field(default_factory=dict)


@dataclass
class Fail:
    """The node cannot proceed.

    Attributes:
        error: Human-readable error text, stored verbatim
        code: Machine-readable error code
        output: Snapshot written to the node's log entry
    """

    error: str
    code: str = "node_error"
    output: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_error(cls, error: NodeEvaluationError) -> "Fail":
        return cls(error=error.message, code=error.code)


Outcome = Union[Advance, Defer, Fail]


@runtime_checkable
class Evaluator(Protocol):
    """Protocol every node evaluator implements."""

    kind: NodeKind
    subtypes: tuple

    async def evaluate(self, node: NodeDefinition, context: ExecutionContext) -> Outcome:
        """Decide the outcome of visiting ``node``."""
        ...


class BaseEvaluator(ABC):
    """Base implementation with common functionality.

    Subclasses implement ``_evaluate_impl``. Raised
    ``NodeEvaluationError``s become ``Fail`` outcomes carrying the node's
    identifier and kind.
    """

    kind: NodeKind
    subtypes: tuple = ()

    async def evaluate(self, node: NodeDefinition, context: ExecutionContext) -> Outcome:
        try:
            return await self._evaluate_impl(node, context)
        except NodeEvaluationError as e:
            e.node_id = e.node_id or node.node_id
            e.node_type = e.node_type or node.kind.value
            return Fail.from_error(e)

    @abstractmethod
    async def _evaluate_impl(self, node: NodeDefinition, context: ExecutionContext) -> Outcome:
        pass

    def successors(self, node: NodeDefinition, context: ExecutionContext) -> List[str]:
        """Single-successor resolution shared by trigger, action and delay nodes.

        Raises:
            ConfigurationError: If the node has more than one outgoing edge
        """
        if context.graph is None:
            return []
        children = context.graph.get_children(node.node_id)
        if len(children) > 1:
            raise ConfigurationError(
                f"{node.kind.value} node '{node.node_id}' has {len(children)} outgoing edges; "
                f"only condition nodes may branch",
                code="ambiguous_successor",
            )
        return children

    @staticmethod
    def require(node: NodeDefinition, key: str) -> Any:
        """Get a required config value.

        Raises:
            ConfigurationError: If the key is missing or empty
        """
        value = node.config.get(key)
        if value is None or value == "" or value == []:
            raise ConfigurationError(
                f"{node.kind.value}/{node.subtype} node '{node.node_id}' is missing '{key}'",
                code="missing_config",
            )
        return value

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(kind='{self.kind.value}', subtypes={self.subtypes})"
