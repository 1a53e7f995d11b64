"""Evaluator registry keyed by (kind, subtype).

Node definitions carry a kind and a free-form subtype string; the
registry maps that pair to an evaluator implementation so the engine
never branches on type strings itself.
"""

from typing import Dict, List, Optional, Tuple

from pulse.core.models import NodeDefinition, NodeKind
from pulse.nodes.base import Evaluator
from pulse.utils.errors import InvalidNodeTypeError


class EvaluatorRegistry:
    """Registry of node evaluators.

    Example:
        >>> registry = EvaluatorRegistry()
        >>> registry.register(MyCrmLookupAction())
        >>> evaluator = registry.get(NodeKind.ACTION, "crm_lookup")
    """

    def __init__(self, include_builtins: bool = True):
        self._evaluators: Dict[Tuple[NodeKind, str], Evaluator] = {}
        if include_builtins:
            self._register_builtin_evaluators()

    def _register_builtin_evaluators(self) -> None:
        """Register built-in evaluators."""
        from pulse.nodes.action import SendMessageAction, SendTemplateAction, SetVariableAction
        from pulse.nodes.condition import BranchCondition, IfElseCondition
        from pulse.nodes.delay import WaitCronDelay, WaitDelay, WaitUntilDelay
        from pulse.nodes.trigger import (
            KeywordMatchTrigger,
            MessageReceivedTrigger,
            ScheduleTrigger,
            WebhookTrigger,
        )

        for evaluator in (
            MessageReceivedTrigger(),
            KeywordMatchTrigger(),
            ScheduleTrigger(),
            WebhookTrigger(),
            BranchCondition(),
            IfElseCondition(),
            SendMessageAction(),
            SendTemplateAction(),
            SetVariableAction(),
            WaitDelay(),
            WaitUntilDelay(),
            WaitCronDelay(),
        ):
            self.register(evaluator)

    def register(self, evaluator: Evaluator, subtypes: Optional[List[str]] = None) -> None:
        """Register an evaluator for each of its subtypes.

        Args:
            evaluator: Evaluator instance
            subtypes: Override the evaluator's own ``subtypes``
        """
        for subtype in subtypes or evaluator.subtypes:
            self._evaluators[(NodeKind(evaluator.kind), subtype)] = evaluator

    def get(self, kind: NodeKind, subtype: str) -> Evaluator:
        """Get the evaluator for a (kind, subtype) pair.

        Raises:
            InvalidNodeTypeError: If nothing is registered for the pair
        """
        key = (NodeKind(kind), subtype)
        if key not in self._evaluators:
            available = ", ".join(s for k, s in self._evaluators if k == key[0])
            raise InvalidNodeTypeError(
                f"No evaluator registered for {key[0].value}/{subtype}. "
                f"Available {key[0].value} subtypes: {available or 'none'}"
            )
        return self._evaluators[key]

    def for_node(self, node: NodeDefinition) -> Evaluator:
        """Get the evaluator for a node definition.

        Raises:
            InvalidNodeTypeError: If nothing is registered for the node
        """
        try:
            return self.get(node.kind, node.subtype)
        except InvalidNodeTypeError as e:
            e.node_id = node.node_id
            e.node_type = node.kind.value
            raise

    def has(self, kind: NodeKind, subtype: str) -> bool:
        return (NodeKind(kind), subtype) in self._evaluators

    def list_subtypes(self, kind: NodeKind) -> List[str]:
        return [subtype for k, subtype in self._evaluators if k == NodeKind(kind)]

    def __repr__(self) -> str:
        return f"EvaluatorRegistry(evaluators={len(self._evaluators)})"
