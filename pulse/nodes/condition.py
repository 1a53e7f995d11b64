"""Condition node evaluators for conditional branching.

A condition node selects exactly one of its outgoing edges. Edges leaving
a condition node are labelled with a branch key; the evaluator picks the
first branch whose predicate holds, falls back to the default branch when
one is configured, and otherwise fails the run with "no matching branch".

Supported operators:
    - equals / not_equals
    - contains / not_contains (strings and lists)
    - starts_with / ends_with
    - greater_than / less_than (numeric)
    - in / not_in (value is a list)
    - is_empty / is_not_empty (None, "", [], {})
    - regex
"""

import re
from abc import abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from pulse.core.models import NodeDefinition, NodeKind
from pulse.core.state import ExecutionContext
from pulse.nodes.base import Advance, BaseEvaluator, Outcome
from pulse.utils.errors import ConfigurationError
from pulse.utils.variables import VariableResolver


def _as_number(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _is_empty(value: Any) -> bool:
    return value is None or value == "" or value == [] or value == {}


def _equals(left: Any, right: Any) -> bool:
    if left == right:
        return True
    left_num, right_num = _as_number(left), _as_number(right)
    if left_num is not None and right_num is not None:
        return left_num == right_num
    return str(left) == str(right) if left is not None and right is not None else False


def _contains(left: Any, right: Any) -> bool:
    if isinstance(left, (list, tuple, set)):
        return right in left
    if left is None:
        return False
    return str(right) in str(left)


def _compare(left: Any, right: Any, op) -> bool:
    left_num, right_num = _as_number(left), _as_number(right)
    if left_num is None or right_num is None:
        return False
    return op(left_num, right_num)


def _regex(left: Any, pattern: Any) -> bool:
    if left is None:
        return False
    try:
        return re.search(str(pattern), str(left)) is not None
    except re.error as e:
        raise ConfigurationError(f"Invalid regex '{pattern}': {e}", code="invalid_config")


OPERATORS = {
    "equals": _equals,
    "not_equals": lambda left, right: not _equals(left, right),
    "contains": _contains,
    "not_contains": lambda left, right: not _contains(left, right),
    "starts_with": lambda left, right: left is not None and str(left).startswith(str(right)),
    "ends_with": lambda left, right: left is not None and str(left).endswith(str(right)),
    "greater_than": lambda left, right: _compare(left, right, lambda a, b: a > b),
    "less_than": lambda left, right: _compare(left, right, lambda a, b: a < b),
    "in": lambda left, right: isinstance(right, (list, tuple)) and left in right,
    "not_in": lambda left, right: isinstance(right, (list, tuple)) and left not in right,
    "is_empty": lambda left, right: _is_empty(left),
    "is_not_empty": lambda left, right: not _is_empty(left),
    "regex": _regex,
}


@dataclass
class SimpleCondition:
    """One comparison of a context field against a value.

    Attributes:
        field: Path into the context scope (e.g. "variables.age", "trigger.text")
        operator: Name of an entry in OPERATORS
        value: Right-hand operand; strings may contain {{templates}}

    Example:
        >>> SimpleCondition.from_config({"field": "variables.age", "operator": "greater_than", "value": 17})
    """

    field: str
    operator: str
    value: Any = None

    @classmethod
    def from_config(cls, data: Dict[str, Any], node_id: str = "") -> "SimpleCondition":
        if not isinstance(data, dict) or "field" not in data:
            raise ConfigurationError(
                f"Condition in node '{node_id}' must be an object with a 'field'",
                code="invalid_config",
            )
        operator = data.get("operator", "equals")
        if operator not in OPERATORS:
            raise ConfigurationError(
                f"Unknown operator '{operator}' in node '{node_id}'. "
                f"Available operators: {', '.join(OPERATORS)}",
                code="invalid_config",
            )
        return cls(field=data["field"], operator=operator, value=data.get("value"))

    def evaluate(self, resolver: VariableResolver) -> bool:
        left = resolver.lookup(self.field)
        right = resolver.resolve_all(self.value)
        return OPERATORS[self.operator](left, right)


def evaluate_group(
    conditions: List[Dict[str, Any]],
    match: str,
    resolver: VariableResolver,
    node_id: str = "",
) -> bool:
    """Evaluate a list of condition configs joined by ``match`` ("all" or "any")."""
    if match not in ("all", "any"):
        raise ConfigurationError(
            f"Node '{node_id}': match must be 'all' or 'any', got '{match}'",
            code="invalid_config",
        )
    parsed = [SimpleCondition.from_config(c, node_id) for c in conditions]
    if not parsed:
        return False
    results = (c.evaluate(resolver) for c in parsed)
    return all(results) if match == "all" else any(results)


class ConditionEvaluator(BaseEvaluator):
    """Shared branch selection for condition subtypes."""

    kind = NodeKind.CONDITION

    @abstractmethod
    def select_branch(self, node: NodeDefinition, context: ExecutionContext) -> Optional[str]:
        pass

    def default_branch(self, node: NodeDefinition) -> Optional[str]:
        return node.config.get("default_branch")

    async def _evaluate_impl(self, node: NodeDefinition, context: ExecutionContext) -> Outcome:
        branch = self.select_branch(node, context)
        used_default = False
        if branch is None:
            branch = self.default_branch(node)
            used_default = branch is not None
        if branch is None:
            raise ConfigurationError(
                f"Condition node '{node.node_id}': no matching branch and no default branch",
                code="no_matching_branch",
            )

        edge = context.graph.edge_for_branch(node.node_id, branch) if context.graph else None
        if edge is None:
            raise ConfigurationError(
                f"Condition node '{node.node_id}': branch '{branch}' has no outgoing edge",
                code="no_matching_branch",
            )

        return Advance(
            next_node_ids=[edge.target],
            output={"branch": branch, "default": used_default, "target": edge.target},
            branch=branch,
        )


class BranchCondition(ConditionEvaluator):
    """Multi-way branch; first matching branch wins.

    Config:
        branches: [{"key": "vip", "conditions": [...], "match": "all"}, ...]
        default_branch: Branch key used when nothing matches (optional)

    Example:
        >>> node.config = {
        ...     "branches": [
        ...         {"key": "yes", "conditions": [{"field": "trigger.text", "operator": "equals", "value": "yes"}]},
        ...         {"key": "no", "conditions": [{"field": "trigger.text", "operator": "equals", "value": "no"}]},
        ...     ],
        ...     "default_branch": "other",
        ... }
    """

    subtypes = ("branch", "switch")

    def select_branch(self, node: NodeDefinition, context: ExecutionContext) -> Optional[str]:
        branches = node.config.get("branches")
        if not isinstance(branches, list) or not branches:
            raise ConfigurationError(
                f"Condition node '{node.node_id}' must define a non-empty 'branches' list",
                code="invalid_config",
            )

        resolver = VariableResolver(context)
        for branch in branches:
            if not isinstance(branch, dict) or not branch.get("key"):
                raise ConfigurationError(
                    f"Condition node '{node.node_id}': every branch needs a 'key'",
                    code="invalid_config",
                )
            if evaluate_group(
                branch.get("conditions", []),
                branch.get("match", "all"),
                resolver,
                node.node_id,
            ):
                return str(branch["key"])
        return None


class IfElseCondition(ConditionEvaluator):
    """Two-way branch on a condition group; branches are "true" and "false".

    Config:
        conditions: List of {field, operator, value}
        match: "all" (default) or "any"
    """

    subtypes = ("if_else", "compare")

    def select_branch(self, node: NodeDefinition, context: ExecutionContext) -> Optional[str]:
        conditions = node.config.get("conditions")
        if not isinstance(conditions, list) or not conditions:
            raise ConfigurationError(
                f"Condition node '{node.node_id}' must define a non-empty 'conditions' list",
                code="invalid_config",
            )
        result = evaluate_group(
            conditions, node.config.get("match", "all"), VariableResolver(context), node.node_id
        )
        return "true" if result else "false"
