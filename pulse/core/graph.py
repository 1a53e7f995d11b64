"""Adjacency structure for one automation's graph.

An AutomationGraph is built once per load from the stored node and edge
rows and reused for every hop within an engine turn, rather than
re-querying the store per transition.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional

from pulse.core.models import Automation, EdgeDefinition, NodeDefinition, NodeKind
from pulse.utils.errors import ValidationError


@dataclass
class AutomationGraph:
    """Compiled, read-only view of an automation's nodes and edges.

    Attributes:
        automation: The owning automation record at load time
        nodes: Mapping of node identifiers to node definitions
        edges: All edges, in authoring order
        outgoing: Mapping of node identifiers to their ordered outgoing edges
        incoming: Mapping of node identifiers to the identifiers of their parents
    """

    automation: Automation
    nodes: Dict[str, NodeDefinition]
    edges: List[EdgeDefinition]
    outgoing: Dict[str, List[EdgeDefinition]] = field(default_factory=dict)
    incoming: Dict[str, List[str]] = field(default_factory=dict)

    @classmethod
    def from_nodes_and_edges(
        cls,
        automation: Automation,
        nodes: List[NodeDefinition],
        edges: List[EdgeDefinition],
    ) -> "AutomationGraph":
        """Build the adjacency maps.

        Args:
            automation: Owning automation
            nodes: Node definitions
            edges: Edge definitions

        Returns:
            AutomationGraph with adjacency computed

        Raises:
            ValidationError: If node identifiers repeat or an edge
                references a node outside this automation
        """
        node_map: Dict[str, NodeDefinition] = {}
        for node in nodes:
            if node.node_id in node_map:
                raise ValidationError(
                    f"Duplicate node identifier '{node.node_id}' in automation {automation.id}"
                )
            if node.automation_id != automation.id:
                raise ValidationError(
                    f"Node '{node.node_id}' belongs to automation {node.automation_id}, "
                    f"not {automation.id}"
                )
            node_map[node.node_id] = node

        outgoing: Dict[str, List[EdgeDefinition]] = {node_id: [] for node_id in node_map}
        incoming: Dict[str, List[str]] = {node_id: [] for node_id in node_map}

        for edge in edges:
            if edge.automation_id != automation.id:
                raise ValidationError(
                    f"Edge {edge.source} -> {edge.target} belongs to another automation"
                )
            if edge.source not in node_map:
                raise ValidationError(f"Edge references non-existent source node: {edge.source}")
            if edge.target not in node_map:
                raise ValidationError(f"Edge references non-existent target node: {edge.target}")
            outgoing[edge.source].append(edge)
            incoming[edge.target].append(edge.source)

        return cls(
            automation=automation,
            nodes=node_map,
            edges=list(edges),
            outgoing=outgoing,
            incoming=incoming,
        )

    def validate(self) -> None:
        """Check the whole-graph invariants.

        Dangling and terminal nodes are valid; only the presence of a
        trigger node and duplicate edges are checked here.

        Raises:
            ValidationError: If validation fails
        """
        if not self.trigger_nodes():
            raise ValidationError(
                f"Automation {self.automation.id} must have at least one trigger node"
            )

        seen = set()
        for edge in self.edges:
            if edge.key in seen:
                raise ValidationError(
                    f"Duplicate edge {edge.source} -> {edge.target}"
                    + (f" (branch '{edge.branch}')" if edge.branch else "")
                )
            seen.add(edge.key)

    def trigger_nodes(self) -> List[NodeDefinition]:
        """Trigger nodes in authoring order."""
        return [node for node in self.nodes.values() if node.kind == NodeKind.TRIGGER]

    def get_node(self, node_id: str) -> NodeDefinition:
        """Get a node by identifier.

        Raises:
            KeyError: If node does not exist
        """
        return self.nodes[node_id]

    def has_node(self, node_id: str) -> bool:
        return node_id in self.nodes

    def get_outgoing(self, node_id: str) -> List[EdgeDefinition]:
        """Outgoing edges of a node, in authoring order."""
        return self.outgoing.get(node_id, [])

    def get_children(self, node_id: str) -> List[str]:
        """Target identifiers of a node's outgoing edges."""
        return [edge.target for edge in self.get_outgoing(node_id)]

    def get_parents(self, node_id: str) -> List[str]:
        return self.incoming.get(node_id, [])

    def is_terminal(self, node_id: str) -> bool:
        """A node with no outgoing edges ends the path."""
        return not self.get_outgoing(node_id)

    def edge_for_branch(self, node_id: str, branch: str) -> Optional[EdgeDefinition]:
        """First outgoing edge of ``node_id`` labelled with ``branch``."""
        for edge in self.get_outgoing(node_id):
            if edge.branch == branch:
                return edge
        return None

    @property
    def version(self) -> int:
        return self.automation.graph_version
