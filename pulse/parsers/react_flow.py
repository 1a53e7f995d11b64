"""React Flow JSON parser for the automation builder.

The builder saves graphs in React Flow's shape: a list of nodes with
``position``/``measured`` layout hints and a ``data`` object holding the
node's configuration, plus a list of edges whose ``sourceHandle`` names
the condition branch they leave from. Older payloads list successors in
each node's ``connections`` array instead of (or as well as) edges.
"""

from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError

from pulse.core.graph import AutomationGraph
from pulse.core.models import Automation, EdgeDefinition, NodeDefinition, NodeKind
from pulse.utils.errors import ValidationError


class ReactFlowNode(BaseModel):
    """Schema for a node in React Flow JSON."""

    model_config = ConfigDict(populate_by_name=True)

    id: str
    type: str
    subtype: Optional[str] = None
    data: Dict[str, Any] = Field(default_factory=dict)
    position: Optional[Dict[str, float]] = None
    measured: Optional[Dict[str, float]] = None
    connections: List[str] = Field(default_factory=list)


class ReactFlowEdge(BaseModel):
    """Schema for an edge in React Flow JSON."""

    model_config = ConfigDict(populate_by_name=True)

    id: Optional[str] = None
    source: str
    target: str
    source_handle: Optional[str] = Field(None, alias="sourceHandle")
    animated: bool = False


class ReactFlowJSON(BaseModel):
    """Schema for a saved builder graph."""

    nodes: List[ReactFlowNode]
    edges: List[ReactFlowEdge] = Field(default_factory=list)
    viewport: Optional[Dict[str, float]] = None


class ReactFlowParser:
    """Parse builder JSON into node and edge definitions.

    Node ``type`` selects the kind (``trigger``, ``action``, ``condition``,
    ``delay`` or a builder component name from ``NODE_TYPE_MAP``); the
    subtype comes from the node's ``subtype`` or ``data.subtype``. The
    configuration is ``data.config`` when present, otherwise ``data``
    without its display-only keys.

    Example:
        >>> parser = ReactFlowParser()
        >>> nodes, edges = parser.parse(flow_json, automation_id="a-1")
        >>> await graph_store.replace_graph("a-1", nodes, edges)
    """

    NODE_TYPE_MAP = {
        "trigger": NodeKind.TRIGGER,
        "triggerNode": NodeKind.TRIGGER,
        "action": NodeKind.ACTION,
        "actionNode": NodeKind.ACTION,
        "condition": NodeKind.CONDITION,
        "conditionNode": NodeKind.CONDITION,
        "delay": NodeKind.DELAY,
        "delayNode": NodeKind.DELAY,
    }

    DISPLAY_KEYS = ("label", "subtype", "icon", "description")

    def parse(
        self, json_data: Dict[str, Any], automation_id: str
    ) -> Tuple[List[NodeDefinition], List[EdgeDefinition]]:
        """Parse builder JSON.

        Args:
            json_data: React Flow JSON dictionary
            automation_id: Automation the graph belongs to

        Returns:
            Tuple of (nodes, edges) ready for ``GraphStore.replace_graph``

        Raises:
            ValidationError: If the JSON structure or graph is invalid
        """
        try:
            flow = ReactFlowJSON.model_validate(json_data)
        except PydanticValidationError as e:
            raise ValidationError(f"Invalid React Flow JSON: {e}")

        nodes = [self._node(item, automation_id) for item in flow.nodes]
        edges = [
            EdgeDefinition(
                automation_id=automation_id,
                source=item.source,
                target=item.target,
                branch=item.source_handle or None,
                animated=item.animated,
                **({"id": item.id} if item.id else {}),
            )
            for item in flow.edges
        ]

        # Successors listed only in ``connections`` become plain edges
        linked = {(edge.source, edge.target) for edge in edges}
        for item in flow.nodes:
            for target in item.connections:
                if (item.id, target) not in linked:
                    edges.append(EdgeDefinition(automation_id=automation_id, source=item.id, target=target))
                    linked.add((item.id, target))

        return nodes, edges

    def _node(self, item: ReactFlowNode, automation_id: str) -> NodeDefinition:
        kind = self.NODE_TYPE_MAP.get(item.type)
        if kind is None:
            raise ValidationError(
                f"Node '{item.id}': unknown node type '{item.type}'. "
                f"Supported types: {', '.join(self.NODE_TYPE_MAP)}"
            )

        subtype = item.subtype or item.data.get("subtype")
        if not subtype:
            raise ValidationError(f"Node '{item.id}' has no subtype")

        if isinstance(item.data.get("config"), dict):
            config = dict(item.data["config"])
        else:
            config = {k: v for k, v in item.data.items() if k not in self.DISPLAY_KEYS}

        return NodeDefinition(
            automation_id=automation_id,
            node_id=item.id,
            kind=kind,
            subtype=subtype,
            config=config,
            position=item.position or {},
            measured=item.measured or {},
        )

    def parse_graph(self, json_data: Dict[str, Any], automation: Automation) -> AutomationGraph:
        """Parse and validate against an automation record without storing."""
        nodes, edges = self.parse(json_data, automation.id)
        graph = AutomationGraph.from_nodes_and_edges(automation, nodes, edges)
        graph.validate()
        return graph


def to_react_flow(graph: AutomationGraph) -> Dict[str, Any]:
    """Serialize a stored graph back into the builder's JSON shape."""
    return {
        "nodes": [
            {
                "id": node.node_id,
                "type": node.kind.value,
                "subtype": node.subtype,
                "position": node.position,
                "measured": node.measured,
                "data": {"subtype": node.subtype, "config": node.config},
                "connections": graph.get_children(node.node_id),
            }
            for node in graph.nodes.values()
        ],
        "edges": [
            {
                "id": edge.id,
                "source": edge.source,
                "target": edge.target,
                "sourceHandle": edge.branch,
                "animated": edge.animated,
            }
            for edge in graph.edges
        ],
    }
