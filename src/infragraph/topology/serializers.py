"""
Topology serializers: JSON, Mermaid, and DOT output formats.

Pure functions that convert a ResourceGraph to string output.
"""

from __future__ import annotations

import json
import re
from typing import TYPE_CHECKING

from infragraph.graph.models import EdgeKind, NodeKind

if TYPE_CHECKING:
    from infragraph.graph.models import ResourceGraph

# Nord palette mapped to node kinds
KIND_COLORS = {
    NodeKind.NETWORK: "#4C566A",
    NodeKind.PARTITION: "#434C5E",
    NodeKind.TRAFFIC_FILTER: "#D08770",
    NodeKind.SECRET: "#B48EAD",
    NodeKind.STATEFUL_CLUSTER: "#BF616A",
    NodeKind.COMPUTE_CLUSTER: "#5E81AC",
    NodeKind.TASK_TEMPLATE: "#81A1C1",
    NodeKind.SERVICE_INSTANCE: "#5E81AC",
    NodeKind.DISTRIBUTOR: "#A3BE8C",
    NodeKind.LISTENER: "#A3BE8C",
    NodeKind.PERMISSION_GRANT: "#EBCB8B",
}

KIND_SHAPES = {
    NodeKind.STATEFUL_CLUSTER: "cylinder",
    NodeKind.SERVICE_INSTANCE: "hexagon",
    NodeKind.SECRET: "note",
    NodeKind.TRAFFIC_FILTER: "octagon",
    NodeKind.DISTRIBUTOR: "parallelogram",
}


def serialize_json(graph: ResourceGraph) -> str:
    """Serialize the graph as JSON."""
    return json.dumps(graph.to_dict(), indent=2)


def serialize_mermaid(graph: ResourceGraph) -> str:
    """
    Serialize the graph as a Mermaid flowchart.

    Uses graph LR layout, cylinder shape for stateful clusters and
    dotted arrows for explicit ordering constraints. Nodes get one
    Nord-themed class per kind.
    """
    lines: list[str] = ["graph LR"]

    for node in graph.nodes:
        node_id = _mermaid_id(node.node_id)
        label = node.node_id
        if node.kind is NodeKind.STATEFUL_CLUSTER:
            lines.append(f"    {node_id}[({label})]")
        elif node.kind is NodeKind.SERVICE_INSTANCE:
            lines.append(f"    {node_id}{{{{{label}}}}}")
        else:
            lines.append(f"    {node_id}[{label}]")

    lines.append("")

    for edge in graph.edges:
        src = _mermaid_id(edge.source)
        tgt = _mermaid_id(edge.target)
        if edge.kind is EdgeKind.ORDERING:
            lines.append(f"    {src} -.->|after| {tgt}")
        else:
            lines.append(f"    {src} --> {tgt}")

    lines.append("")

    used_kinds = [kind for kind in NodeKind if graph.nodes_of(kind)]
    for kind in used_kinds:
        lines.append(
            f"    classDef {_class_name(kind)} fill:{KIND_COLORS[kind]},stroke:#2E3440,color:#ECEFF4"
        )
    for node in graph.nodes:
        lines.append(f"    class {_mermaid_id(node.node_id)} {_class_name(node.kind)}")

    return "\n".join(lines)


def serialize_dot(graph: ResourceGraph) -> str:
    """
    Serialize the graph as a Graphviz DOT digraph.

    Nodes are filled with their kind's Nord color. Ordering edges are
    dashed and labelled ``after``.
    """
    lines: list[str] = [
        "digraph resources {",
        "    rankdir=LR;",
        '    node [style=filled, fontname="sans-serif", fontcolor="#ECEFF4"];',
        '    edge [fontname="sans-serif", fontsize=10];',
        "",
    ]

    for node in graph.nodes:
        attrs = [
            f'label="{node.node_id}"',
            f'fillcolor="{KIND_COLORS.get(node.kind, "#4C566A")}"',
            f"shape={KIND_SHAPES.get(node.kind, 'box')}",
        ]
        lines.append(f"    {_dot_id(node.node_id)} [{', '.join(attrs)}];")

    lines.append("")

    for edge in graph.edges:
        attr_str = ' [style=dashed, label="after"]' if edge.kind is EdgeKind.ORDERING else ""
        lines.append(f"    {_dot_id(edge.source)} -> {_dot_id(edge.target)}{attr_str};")

    lines.append("}")

    return "\n".join(lines)


def _class_name(kind: NodeKind) -> str:
    return kind.value.replace("-", "_")


def _mermaid_id(name: str) -> str:
    """Convert node id to valid Mermaid node ID."""
    return re.sub(r"[^a-zA-Z0-9]", "_", name)


def _dot_id(name: str) -> str:
    """Convert node id to valid DOT node ID."""
    return re.sub(r"[^a-zA-Z0-9]", "_", name)
