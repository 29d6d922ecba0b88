"""
Topology export for resource graph visualization.

Converts a finalized ResourceGraph to exportable formats (JSON, Mermaid, DOT).
"""

from infragraph.topology.serializers import (
    serialize_dot,
    serialize_json,
    serialize_mermaid,
)

__all__ = [
    "serialize_json",
    "serialize_mermaid",
    "serialize_dot",
]
