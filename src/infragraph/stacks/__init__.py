"""Ready-made topologies assembled through TopologyBuilder."""

from infragraph.stacks.docdb import (
    DocDbStack,
    build_docdb_graph,
    declare_docdb_stack,
)

__all__ = [
    "DocDbStack",
    "declare_docdb_stack",
    "build_docdb_graph",
]
