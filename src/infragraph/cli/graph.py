"""
CLI command for resource graph export.

Commands:
    infragraph graph                    - Export as JSON
    infragraph graph --format mermaid   - Export as Mermaid
    infragraph graph --format dot       - Export as DOT
    infragraph graph --order            - Print the creation order only
"""

from __future__ import annotations

import argparse
from typing import Optional

from infragraph.cli.helpers import declare_stack, write_output
from infragraph.cli.ux import console, error
from infragraph.core.errors import main_with_error_handling
from infragraph.topology.serializers import (
    serialize_dot,
    serialize_json,
    serialize_mermaid,
)

SERIALIZERS = {
    "json": serialize_json,
    "mermaid": serialize_mermaid,
    "dot": serialize_dot,
}


@main_with_error_handling()
def graph_command(
    config_file: Optional[str] = None,
    output_format: str = "json",
    output_file: Optional[str] = None,
    order_only: bool = False,
) -> int:
    """
    Export the finalized resource graph.

    Args:
        config_file: Optional stack parameter YAML
        output_format: Output format (json, mermaid, dot)
        output_file: Optional file path for output
        order_only: Print one node id per line in creation order

    Returns:
        Exit code (0 on success, 2 for an unknown format)
    """
    serializer = SERIALIZERS.get(output_format)
    if serializer is None and not order_only:
        error(f"Unknown format: {output_format}")
        return 2

    graph = declare_stack(config_file).finalize()

    if order_only:
        output = "\n".join(graph.creation_order)
    else:
        assert serializer is not None
        output = serializer(graph)

    write_output(output, output_file)
    if output_file:
        console.print(f"[success]Wrote {output_format} output to {output_file}[/success]")
    return 0


def register_graph_parser(subparsers: argparse._SubParsersAction) -> None:
    """Register graph subcommand parser."""
    parser = subparsers.add_parser(
        "graph",
        help="Export the resource graph",
    )
    parser.add_argument(
        "config_file",
        nargs="?",
        help="Path to stack parameter YAML (defaults apply when omitted)",
    )
    parser.add_argument(
        "--format",
        "-f",
        dest="output_format",
        choices=list(SERIALIZERS),
        default="json",
        help="Output format (default: json)",
    )
    parser.add_argument(
        "--output",
        "-o",
        dest="output_file",
        help="Write output to file instead of stdout",
    )
    parser.add_argument(
        "--order",
        dest="order_only",
        action="store_true",
        help="Print the creation order only",
    )


def handle_graph_command(args: argparse.Namespace) -> int:
    """Handle graph command from CLI args."""
    return graph_command(
        config_file=getattr(args, "config_file", None),
        output_format=getattr(args, "output_format", "json"),
        output_file=getattr(args, "output_file", None),
        order_only=getattr(args, "order_only", False),
    )
