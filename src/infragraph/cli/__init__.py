"""CLI commands for infragraph."""

from infragraph.cli.graph import graph_command
from infragraph.cli.synth import synth_command
from infragraph.cli.validate import validate_command

__all__ = [
    "graph_command",
    "synth_command",
    "validate_command",
]
