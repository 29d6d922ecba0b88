"""
CLI command for validating the reference stack without synthesizing it.

Runs the same graph-wide checks as ``finalize()`` and reports every issue,
errors and warnings alike.
"""

from __future__ import annotations

import argparse
from typing import Optional

from infragraph.cli.helpers import declare_stack
from infragraph.cli.ux import console, error, header, print_table, success, warning
from infragraph.core.errors import ExitCode, main_with_error_handling
from infragraph.graph.lint import default_validators, lint_graph


@main_with_error_handling()
def validate_command(
    config_file: Optional[str] = None,
    strict: bool = False,
) -> int:
    """
    Validate the reference stack.

    Args:
        config_file: Optional stack parameter YAML
        strict: Treat warnings as errors

    Returns:
        Exit code (0 = clean, 1 = warnings only, 12 = errors)
    """
    builder = declare_stack(config_file)
    result = lint_graph(builder.nodes, default_validators(builder.duplicate_targets))

    header("Topology validation")
    console.print(f"[muted]{len(builder.nodes)} nodes declared[/muted]")

    if result.issues:
        rows = [
            [issue.severity.value, issue.node_id, issue.validator, issue.message]
            for issue in result.issues
        ]
        print_table("Issues", ["Severity", "Node", "Check", "Message"], rows)

    if not result.passed:
        error(f"{len(result.errors)} error(s), {len(result.warnings)} warning(s)")
        return ExitCode.VALIDATION_ERROR

    # Cycle detection over the complete edge set
    builder.finalize()

    if result.warnings:
        warning(f"Passed with {len(result.warnings)} warning(s)")
        return ExitCode.VALIDATION_ERROR if strict else ExitCode.WARNING

    success("All checks passed")
    return ExitCode.SUCCESS


def register_validate_parser(subparsers: argparse._SubParsersAction) -> None:
    """Register validate subcommand parser."""
    parser = subparsers.add_parser(
        "validate",
        help="Check the resource graph without synthesizing",
    )
    parser.add_argument(
        "config_file",
        nargs="?",
        help="Path to stack parameter YAML (defaults apply when omitted)",
    )
    parser.add_argument(
        "--strict",
        action="store_true",
        help="Treat warnings as errors",
    )


def handle_validate_command(args: argparse.Namespace) -> int:
    """Handle validate command from CLI args."""
    return validate_command(
        config_file=getattr(args, "config_file", None),
        strict=getattr(args, "strict", False),
    )
