"""
CLI command for template synthesis.

Commands:
    infragraph synth                          - Print the template as JSON
    infragraph synth stack.yaml --format yaml - Use stack parameters from a file
    infragraph synth -o template.json         - Write to a file
"""

from __future__ import annotations

import argparse
from typing import Optional

import structlog

from infragraph.cli.helpers import declare_stack, write_output
from infragraph.cli.ux import console
from infragraph.config.settings import get_settings
from infragraph.core.errors import main_with_error_handling
from infragraph.synth.template import render_template, synthesize

logger = structlog.get_logger()


@main_with_error_handling()
def synth_command(
    config_file: Optional[str] = None,
    output_format: str = "json",
    output_file: Optional[str] = None,
    account: Optional[str] = None,
    region: Optional[str] = None,
) -> int:
    """
    Finalize the reference stack and synthesize its template.

    Args:
        config_file: Optional stack parameter YAML
        output_format: Output format (json, yaml)
        output_file: Optional file path for output
        account: Overrides the configured account
        region: Overrides the configured region

    Returns:
        Exit code (0 on success)
    """
    settings = get_settings()
    builder = declare_stack(config_file, account, region, settings)
    graph = builder.finalize()

    template = synthesize(graph, description=settings.stack_name)
    write_output(render_template(template, output_format), output_file)

    logger.info(
        "template_written",
        stack=settings.stack_name,
        resources=len(template["Resources"]),
        output=output_file or "stdout",
    )
    if output_file:
        console.print(f"[success]Wrote {output_format} template to {output_file}[/success]")
    return 0


def register_synth_parser(subparsers: argparse._SubParsersAction) -> None:
    """Register synth subcommand parser."""
    parser = subparsers.add_parser(
        "synth",
        help="Synthesize the deployment template",
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
        choices=["json", "yaml"],
        default="json",
        help="Output format (default: json)",
    )
    parser.add_argument(
        "--output",
        "-o",
        dest="output_file",
        help="Write output to file instead of stdout",
    )
    _add_environment_arguments(parser)


def _add_environment_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--account", help="Target account (or set INFRAGRAPH_ACCOUNT)")
    parser.add_argument("--region", help="Target region (or set INFRAGRAPH_REGION)")


def handle_synth_command(args: argparse.Namespace) -> int:
    """Handle synth command from CLI args."""
    return synth_command(
        config_file=getattr(args, "config_file", None),
        output_format=getattr(args, "output_format", "json"),
        output_file=getattr(args, "output_file", None),
        account=getattr(args, "account", None),
        region=getattr(args, "region", None),
    )
