"""
infragraph command line.

Usage:
    infragraph <command> [args]

Commands:
    synth      Synthesize the deployment template
    graph      Export the resource graph (json, mermaid, dot)
    validate   Run graph-wide checks and report issues
"""

from __future__ import annotations

import argparse
import sys
from typing import Sequence

from infragraph import __version__
from infragraph.cli.graph import handle_graph_command, register_graph_parser
from infragraph.cli.synth import handle_synth_command, register_synth_parser
from infragraph.cli.validate import handle_validate_command, register_validate_parser
from infragraph.config.settings import get_settings
from infragraph.logging import configure_logging

HANDLERS = {
    "synth": handle_synth_command,
    "graph": handle_graph_command,
    "validate": handle_validate_command,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="infragraph",
        description="Declarative resource graphs for containerized stacks",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument(
        "--log-level",
        help="Log level (or set INFRAGRAPH_LOG_LEVEL, default WARNING)",
    )
    subparsers = parser.add_subparsers(dest="command")

    register_synth_parser(subparsers)
    register_graph_parser(subparsers)
    register_validate_parser(subparsers)

    return parser


def main(argv: Sequence[str] | None = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)

    settings = get_settings()
    configure_logging(args.log_level or settings.log_level, stack_name=settings.stack_name)

    handler = HANDLERS.get(args.command)
    if handler is None:
        parser.print_help()
        sys.exit(1)

    sys.exit(handler(args))


if __name__ == "__main__":
    main()
