"""Shared plumbing for CLI commands: settings plus config file to builder."""

from __future__ import annotations

from typing import Optional

from infragraph.config.loader import load_stack_config
from infragraph.config.settings import Settings, get_settings
from infragraph.graph.builder import TopologyBuilder
from infragraph.graph.models import DeploymentEnvironment
from infragraph.stacks.docdb import declare_docdb_stack


def environment_from(
    settings: Settings,
    account: Optional[str] = None,
    region: Optional[str] = None,
) -> DeploymentEnvironment:
    """Command-line values win over settings; both may be unset."""
    return DeploymentEnvironment(
        account=account or settings.account,
        region=region or settings.region,
    )


def declare_stack(
    config_file: Optional[str] = None,
    account: Optional[str] = None,
    region: Optional[str] = None,
    settings: Settings | None = None,
) -> TopologyBuilder:
    """Declare the reference stack on a fresh, still-open builder."""
    settings = settings or get_settings()
    builder = TopologyBuilder(
        environment=environment_from(settings, account, region),
        duplicate_targets=settings.duplicate_targets,
    )
    declare_docdb_stack(builder, load_stack_config(config_file))
    return builder


def write_output(output: str, output_file: Optional[str]) -> None:
    """Write to a file, or print() to stdout for machine-readable output."""
    if output_file:
        with open(output_file, "w") as f:
            f.write(output)
            f.write("\n")
    else:
        # print() not console.print(): output may contain brackets that
        # rich would interpret as markup
        print(output)
