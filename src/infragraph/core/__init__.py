"""Core modules for infragraph - centralized error definitions."""

from infragraph.core.errors import (
    ExitCode,
    InfraGraphError,
    TopologyConfigError,
    TopologyCycleError,
    TopologyStateError,
    ValidationError,
    format_error_message,
    main_with_error_handling,
)

__all__ = [
    "ExitCode",
    "InfraGraphError",
    "TopologyConfigError",
    "TopologyCycleError",
    "TopologyStateError",
    "ValidationError",
    "main_with_error_handling",
    "format_error_message",
]
