"""
infragraph configuration.

- Pydantic-based settings (environment variables, .env files)
- YAML stack parameter files
"""

from infragraph.config.loader import (
    DatabaseConfig,
    DocDbStackConfig,
    LoadBalancerConfig,
    NetworkConfig,
    ServiceConfig,
    load_stack_config,
)
from infragraph.config.settings import Settings, get_settings

__all__ = [
    # Settings
    "Settings",
    "get_settings",
    # Stack parameters
    "DocDbStackConfig",
    "NetworkConfig",
    "DatabaseConfig",
    "ServiceConfig",
    "LoadBalancerConfig",
    "load_stack_config",
]
