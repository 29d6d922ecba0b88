"""
Application settings using Pydantic.

Provides environment-based configuration loading with INFRAGRAPH_ prefix.
Account and region fall back to the CDK_DEFAULT_* variables exported by
the CDK toolkit so an existing deploy pipeline keeps working unchanged.
"""

from functools import lru_cache
from typing import Literal

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings."""

    # Deployment target; None lets the provisioning engine pick its default
    account: str | None = Field(
        default=None,
        validation_alias=AliasChoices("INFRAGRAPH_ACCOUNT", "CDK_DEFAULT_ACCOUNT"),
    )
    region: str | None = Field(
        default=None,
        validation_alias=AliasChoices("INFRAGRAPH_REGION", "CDK_DEFAULT_REGION"),
    )

    # Stack
    stack_name: str = "AwsCdkDocdbStack"

    # Lint policy for listener targets attached more than once
    duplicate_targets: Literal["allow", "warn", "error"] = "warn"

    # Logging
    log_level: str = "WARNING"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        env_prefix = "INFRAGRAPH_"
        populate_by_name = True


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
