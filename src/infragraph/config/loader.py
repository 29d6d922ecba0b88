"""
Stack parameter loading.

Defaults reproduce the reference DocumentDB + Fargate deployment. A YAML
file may override any of them:

    database:
      instance_type: r5.large
      instance_count: 3
    service:
      image: ghcr.io/acme/payload:1.4
      cpu: 512
      memory_mib: 1024
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any

import structlog
import yaml

from infragraph.core.errors import ValidationError

logger = structlog.get_logger()


@dataclass
class NetworkConfig:
    """VPC layout."""

    cidr: str = "10.0.0.0/16"
    availability_zones: int = 2
    public_subnet_name: str = "public"
    public_mask: int = 24
    private_subnet_name: str = "private"
    private_mask: int = 24

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> NetworkConfig:
        return cls(**_known(cls, data, "network"))


@dataclass
class DatabaseConfig:
    """DocumentDB cluster and its master credentials."""

    username: str = "awsdemo"
    password_length: int = 16
    exclude_punctuation: bool = True
    exclude_characters: str = "/¥'%:;{}"
    instance_type: str = "t3.medium"
    instance_count: int = 1
    port: int = 27017

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> DatabaseConfig:
        return cls(**_known(cls, data, "database"))


@dataclass
class ServiceConfig:
    """Fargate task and service."""

    image: str = "amazon/amazon-ecs-sample"
    cpu: int = 256
    memory_mib: int = 512
    container_port: int = 80
    assign_public_address: bool = True
    desired_count: int = 1
    payload_secret_length: int = 32
    payload_secret_exclude_characters: str = '"@/\\ '

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ServiceConfig:
        return cls(**_known(cls, data, "service"))


@dataclass
class LoadBalancerConfig:
    """Application load balancer."""

    port: int = 80
    protocol: str = "HTTP"
    internet_facing: bool = True

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> LoadBalancerConfig:
        return cls(**_known(cls, data, "load_balancer"))


@dataclass
class DocDbStackConfig:
    """All parameters of the DocumentDB reference stack."""

    network: NetworkConfig = field(default_factory=NetworkConfig)
    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    service: ServiceConfig = field(default_factory=ServiceConfig)
    load_balancer: LoadBalancerConfig = field(default_factory=LoadBalancerConfig)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> DocDbStackConfig:
        sections = {
            "network": NetworkConfig,
            "database": DatabaseConfig,
            "service": ServiceConfig,
            "load_balancer": LoadBalancerConfig,
        }
        for key in data:
            if key not in sections:
                logger.warning("unknown_config_section", section=key)

        parsed: dict[str, Any] = {}
        for key, section_cls in sections.items():
            section = data.get(key) or {}
            if not isinstance(section, dict):
                raise ValidationError(f"config section '{key}' must be a mapping")
            parsed[key] = section_cls.from_dict(section)  # type: ignore[attr-defined]
        return cls(**parsed)


def load_stack_config(path: str | Path | None = None) -> DocDbStackConfig:
    """
    Load stack parameters from a YAML file.

    Args:
        path: YAML file; None returns the defaults

    Raises:
        ValidationError: The file is missing, unparsable, or malformed
    """
    if path is None:
        return DocDbStackConfig()

    path = Path(path)
    if not path.exists():
        raise ValidationError(f"config file not found: {path}", details={"path": str(path)})

    try:
        with open(path) as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ValidationError(f"invalid YAML in {path}: {e}", details={"path": str(path)}) from e

    if not isinstance(data, dict):
        raise ValidationError(f"config file {path} must contain a mapping")

    logger.debug("loaded_stack_config", path=str(path))
    return DocDbStackConfig.from_dict(data)


def _known(section_cls: type, data: dict[str, Any], section: str) -> dict[str, Any]:
    known = set(section_cls.__dataclass_fields__)  # type: ignore[attr-defined]
    for key in data:
        if key not in known:
            logger.warning("unknown_config_key", section=section, key=key)
    return {k: v for k, v in data.items() if k in known}
