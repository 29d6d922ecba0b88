"""Root test configuration."""

import logging

import pytest
import structlog

from infragraph.config.settings import get_settings
from infragraph.graph.builder import TopologyBuilder
from infragraph.graph.models import (
    GeneratedSecretField,
    PartitionSpec,
    ReachabilityClass,
)


def pytest_configure(config):
    """Configure structlog for tests to suppress debug/info output."""
    logging.basicConfig(level=logging.WARNING, force=True)
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.processors.add_log_level,
            structlog.processors.format_exc_info,
            structlog.dev.ConsoleRenderer(),
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=False,
    )


@pytest.fixture(autouse=True)
def fresh_settings(monkeypatch):
    """Isolate every test from the host environment and the settings cache."""
    for var in (
        "INFRAGRAPH_ACCOUNT",
        "INFRAGRAPH_REGION",
        "INFRAGRAPH_STACK_NAME",
        "INFRAGRAPH_DUPLICATE_TARGETS",
        "INFRAGRAPH_LOG_LEVEL",
        "CDK_DEFAULT_ACCOUNT",
        "CDK_DEFAULT_REGION",
    ):
        monkeypatch.delenv(var, raising=False)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def builder():
    return TopologyBuilder()


@pytest.fixture
def fabric(builder):
    """Two-partition network: ``public`` (externally reachable) and ``private``."""
    return builder.declare_network(
        [
            PartitionSpec("public", 24, ReachabilityClass.EXTERNALLY_REACHABLE),
            PartitionSpec("private", 24, ReachabilityClass.ISOLATED),
        ]
    )


@pytest.fixture
def credentials(builder):
    return builder.declare_secret(
        {"username": "awsdemo"},
        GeneratedSecretField(name="password", length=16, exclude_punctuation=True),
        name="Credentials",
    )


@pytest.fixture
def database(builder, fabric, credentials):
    """Stateful cluster in ``private``, guarded by its own filter."""
    db_filter = builder.declare_traffic_filter("docdb", fabric, name="ddbSG")
    return builder.declare_stateful_cluster(
        fabric,
        fabric.partition("private"),
        db_filter,
        credentials,
        instance_type="t3.medium",
        name="Database",
    )


@pytest.fixture
def service(builder, fabric, credentials):
    """Public Fargate-style service with a task template reading the credentials."""
    cluster = builder.declare_compute_cluster(fabric, name="Cluster")
    template = builder.declare_task_template(
        image="amazon/amazon-ecs-sample",
        cpu=256,
        memory_mib=512,
        ports=[80],
        secret_env_bindings={"DB_PASSWORD": credentials.field("password")},
        name="Task",
    )
    app_filter = builder.declare_traffic_filter("ecs", fabric, name="appSG")
    return builder.declare_service_instance(
        cluster,
        template,
        app_filter,
        fabric.partition("public"),
        assign_public_address=True,
        name="App",
    )
