"""Tests for logging configuration."""

import pytest
import structlog

from infragraph.logging import bind_context, configure_logging


@pytest.fixture(autouse=True)
def clean_contextvars():
    yield
    structlog.contextvars.clear_contextvars()


class TestConfigureLogging:
    def test_accepts_level_names(self):
        configure_logging("warning")
        assert structlog.is_configured()

    def test_binds_stack_name(self):
        configure_logging("warning", stack_name="AwsCdkDocdbStack")
        assert structlog.contextvars.get_contextvars() == {"stack": "AwsCdkDocdbStack"}

    def test_reconfigure_drops_previous_stack(self):
        configure_logging("warning", stack_name="First")
        configure_logging("warning")
        assert "stack" not in structlog.contextvars.get_contextvars()

    def test_bind_context_carries_fields(self):
        log = bind_context(account="111122223333", region=None)
        assert log is not None
        log.debug("bound_logger_ready")
