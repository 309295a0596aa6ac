"""Tests for structured logging functionality.

Tests logging configuration, context binding, and the custom processors.
"""

import os

import pytest
import structlog

from iap_sync.logging_config import (
    add_app_context,
    add_log_level,
    bind_context,
    clear_context,
    configure_logging,
    drop_debug_in_production,
    get_logger,
    unbind_context,
)


@pytest.fixture(scope="module")
def setup_logging():
    """Configure logging for all tests in this module."""
    log_level = os.getenv("LOG_LEVEL", "INFO")
    log_format = os.getenv("LOG_FORMAT", "console")
    json_mode = log_format.lower() == "json"

    configure_logging(log_level=log_level, json_format=json_mode)
    yield


@pytest.fixture(autouse=True)
def cleanup_context():
    """Ensure context is cleared before and after each test."""
    clear_context()
    yield
    clear_context()


class TestBasicLogging:
    """Test basic logging at different levels."""

    def test_all_levels(self, setup_logging):
        logger = get_logger("test.basic")

        logger.debug("debug_message", detail="Only visible in DEBUG mode")
        logger.info("session_initialized", owner_id="partner-42")
        logger.warning("active_subscription_unavailable", error="offline")
        logger.error("purchase_error", product_id="gold.monthly", error="owned")

    def test_exception_logging(self, setup_logging):
        logger = get_logger("test.exceptions")

        try:
            {"a": 1}["b"]
        except KeyError as e:
            logger.error(
                "lookup_failed",
                error=str(e),
                error_type=type(e).__name__,
                exc_info=True,
            )


class TestContextualLogging:
    """Test logging with bound context."""

    def test_bind_and_unbind(self, setup_logging):
        logger = get_logger("test.context")

        bind_context(owner_id="partner-42")
        assert structlog.contextvars.get_contextvars() == {"owner_id": "partner-42"}
        logger.info("catalog_loaded", products=3)

        unbind_context("owner_id")
        assert structlog.contextvars.get_contextvars() == {}

    def test_clear_context(self, setup_logging):
        bind_context(owner_id="partner-42", attempt_id="abc")
        clear_context()

        assert structlog.contextvars.get_contextvars() == {}


class TestProcessors:
    """Test the custom structlog processors."""

    def test_app_context_added(self):
        assert add_app_context(None, "info", {"event": "x"})["app"] == "iap-sync"

    def test_log_level_added_once(self):
        assert add_log_level(None, "warning", {})["level"] == "WARNING"
        assert add_log_level(None, "warning", {"level": "custom"})["level"] == "custom"

    def test_debug_dropped_outside_debug_mode(self, monkeypatch):
        monkeypatch.setenv("LOG_LEVEL", "INFO")

        with pytest.raises(structlog.DropEvent):
            drop_debug_in_production(None, "debug", {"event": "x"})
        assert drop_debug_in_production(None, "info", {"event": "x"}) == {"event": "x"}

    def test_debug_kept_in_debug_mode(self, monkeypatch):
        monkeypatch.setenv("LOG_LEVEL", "debug")

        assert drop_debug_in_production(None, "debug", {"event": "x"}) == {"event": "x"}
