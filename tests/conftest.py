"""Root test configuration."""

import logging

import pytest
import structlog

from jobwarden.config.settings import Settings


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


@pytest.fixture
def settings():
    """Settings tuned for fast tests."""
    return Settings(
        _env_file=None,
        poll_interval=0.01,
        handle_close_timeout=0.5,
        pod_log_tail_lines=1000,
    )
