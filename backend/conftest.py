"""Root conftest: test environment, structlog routing and per-test isolation."""

import os
from pathlib import Path

import pytest
import structlog
from dotenv import load_dotenv

from shared.logging import configure_structlog

load_dotenv(Path(__file__).resolve().parent.parent / ".env.tests")

# Same pipeline as production so caplog sees every structlog record.
configure_structlog()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Prevent room/participant context leaking between tests."""
    structlog.contextvars.clear_contextvars()
    yield
    structlog.contextvars.clear_contextvars()


@pytest.fixture(autouse=True)
def _isolate_party_env(monkeypatch):
    """Server settings tests must not pick up PARTY_* variables from the developer shell."""
    for name in list(os.environ):
        if name.startswith("PARTY_"):
            monkeypatch.delenv(name)
