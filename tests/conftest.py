"""Pytest configuration for all tests."""

import os
import sys

import pytest
from prometheus_client import CollectorRegistry

# Make the repository root importable as the ``src`` namespace package
repo_root = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if repo_root not in sys.path:
    sys.path.insert(0, repo_root)

from src.classroom_access.config import AccessFixerSettings  # noqa: E402
from src.classroom_access.metrics import ReconciliationMetrics  # noqa: E402


WEBHOOK_SECRET = "test-webhook-secret"


@pytest.fixture
def metrics():
    """Reconciliation metrics on a private registry."""
    return ReconciliationMetrics(registry=CollectorRegistry())


@pytest.fixture
def make_settings():
    """Build settings without reading the environment for required fields."""

    def _make(**overrides) -> AccessFixerSettings:
        values = {
            "github_token": "ghp_testtoken1234",
            "github_org": "cs101-fall",
            "webhook_secret": WEBHOOK_SECRET,
            "retry_delay_ms": 0,
            "environment": "test",
        }
        values.update(overrides)
        return AccessFixerSettings(**values)

    return _make
