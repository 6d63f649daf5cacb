"""
Shapewire - Smoke Test Configuration

Pytest configuration for smoke tests.
"""

import os
from pathlib import Path

import pytest

PROJECT_ROOT = Path(__file__).parent.parent.parent


def pytest_configure(config):
    """Configure pytest for smoke tests."""
    config.addinivalue_line(
        "markers", "smoke: mark test as a smoke test"
    )
    config.addinivalue_line(
        "markers", "slow: mark test as slow"
    )


@pytest.fixture(scope="session")
def project_root():
    """Return project root path."""
    return PROJECT_ROOT


# Skip slow tests in CI unless explicitly requested
def pytest_collection_modifyitems(config, items):
    """Modify test collection."""
    if os.environ.get("CI") and not os.environ.get("RUN_SLOW_TESTS"):
        skip_slow = pytest.mark.skip(reason="Skipping slow tests in CI")
        for item in items:
            if "slow" in item.keywords:
                item.add_marker(skip_slow)
