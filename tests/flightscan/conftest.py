"""
Shared fixtures for flightscan tests.
"""

import os
import sys

import pytest

# Add scripts/ to path so we can import the flightscan package
_scripts_dir = os.path.join(os.path.dirname(__file__), "..", "..", "scripts")
if _scripts_dir not in sys.path:
    sys.path.insert(0, _scripts_dir)

from flightscan.config import Settings  # noqa: E402
from flightscan.pool import BrowserPool  # noqa: E402
from stubs import StubPageFactory  # noqa: E402


@pytest.fixture
def settings():
    return Settings(
        _env_file=None,
        task_timeout=2.0,
        search_deadline=5.0,
        pool_acquire_timeout=5.0,
        miles_value_rate=0.4,
    )


@pytest.fixture
def page_factory():
    return StubPageFactory()


@pytest.fixture
def pool(page_factory):
    return BrowserPool(page_factory, size=3, acquire_timeout=5.0)
