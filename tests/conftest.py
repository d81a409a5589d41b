"""Shared fixtures for the AreaScore test suite.

Sets fake provider keys and disables request pacing before any module
reads its configuration from the environment.
"""

import os

import pytest

# Module-level config (pacing, keys) is read at import time.
os.environ.setdefault("GOOGLE_MAPS_API_KEY", "fake-key-for-tests")
os.environ["AREASCORE_REQUEST_PACING_MS"] = "0"
# Keep the crime client offline unless a test injects its own.
os.environ["FBI_CRIME_API_KEY"] = ""
os.environ.pop("SENTRY_DSN", None)

from area_trace import clear_trace  # noqa: E402


@pytest.fixture(autouse=True)
def _clean_trace():
    """Every test starts and ends without a thread-local trace."""
    clear_trace()
    yield
    clear_trace()
