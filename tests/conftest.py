"""Shared fixtures for all tests."""

from collections.abc import Generator

import pytest

BASE_URL = "https://rexec.test"


@pytest.fixture(autouse=True)
def mock_env_clear(monkeypatch: pytest.MonkeyPatch) -> Generator[None, None, None]:
    """Clear all Rexec-related environment variables for testing.

    This ensures tests don't accidentally use real credentials from the environment.
    """
    env_vars_to_clear = [
        "REXEC_TOKEN",
        "REXEC_BASE_URL",
        "REXEC_CREATE_STRATEGY",
        "REXEC_NETWORK_EFFECTIVE_TYPE",
        "REXEC_SAVE_DATA",
        "REXEC_DOWNLINK_MBPS",
        "REXEC_USER_AGENT",
        "ANDROID_ROOT",
        "TERMUX_VERSION",
    ]
    for var in env_vars_to_clear:
        monkeypatch.delenv(var, raising=False)
    yield


@pytest.fixture
def mock_token() -> str:
    """Mock Rexec API token for testing."""
    return "test_token_123456789"


@pytest.fixture
def base_url() -> str:
    return BASE_URL
