"""Global pytest fixtures for certstore."""

import pytest

pytest_plugins = [
    "tests.fixtures.sqlite",
    "tests.fixtures.postgres",
]

#: Lock timeout used by backends under test; short so contention tests finish fast.
TEST_LOCK_TIMEOUT = 2.0


@pytest.fixture
def lock_timeout() -> float:
    """Lock timeout handed to every backend built by the test fixtures."""
    return TEST_LOCK_TIMEOUT
