"""Root pytest configuration for registry-image-check tests."""
import pytest

from registry_image_check.settings import Settings

from .helpers.fake_registry import FakeRegistry


# Set up test environment variables
@pytest.fixture(autouse=True)
def test_env(monkeypatch):
    """Keep tests independent of the caller's environment."""
    for name in ("REGISTRY_CHECK_HTTP_TIMEOUT", "REGISTRY_CHECK_HTTP_RETRY",
                 "REGISTRY_CHECK_BACKOFF_MIN", "REGISTRY_CHECK_BACKOFF_MAX",
                 "REGISTRY_CHECK_INSECURE_REGISTRIES", "REGISTRY_CHECK_DEBUG"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("REGISTRY_CHECK_LOG_LEVEL", "WARNING")
    # Never reach real AWS from tests
    monkeypatch.setenv("AWS_ACCESS_KEY_ID", "testing")
    monkeypatch.setenv("AWS_SECRET_ACCESS_KEY", "testing")


# Standardized test fixtures
@pytest.fixture
def settings():
    """Settings with a short retry limit and no backoff delay."""
    return Settings(http_retry=2, backoff_min_s=0.0, backoff_max_s=0.0, log_level="WARNING")


@pytest.fixture
def sleeps():
    """Records retry delays instead of sleeping."""
    return []


@pytest.fixture
def fake_sleep(sleeps):
    return sleeps.append


@pytest.fixture
def registry():
    """Open fake Docker Hub registry."""
    return FakeRegistry()
