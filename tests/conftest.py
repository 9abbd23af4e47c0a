"""Root pytest configuration for ocidist tests."""
import pytest

from ocidist.client import make_client
from ocidist.settings import Settings

from .fakes import REGISTRY, FakeRegistry


# Configure pytest markers
def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line(
        "markers",
        "slow: mark test as slow (may take significant time)"
    )


@pytest.fixture(autouse=True)
def test_env(monkeypatch, tmp_path):
    """Isolate tests from the developer's Docker config and OCIDIST_* variables."""
    monkeypatch.setenv("DOCKER_CONFIG", str(tmp_path / "docker"))
    for key in ("OCIDIST_REGISTRY", "OCIDIST_INSECURE", "OCIDIST_PATH_PREFIX", "OCIDIST_USERNAME",
                "OCIDIST_PASSWORD", "OCIDIST_HTTP_TIMEOUT", "OCIDIST_HTTP_RETRY",
                "OCIDIST_CHUNK_SIZE", "OCIDIST_MANIFEST_TYPES"):
        monkeypatch.delenv(key, raising=False)


@pytest.fixture
def settings():
    """Standard test settings."""
    return Settings(registry=REGISTRY)


@pytest.fixture
def registry():
    """Standard fake registry for testing."""
    return FakeRegistry()


@pytest.fixture
def client(settings, registry):
    """Client wired to the fake registry through the standard pipeline."""
    return make_client(settings, transport=registry.transport())
