"""Root pytest configuration for cnb-sbom tests."""
import pytest

from cnb_sbom.settings import Settings
from .storage.fakes.fake_oci_registry import FakeOciRegistry

# Import fixtures to make them available
from .fixtures.oci_registry import oci_registry


# Configure pytest markers
def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line(
        "markers",
        "integration: mark test as integration test (requires Docker)"
    )


# Keep the developer's environment out of the tests
@pytest.fixture(autouse=True)
def test_env(monkeypatch, tmp_path):
    """Automatically set up test environment variables."""
    for name in (
        "CNB_SBOM_INSECURE",
        "CNB_SBOM_USERNAME",
        "CNB_SBOM_PASSWORD",
        "CNB_SBOM_HTTP_TIMEOUT",
        "CNB_SBOM_PLATFORM",
        "CNB_SBOM_LAYER_COMPRESSION",
        "CNB_SBOM_PIPE_CAPACITY",
    ):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("DOCKER_CONFIG", str(tmp_path / "docker-config"))


# Standardized test fixtures
@pytest.fixture
def settings():
    """Standard test settings."""
    return Settings()


@pytest.fixture
def registry():
    """Standard fake registry for testing."""
    return FakeOciRegistry()
