"""
Pytest configuration and fixtures for Twergstack tests.

Provides common fixtures and test utilities across all test modules.
"""

import os
import shutil
import tempfile
from collections.abc import Generator
from pathlib import Path

import pytest

from twergstack.config import ServiceDefinition, TwergstackConfig
from twergstack.environment.orchestrator import ProvisioningPipeline
from twergstack.persistence import InMemoryProvider

from .mock_engine import MockContainerEngine, StubPortAllocator


@pytest.fixture(scope="session")
def test_logs_dir() -> Generator[str, None, None]:
    """
    Create temporary directory for test logs that persists for the session.

    Yields:
        Path to temporary logs directory
    """
    temp_dir = tempfile.mkdtemp(prefix="twergstack_test_logs_")
    logs_dir = Path(temp_dir) / "logs"
    (logs_dir / "database").mkdir(parents=True)

    yield str(logs_dir)

    shutil.rmtree(temp_dir)


@pytest.fixture
def isolated_test_env(test_logs_dir: str) -> Generator[dict[str, str], None, None]:
    """
    Create isolated test environment with clean environment variables.

    Yields:
        Dictionary of original environment variables
    """
    original_env = os.environ.copy()

    for key in list(os.environ.keys()):
        if key.startswith(("TWERGSTACK_", "POSTGRES_")) or key in ("DATABASE_URL", "REGISTRY_HTTP_ADDR"):
            del os.environ[key]

    os.environ["TWERGSTACK_LOG_DIR"] = test_logs_dir

    yield original_env

    os.environ.clear()
    os.environ.update(original_env)


@pytest.fixture
def test_config(isolated_test_env: dict[str, str]) -> TwergstackConfig:
    """
    Create test configuration with safe defaults.

    Returns:
        Test configuration instance
    """
    return TwergstackConfig(
        log_level="DEBUG",
        verbose=True,
        store="memory",
        enable_file_logging=False,
        log_dir=os.environ["TWERGSTACK_LOG_DIR"],
        port_base=9000,
    )


@pytest.fixture
def temp_workspace() -> Generator[Path, None, None]:
    """
    Create temporary workspace directory for test files.

    Yields:
        Path to temporary workspace
    """
    temp_dir = tempfile.mkdtemp(prefix="twergstack_workspace_")
    workspace = Path(temp_dir)

    yield workspace

    shutil.rmtree(temp_dir)


@pytest.fixture
def two_services() -> list[ServiceDefinition]:
    """An api service and an nginx ingress in front of it."""
    return [
        ServiceDefinition.model_validate(
            {
                "serviceName": "api",
                "image": {"name": "mimir", "tag": "0.4.2"},
                "network": {"addressSuffix": 10},
                "env": ["RUN_MODE=production"],
            }
        ),
        ServiceDefinition.model_validate(
            {
                "serviceName": "nginx",
                "image": {"name": "nginx", "tag": "1.19"},
                "network": {"addressSuffix": 2},
                "ports": {"80": None},
            }
        ),
    ]


@pytest.fixture
def mock_engine() -> MockContainerEngine:
    """Engine with the default docker bridge networks already present."""
    return MockContainerEngine(subnets=["172.17.0.0/16", "172.18.0.0/16"])


@pytest.fixture
def memory_provider() -> InMemoryProvider:
    return InMemoryProvider()


@pytest.fixture
def pipeline(test_config, memory_provider, mock_engine, two_services) -> ProvisioningPipeline:
    """Pipeline over the in-memory provider and the mock engine, allocating port 9002."""
    pipeline = ProvisioningPipeline(test_config, memory_provider, mock_engine, services=two_services)
    pipeline.port_allocator = StubPortAllocator(9002)
    return pipeline


# Pytest configuration
def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line("markers", "slow: marks tests as slow")
    config.addinivalue_line("markers", "integration: marks tests as integration tests")
    config.addinivalue_line("markers", "container: marks tests that require containers")
    config.addinivalue_line("markers", "database: marks tests that require database")


def pytest_collection_modifyitems(config, items):
    """Modify test collection to add markers automatically."""
    for item in items:
        if "integration" in item.nodeid:
            item.add_marker(pytest.mark.integration)

        if "database" in item.nodeid:
            item.add_marker(pytest.mark.database)
