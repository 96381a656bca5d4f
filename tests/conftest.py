"""Pytest configuration and fixtures."""

import sys
from pathlib import Path

import pytest

# Add src to path for imports
src_path = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(src_path))

# Add tests to path for oxide_mock imports
tests_path = Path(__file__).parent
sys.path.insert(0, str(tests_path))

from oxide_mock import MockOxideClient  # noqa: E402

from oxide_provider.config import Config  # noqa: E402
from oxide_provider.registry import ResourceRegistry, build_registry  # noqa: E402

TEST_TOKEN = "oxide-token-for-tests"


@pytest.fixture
def config() -> Config:
    """Provider configuration pointing at the default local host."""
    return Config(token=TEST_TOKEN)


@pytest.fixture
def mock_client() -> MockOxideClient:
    """Fresh in-memory Oxide API."""
    return MockOxideClient()


@pytest.fixture
def registry(config: Config, mock_client: MockOxideClient) -> ResourceRegistry:
    """Registry of built-in kinds wired to the mock API."""
    return build_registry(config, client_factory=lambda _config: mock_client)
