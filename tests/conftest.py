"""
Pytest configuration and shared fixtures for the test suite.
"""

import logging
from pathlib import Path

import pytest

from hfsubset.config import ENV_BASE_URL, ENV_BOUNDARIES, ENV_CACHE_DIR


@pytest.fixture(autouse=True)
def setup_logging() -> None:
    """Keep hfsubset loggers quiet unless a test captures them."""
    logging.basicConfig(level=logging.WARNING, format="%(name)s - %(levelname)s - %(message)s")


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    """Tests never pick up a developer's HFSUBSET_* settings."""
    for name in (ENV_BASE_URL, ENV_CACHE_DIR, ENV_BOUNDARIES):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def partition_dir(tmp_path: Path) -> Path:
    """Empty directory standing in for a local hydrofabric release."""
    directory = tmp_path / "hydrofabric"
    directory.mkdir()
    return directory
