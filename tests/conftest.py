"""Pytest configuration shared across the suite."""

from pathlib import Path

import pytest

PROJECT_ROOT = Path(__file__).resolve().parents[1]


@pytest.fixture
def anyio_backend() -> str:
    """Force AnyIO-powered tests to run against asyncio backend only."""
    return "asyncio"


@pytest.fixture
def sample_fixtures_dir() -> Path:
    """Canned fake-mode responses shipped with the repository."""
    return PROJECT_ROOT / "fixtures" / "json"
