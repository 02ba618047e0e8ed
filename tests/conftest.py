"""Shared test fixtures for polykv."""

import pytest
from polykv.core.registry import DriverRegistry, default_registry
from polykv.drivers.memory import MemoryStore


@pytest.fixture
def registry() -> DriverRegistry:
    """Create a registry with the built-in drivers."""
    return default_registry()


@pytest.fixture
def memory_store():
    """Create a fresh physical in-memory store."""
    return MemoryStore()
