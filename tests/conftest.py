"""
Pytest fixtures for forge tests.

Provides in-memory stores, a private event bus and a small tier table.
"""

import pytest

from celestial_forge.state import (
    EventBus,
    ForgeConfig,
    ForgeManager,
    MemoryForgeStore,
    TierThreshold,
)


@pytest.fixture
def config():
    """Ten-response cycles worth 5 CP, two tiers."""
    return ForgeConfig(
        cycle_length=10,
        cp_award_per_cycle=5,
        tiers=(
            TierThreshold(name="Spark Initiate", min_cp=0),
            TierThreshold(name="Ascendant", min_cp=50),
        ),
    )


@pytest.fixture
def memory_store():
    """In-memory forge store for testing."""
    return MemoryForgeStore()


@pytest.fixture
def bus():
    """Event bus private to one test."""
    return EventBus()


@pytest.fixture
def manager(config, memory_store, bus):
    """Forge manager with in-memory store."""
    return ForgeManager(config, memory_store, bus=bus)


@pytest.fixture
def character(manager):
    """Fresh character with no CP."""
    return manager.create_character("Test Initiate", world="Emberfall")
