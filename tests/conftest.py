"""
Shared pytest fixtures.

Provides fixtures for:
- Mock databases (AsyncMock with execute)
- Settings objects with test-friendly intervals
- Replication simulators
"""
import os
from unittest.mock import AsyncMock, MagicMock

import pytest

# Test environment configuration
os.environ.setdefault("TELEMETRY_API_BASE_URL", "http://telemetry.test")

from channel_sync.config import CollectorSettings, TelemetryApiSettings
from channel_sync.database import Database
from tests.simulators import FeedDestinationSimulator, FeedSourceSimulator


# ============================================================================
# Database Fixtures
# ============================================================================

@pytest.fixture
def mock_db():
    """
    Mock main database.

    execute() returns no rows unless configured per test.
    """
    db = MagicMock(spec=Database)
    db.execute = AsyncMock(return_value=[])
    db.connect = AsyncMock()
    db.disconnect = AsyncMock()
    return db


@pytest.fixture
def feed_source():
    """Source database simulator."""
    return FeedSourceSimulator()


@pytest.fixture
def feed_destination():
    """Destination database simulator."""
    return FeedDestinationSimulator()


# ============================================================================
# Settings Fixtures
# ============================================================================

@pytest.fixture
def api_settings():
    """Telemetry API settings pointing at a test host."""
    return TelemetryApiSettings(base_url="http://telemetry.test", url_style="path", timeout=5.0)


@pytest.fixture
def collector_settings():
    """Collector settings with short intervals for scheduler tests."""
    return CollectorSettings(
        interval_ms=50,
        retry_attempts=2,
        retry_delay_ms=10,
        overlap_policy="skip",
    )


# ============================================================================
# Utility Fixtures
# ============================================================================

@pytest.fixture
def freeze_time():
    """
    Fixture for freezing time in tests.

    Usage:
        def test_something(freeze_time):
            with freeze_time("2026-01-15 12:00:00"):
                # time is frozen
    """
    from freezegun import freeze_time as _freeze_time
    return _freeze_time
