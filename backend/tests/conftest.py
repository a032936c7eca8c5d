"""
Pytest configuration and shared fixtures.
"""
import pytest

from app.services.profile_store import MemoryStorage, ProfileStore
from app.services.profiles import ProfileManager

DEFAULT_KEY = "sk-or-test-default"


# =============================================================================
# Profile fixtures
# =============================================================================

@pytest.fixture
def storage():
    return MemoryStorage()


@pytest.fixture
def store(storage):
    return ProfileStore(storage)


@pytest.fixture
def manager(store):
    return ProfileManager(store, default_api_key=DEFAULT_KEY)


# =============================================================================
# Report fixtures
# =============================================================================

def make_event(step_id, name, start, end, duration):
    return {
        "startupStep": {"id": step_id, "name": name, "tags": []},
        "startTime": start,
        "endTime": end,
        "duration": duration,
    }


@pytest.fixture
def sample_report():
    """Small /actuator/startup document with one clear bottleneck."""
    return {
        "springBootVersion": "3.2.0",
        "timeline": {
            "startTime": "2024-01-01T10:00:00Z",
            "events": [
                make_event(0, "spring.boot.application.starting",
                           "2024-01-01T10:00:00.000Z", "2024-01-01T10:00:00.100Z", "PT0.1S"),
                make_event(1, "spring.beans.instantiate",
                           "2024-01-01T10:00:00.100Z", "2024-01-01T10:00:00.200Z", "PT0.1S"),
                make_event(2, "spring.context.refresh",
                           "2024-01-01T10:00:00.200Z", "2024-01-01T10:00:02.200Z", "PT2S"),
                make_event(3, "spring.boot.application.ready",
                           "2024-01-01T10:00:02.200Z", "2024-01-01T10:00:02.500Z", 100),
            ],
        },
    }
