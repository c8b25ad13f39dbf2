"""
Pytest configuration and fixtures

Every test gets a fresh Flask app with its own tracker registry, so no
history leaks between tests.
"""
import pytest
from datetime import datetime, timedelta, timezone

from app import create_app
from history import Entry


@pytest.fixture
def app():
    """App with an empty history for new sessions"""
    return create_app({"TESTING": True, "SEED_SAMPLE_DATA": False})


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def seeded_client():
    """Client whose session starts with the sample entries"""
    app = create_app({"TESTING": True, "SEED_SAMPLE_DATA": True})
    return app.test_client()


@pytest.fixture
def make_entry():
    """Build entries with predictable timestamps: day N of January 2025"""
    base = datetime(2025, 1, 1, tzinfo=timezone.utc)

    def _make(entry_id, user, bmi, day):
        return Entry(id=entry_id, user=user, bmi=bmi, timestamp=base + timedelta(days=day))

    return _make
