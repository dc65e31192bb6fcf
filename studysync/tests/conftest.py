"""Shared fixtures: in-memory SQLite database and mocked provider HTTP."""

import os

# Settings are read at import time, so the environment comes first
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["GOOGLE_CLIENT_ID"] = "test-client-id"
os.environ["GOOGLE_CLIENT_SECRET"] = "test-client-secret"
os.environ["APP_URL"] = "http://testserver"

from datetime import datetime, timedelta, timezone  # noqa: E402

import pytest  # noqa: E402

from studysync.core.db import SessionLocal, engine  # noqa: E402
from studysync.models import Base, UserProfile  # noqa: E402
from studysync.tests.helpers import CANVAS_BASE, USER_ID  # noqa: E402


@pytest.fixture
def db():
    """Fresh schema per test."""
    Base.metadata.create_all(engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(engine)


@pytest.fixture
def profile(db):
    profile = UserProfile(
        id=USER_ID,
        timezone="UTC",
        canvas_token="canvas-token",
        canvas_base_url=CANVAS_BASE,
        canvas_calendar_url="https://canvas.test/feeds/calendars/user_abc.ics",
        google_access_token="google-access",
        google_refresh_token="google-refresh",
        google_token_expiry=datetime.now(timezone.utc) + timedelta(hours=1),
    )
    db.add(profile)
    db.commit()
    return profile

