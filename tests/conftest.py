"""
Shared test fixtures for TeachDash.
Installs an in-memory Supabase double and a scripted AI provider.
Zero network calls: all data comes from local fixtures.
"""
import pytest

from teachdash import db as db_module
from teachdash.app import create_app
from teachdash.services import ai_client
from fake_provider import FakeProvider
from fake_supabase import FakeSupabase

SEED_CLASSES = [
    {"name": "English-1", "periods": "4th and 6th", "color": "#4ECDC4"},
    {"name": "English-2", "periods": "1st, 3rd, and 5th", "color": "#6C8EBF"},
    {"name": "French-1", "periods": "", "color": "#E8A87C"},
]

SEED_SETTINGS = [
    {"key": "school_name", "value": "Stratford High School"},
    {"key": "teacher_name", "value": "R. Shaw"},
    {"key": "school_year", "value": "2025-2026"},
    {"key": "ai_provider", "value": "gemini"},
    {"key": "gemini_api_key", "value": "test-gemini-key-1234"},
]


@pytest.fixture
def fake_db():
    """Fresh in-memory database seeded with the default classes and settings."""
    fake = FakeSupabase({"classes": SEED_CLASSES, "settings": SEED_SETTINGS})
    db_module.set_supabase(fake)
    yield fake
    db_module.set_supabase(None)


@pytest.fixture
def provider(monkeypatch):
    """Every route that resolves an AI provider gets this scripted one."""
    fake = FakeProvider()
    monkeypatch.setattr(ai_client, "get_provider", lambda ai_config, sleep=None: fake)
    return fake


@pytest.fixture
def app(fake_db):
    return create_app({"TESTING": True})


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def class_ids(fake_db):
    """{'English-1': 1, ...} for the seeded classes."""
    return {row['name']: row['id'] for row in fake_db.rows('classes')}
