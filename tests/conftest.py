"""Shared test fixtures."""
from __future__ import annotations

import random
from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient

from vocab_drill import app as app_module
from vocab_drill.app import app
from vocab_drill.config import Settings
from vocab_drill.db import Database
from vocab_drill.models import Word
from vocab_drill.service import QuizService
from vocab_drill.sessions import InMemorySessionStore


@pytest.fixture
def tmp_db(tmp_path):
    """Create a fresh temporary database."""
    db = Database(tmp_path / "test.db")
    yield db
    db.close()


@pytest.fixture
def rng():
    return random.Random(1234)


@pytest.fixture
def sample_words():
    """A small two-category dictionary."""
    return [
        Word("1", "ziemniak/kartofel", "potato", "food", 1, "dictionary.md"),
        Word("2", "pogodzić się z (czymś)", "come to terms with (something)", "phrases", 2, "dictionary.md"),
        Word("3", "dom", "house/home", "food", 1, "dictionary.md"),
        Word("4", "wziąć (coś) pod uwagę", "take (something) into account", "phrases", 3, "dictionary.md"),
        Word("5", "samochód/auto", "car", "food", 2, "dictionary.md"),
    ]


@pytest.fixture
def populated_db(tmp_db, sample_words):
    """A database pre-loaded with sample words."""
    tmp_db.import_words(sample_words)
    return tmp_db


@pytest.fixture
def service(populated_db, rng):
    return QuizService(populated_db, InMemorySessionStore(), rng=rng)


@pytest.fixture
def dictionary_md_content():
    """Minimal dictionary markdown for parser testing."""
    return """\
# Słownik

## kolokacje

| ID | Polish | English | Difficulty |
|----|--------|---------|------------|
| 1 | **pogodzić się z (czymś)** | come to terms with (something) | 2 |
| 2 | **wziąć (coś) pod uwagę** | take (something) into account | 3 |

## A1

| ID | Polish | English | Difficulty |
|----|--------|---------|------------|
| 101 | **ziemniak/kartofel** | potato | 1 |
| 102 | **dom** | house/home | 1 |
| 103 | **kot** | cat | 7 |
| not a table row
"""


@pytest.fixture
def test_app(tmp_path):
    """Set up test app with temporary database and settings."""
    db = Database(tmp_path / "test.db")
    settings = Settings(db_path=str(tmp_path / "test.db"), dictionary_files=[])

    # Set globals BEFORE creating TestClient so startup() is a no-op
    app_module._db = db
    app_module._settings = settings
    app_module._service = QuizService(db, InMemorySessionStore(), rng=random.Random(5))

    # Patch save_settings so tests never write the real config
    with patch("vocab_drill.app.save_settings"):
        client = TestClient(app, raise_server_exceptions=False)
        yield client, db, settings
        client.close()

    db.close()
    app_module._db = None
    app_module._settings = None
    app_module._service = None


@pytest.fixture
def test_app_with_data(test_app, sample_words):
    """Test app with the sample words imported."""
    client, db, settings = test_app
    db.import_words(sample_words)
    return client, db, settings
