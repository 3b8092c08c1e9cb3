"""Tests for configuration loading and saving."""
from __future__ import annotations

import json
from unittest.mock import patch

from vocab_drill.config import DEFAULTS, Settings, load_settings, save_settings


class TestSettings:
    def test_defaults(self):
        s = Settings()
        assert s.session_store == "memory"
        assert s.max_batch_size == 100
        assert s.similarity_hint_threshold == 0.8
        assert s.default_word_limit == 50

    def test_to_dict(self):
        d = Settings().to_dict()
        assert d == DEFAULTS
        assert len(d) == 10

    def test_to_dict_roundtrip(self):
        s = Settings(session_store="sqlite", max_batch_size=20)
        s2 = Settings(**s.to_dict())
        assert s2.session_store == "sqlite"
        assert s2.max_batch_size == 20

    def test_default_dictionary_files(self):
        files = Settings().resolved_dictionary_files()
        assert any(f.name == "dictionary.md" for f in files)

    def test_explicit_dictionary_files(self):
        s = Settings(dictionary_files=["words/extra.md"])
        assert s.resolved_dictionary_files() == [s.project_root / "words/extra.md"]

    def test_db_full_path(self):
        s = Settings(db_path="drill.db")
        assert s.db_full_path == s.project_root / "drill.db"


class TestLoadSaveSettings:
    def test_load_from_file(self, tmp_path):
        config_path = tmp_path / "config.json"
        config_path.write_text(json.dumps({"session_store": "sqlite", "max_batch_size": 30}))

        with patch("vocab_drill.config.CONFIG_PATH", config_path):
            s = load_settings()
        assert s.session_store == "sqlite"
        assert s.max_batch_size == 30
        # Defaults for unspecified fields
        assert s.default_word_limit == 50

    def test_load_missing_file(self, tmp_path):
        with patch("vocab_drill.config.CONFIG_PATH", tmp_path / "nonexistent.json"):
            s = load_settings()
        assert s.session_store == "memory"

    def test_save_creates_file(self, tmp_path):
        config_path = tmp_path / "config.json"
        with patch("vocab_drill.config.CONFIG_PATH", config_path):
            save_settings(Settings(log_level="DEBUG"))

        data = json.loads(config_path.read_text())
        assert data["log_level"] == "DEBUG"

    def test_unknown_keys_ignored(self, tmp_path):
        config_path = tmp_path / "config.json"
        config_path.write_text(json.dumps({"session_store": "memory", "unknown_key": "value"}))

        with patch("vocab_drill.config.CONFIG_PATH", config_path):
            s = load_settings()
        assert not hasattr(s, "unknown_key")
