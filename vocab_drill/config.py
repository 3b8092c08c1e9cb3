from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path

CONFIG_PATH = Path(__file__).resolve().parent.parent / "config.json"

DEFAULTS = {
    "session_store": "memory",
    "db_path": "vocab_drill.db",
    "dictionary_files": [],
    "max_batch_size": 100,
    "session_max_count": 10000,
    "session_max_age_hours": 24,
    "similarity_hint_threshold": 0.8,
    "default_word_limit": 50,
    "server_url": "http://127.0.0.1:8765",
    "log_level": "INFO",
}


@dataclass
class Settings:
    session_store: str = DEFAULTS["session_store"]  # memory | sqlite
    db_path: str = DEFAULTS["db_path"]
    dictionary_files: list[str] = field(default_factory=lambda: list(DEFAULTS["dictionary_files"]))
    max_batch_size: int = DEFAULTS["max_batch_size"]
    session_max_count: int = DEFAULTS["session_max_count"]
    session_max_age_hours: int = DEFAULTS["session_max_age_hours"]
    similarity_hint_threshold: float = DEFAULTS["similarity_hint_threshold"]
    default_word_limit: int = DEFAULTS["default_word_limit"]
    server_url: str = DEFAULTS["server_url"]
    log_level: str = DEFAULTS["log_level"]

    @property
    def project_root(self) -> Path:
        return Path(__file__).resolve().parent.parent

    @property
    def data_dir(self) -> Path:
        return self.project_root / "data"

    @property
    def db_full_path(self) -> Path:
        return self.project_root / self.db_path

    def resolved_dictionary_files(self) -> list[Path]:
        if self.dictionary_files:
            root = self.project_root
            return [root / f for f in self.dictionary_files]
        return sorted(self.data_dir.glob("*.md"))

    def to_dict(self) -> dict:
        return {
            "session_store": self.session_store,
            "db_path": self.db_path,
            "dictionary_files": self.dictionary_files,
            "max_batch_size": self.max_batch_size,
            "session_max_count": self.session_max_count,
            "session_max_age_hours": self.session_max_age_hours,
            "similarity_hint_threshold": self.similarity_hint_threshold,
            "default_word_limit": self.default_word_limit,
            "server_url": self.server_url,
            "log_level": self.log_level,
        }


def load_settings() -> Settings:
    if CONFIG_PATH.exists():
        raw = json.loads(CONFIG_PATH.read_text())
        known = {f.name for f in Settings.__dataclass_fields__.values()}
        filtered = {k: v for k, v in raw.items() if k in known}
        return Settings(**filtered)
    return Settings()


def save_settings(settings: Settings) -> None:
    CONFIG_PATH.write_text(json.dumps(settings.to_dict(), indent=4) + "\n")
