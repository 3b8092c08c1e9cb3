from __future__ import annotations

import sqlite3
from datetime import datetime, timezone
from pathlib import Path

from vocab_drill.models import Word, WordFilters

SCHEMA = """
CREATE TABLE IF NOT EXISTS words (
    id TEXT PRIMARY KEY,
    polish TEXT NOT NULL,
    english TEXT NOT NULL,
    category TEXT NOT NULL,
    difficulty INTEGER NOT NULL,
    source_file TEXT
);

CREATE INDEX IF NOT EXISTS idx_words_filters ON words (category, difficulty);

CREATE TABLE IF NOT EXISTS sessions (
    session_id TEXT PRIMARY KEY,
    created_at TEXT NOT NULL,
    last_accessed_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS session_words (
    session_id TEXT NOT NULL REFERENCES sessions(session_id),
    word_id TEXT NOT NULL,
    used INTEGER DEFAULT 1,
    PRIMARY KEY (session_id, word_id)
);

CREATE TABLE IF NOT EXISTS answers (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    session_id TEXT,
    word_id TEXT NOT NULL,
    direction TEXT NOT NULL,
    was_correct INTEGER NOT NULL,
    answered_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS file_mtimes (
    file_path TEXT PRIMARY KEY,
    mtime_ns INTEGER NOT NULL
);
"""


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _row_to_word(row: sqlite3.Row) -> Word:
    return Word(
        id=row["id"],
        polish=row["polish"],
        english=row["english"],
        category=row["category"],
        difficulty=row["difficulty"],
        source_file=row["source_file"] or "",
    )


class Database:
    def __init__(self, db_path: Path):
        self.db_path = db_path
        self.conn = sqlite3.connect(str(db_path), check_same_thread=False)
        self.conn.row_factory = sqlite3.Row
        self.conn.execute("PRAGMA journal_mode=WAL")
        self._init_schema()

    def _init_schema(self) -> None:
        self.conn.executescript(SCHEMA)
        self.conn.commit()

    def close(self) -> None:
        self.conn.close()

    # ── Import ────────────────────────────────────────────────────────────

    def delete_words_by_source(self, source_file: str) -> int:
        """Remove all words originally imported from *source_file*."""
        cur = self.conn.execute(
            "DELETE FROM words WHERE source_file = ?", (source_file,)
        )
        self.conn.commit()
        return cur.rowcount

    def import_words(self, words: list[Word]) -> int:
        count = 0
        for w in words:
            self.conn.execute(
                "INSERT OR REPLACE INTO words "
                "(id, polish, english, category, difficulty, source_file) "
                "VALUES (?, ?, ?, ?, ?, ?)",
                (w.id, w.polish, w.english, w.category, w.difficulty, w.source_file),
            )
            count += 1
        self.conn.commit()
        return count

    # ── File mtimes ─────────────────────────────────────────────────────

    def get_file_mtime(self, file_path: str) -> int | None:
        row = self.conn.execute(
            "SELECT mtime_ns FROM file_mtimes WHERE file_path = ?", (file_path,)
        ).fetchone()
        return row[0] if row else None

    def set_file_mtime(self, file_path: str, mtime_ns: int) -> None:
        self.conn.execute(
            "INSERT OR REPLACE INTO file_mtimes (file_path, mtime_ns) VALUES (?, ?)",
            (file_path, mtime_ns),
        )
        self.conn.commit()

    # ── Words ─────────────────────────────────────────────────────────────

    def get_word_count(self, filters: WordFilters | None = None) -> int:
        where, params = self._filter_clause(filters)
        row = self.conn.execute(f"SELECT COUNT(*) FROM words{where}", params).fetchone()
        return row[0]

    def get_all_words(self) -> list[Word]:
        rows = self.conn.execute(
            "SELECT * FROM words ORDER BY CAST(id AS INTEGER), id"
        ).fetchall()
        return [_row_to_word(r) for r in rows]

    def get_word(self, word_id: str) -> Word | None:
        row = self.conn.execute(
            "SELECT * FROM words WHERE id = ?", (word_id,)
        ).fetchone()
        return _row_to_word(row) if row else None

    def find_words(self, filters: WordFilters | None = None) -> list[Word]:
        where, params = self._filter_clause(filters)
        rows = self.conn.execute(
            f"SELECT * FROM words{where} ORDER BY CAST(id AS INTEGER), id", params
        ).fetchall()
        return [_row_to_word(r) for r in rows]

    def get_categories(self) -> list[str]:
        rows = self.conn.execute(
            "SELECT DISTINCT category FROM words ORDER BY category"
        ).fetchall()
        return [r[0] for r in rows]

    def get_difficulties(self) -> list[int]:
        rows = self.conn.execute(
            "SELECT DISTINCT difficulty FROM words ORDER BY difficulty"
        ).fetchall()
        return [r[0] for r in rows]

    @staticmethod
    def _filter_clause(filters: WordFilters | None) -> tuple[str, tuple]:
        if filters is None:
            return "", ()
        clauses = []
        params: list = []
        if filters.category is not None:
            clauses.append("category = ?")
            params.append(filters.category)
        if filters.difficulty is not None:
            clauses.append("difficulty = ?")
            params.append(filters.difficulty)
        if not clauses:
            return "", ()
        return " WHERE " + " AND ".join(clauses), tuple(params)

    # ── Sessions ──────────────────────────────────────────────────────────

    def get_session(self, session_id: str) -> dict | None:
        row = self.conn.execute(
            "SELECT * FROM sessions WHERE session_id = ?", (session_id,)
        ).fetchone()
        return dict(row) if row else None

    def ensure_session(self, session_id: str) -> dict:
        now = _now()
        self.conn.execute(
            "INSERT OR IGNORE INTO sessions (session_id, created_at, last_accessed_at) "
            "VALUES (?, ?, ?)",
            (session_id, now, now),
        )
        self.conn.execute(
            "UPDATE sessions SET last_accessed_at = ? WHERE session_id = ?",
            (now, session_id),
        )
        self.conn.commit()
        return self.get_session(session_id)

    def get_session_word_ids(self, session_id: str, used_only: bool = False) -> set[str]:
        sql = "SELECT word_id FROM session_words WHERE session_id = ?"
        if used_only:
            sql += " AND used = 1"
        rows = self.conn.execute(sql, (session_id,)).fetchall()
        return {r[0] for r in rows}

    def mark_session_word(self, session_id: str, word_id: str) -> None:
        self.conn.execute(
            "INSERT OR REPLACE INTO session_words (session_id, word_id, used) "
            "VALUES (?, ?, 1)",
            (session_id, word_id),
        )
        self.conn.execute(
            "UPDATE sessions SET last_accessed_at = ? WHERE session_id = ?",
            (_now(), session_id),
        )
        self.conn.commit()

    def release_session_words(self, session_id: str, word_ids: list[str] | None = None) -> None:
        """Clear the used flag (all words, or just *word_ids*); seen history stays."""
        if word_ids is None:
            self.conn.execute(
                "UPDATE session_words SET used = 0 WHERE session_id = ?", (session_id,)
            )
        else:
            self.conn.executemany(
                "UPDATE session_words SET used = 0 WHERE session_id = ? AND word_id = ?",
                [(session_id, wid) for wid in word_ids],
            )
        self.conn.commit()

    def delete_session(self, session_id: str) -> bool:
        self.conn.execute("DELETE FROM session_words WHERE session_id = ?", (session_id,))
        cur = self.conn.execute("DELETE FROM sessions WHERE session_id = ?", (session_id,))
        self.conn.commit()
        return cur.rowcount > 0

    def delete_sessions_before(self, cutoff_iso: str) -> int:
        ids = [
            row[0]
            for row in self.conn.execute(
                "SELECT session_id FROM sessions WHERE last_accessed_at < ?", (cutoff_iso,)
            ).fetchall()
        ]
        for sid in ids:
            self.conn.execute("DELETE FROM session_words WHERE session_id = ?", (sid,))
        self.conn.execute("DELETE FROM sessions WHERE last_accessed_at < ?", (cutoff_iso,))
        self.conn.commit()
        return len(ids)

    def get_oldest_session_id(self) -> str | None:
        row = self.conn.execute(
            "SELECT session_id FROM sessions ORDER BY last_accessed_at ASC LIMIT 1"
        ).fetchone()
        return row[0] if row else None

    def get_session_count(self) -> int:
        row = self.conn.execute("SELECT COUNT(*) FROM sessions").fetchone()
        return row[0]

    # ── Answers ───────────────────────────────────────────────────────────

    def record_answer(
        self, session_id: str | None, word_id: str, direction: str, correct: bool
    ) -> None:
        self.conn.execute(
            "INSERT INTO answers (session_id, word_id, direction, was_correct, answered_at) "
            "VALUES (?, ?, ?, ?, ?)",
            (session_id, word_id, direction, int(correct), _now()),
        )
        self.conn.commit()

    def get_stats(self) -> dict:
        answer_stats = self.conn.execute(
            "SELECT COALESCE(SUM(was_correct), 0) AS correct, COUNT(*) AS total "
            "FROM answers"
        ).fetchone()
        total = answer_stats["total"]
        correct = answer_stats["correct"]

        hardest = self.conn.execute(
            "SELECT word_id, SUM(1 - was_correct) AS misses FROM answers "
            "GROUP BY word_id HAVING misses > 0 ORDER BY misses DESC LIMIT 5"
        ).fetchall()

        return {
            "total_words": self.get_word_count(),
            "total_categories": len(self.get_categories()),
            "total_sessions": self.get_session_count(),
            "total_answers": total,
            "total_correct": correct,
            "accuracy": round(correct / total * 100, 1) if total > 0 else 0,
            "most_missed": [dict(r) for r in hardest],
        }
