"""Tests for the database layer."""
from __future__ import annotations

from vocab_drill.models import Word, WordFilters


class TestImport:
    def test_import_words(self, tmp_db, sample_words):
        count = tmp_db.import_words(sample_words)
        assert count == 5
        assert tmp_db.get_word_count() == 5

    def test_import_words_idempotent(self, tmp_db, sample_words):
        tmp_db.import_words(sample_words)
        tmp_db.import_words(sample_words)
        assert tmp_db.get_word_count() == 5

    def test_delete_by_source(self, populated_db):
        populated_db.import_words([Word("99", "kot", "cat", "animals", 1, "other.md")])
        assert populated_db.delete_words_by_source("dictionary.md") == 5
        assert [w.id for w in populated_db.get_all_words()] == ["99"]

    def test_file_mtime(self, tmp_db):
        assert tmp_db.get_file_mtime("a.md") is None
        tmp_db.set_file_mtime("a.md", 123)
        tmp_db.set_file_mtime("a.md", 456)
        assert tmp_db.get_file_mtime("a.md") == 456


class TestWords:
    def test_get_word(self, populated_db):
        w = populated_db.get_word("1")
        assert w.polish == "ziemniak/kartofel"
        assert w.english == "potato"
        assert w.category == "food"
        assert w.difficulty == 1
        assert w.source_file == "dictionary.md"

    def test_get_missing_word(self, populated_db):
        assert populated_db.get_word("nope") is None

    def test_numeric_id_order(self, tmp_db):
        tmp_db.import_words([
            Word("10", "a", "a", "c", 1),
            Word("9", "b", "b", "c", 1),
            Word("101", "c", "c", "c", 1),
        ])
        assert [w.id for w in tmp_db.get_all_words()] == ["9", "10", "101"]

    def test_find_by_category(self, populated_db):
        words = populated_db.find_words(WordFilters(category="phrases"))
        assert {w.id for w in words} == {"2", "4"}

    def test_find_by_category_and_difficulty(self, populated_db):
        words = populated_db.find_words(WordFilters(category="food", difficulty=1))
        assert {w.id for w in words} == {"1", "3"}

    def test_find_no_match(self, populated_db):
        assert populated_db.find_words(WordFilters(category="nope")) == []

    def test_count_with_filters(self, populated_db):
        assert populated_db.get_word_count(WordFilters(difficulty=2)) == 2
        assert populated_db.get_word_count(WordFilters()) == 5

    def test_categories_sorted(self, populated_db):
        assert populated_db.get_categories() == ["food", "phrases"]

    def test_difficulties_sorted(self, populated_db):
        assert populated_db.get_difficulties() == [1, 2, 3]


class TestSessions:
    def test_ensure_session_idempotent(self, tmp_db):
        first = tmp_db.ensure_session("s")
        tmp_db.ensure_session("s")
        assert tmp_db.get_session_count() == 1
        assert tmp_db.get_session("s")["created_at"] == first["created_at"]

    def test_mark_and_release(self, tmp_db):
        tmp_db.ensure_session("s")
        tmp_db.mark_session_word("s", "1")
        tmp_db.mark_session_word("s", "2")
        tmp_db.release_session_words("s", ["1"])
        assert tmp_db.get_session_word_ids("s", used_only=True) == {"2"}
        assert tmp_db.get_session_word_ids("s") == {"1", "2"}
        tmp_db.release_session_words("s")
        assert tmp_db.get_session_word_ids("s", used_only=True) == set()

    def test_delete_session(self, tmp_db):
        tmp_db.ensure_session("s")
        tmp_db.mark_session_word("s", "1")
        assert tmp_db.delete_session("s") is True
        assert tmp_db.get_session("s") is None
        assert tmp_db.get_session_word_ids("s") == set()
        assert tmp_db.delete_session("s") is False


class TestStats:
    def test_empty(self, tmp_db):
        stats = tmp_db.get_stats()
        assert stats["total_words"] == 0
        assert stats["total_answers"] == 0
        assert stats["accuracy"] == 0
        assert stats["most_missed"] == []

    def test_with_answers(self, populated_db):
        populated_db.record_answer("s", "1", "EN_TO_PL", True)
        populated_db.record_answer("s", "2", "EN_TO_PL", False)
        populated_db.record_answer("s", "2", "PL_TO_EN", False)
        populated_db.record_answer("s", "3", "EN_TO_PL", True)
        stats = populated_db.get_stats()
        assert stats["total_words"] == 5
        assert stats["total_categories"] == 2
        assert stats["total_answers"] == 4
        assert stats["total_correct"] == 2
        assert stats["accuracy"] == 50.0
        assert stats["most_missed"][0] == {"word_id": "2", "misses": 2}
