"""Server-side quiz use cases: dispense challenges, judge answers, reset sessions."""
from __future__ import annotations

import logging
import random
import time
from datetime import timedelta
from typing import TYPE_CHECKING

from vocab_drill import judge
from vocab_drill.errors import NotFoundError, ValidationError
from vocab_drill.models import (
    DIRECTIONS,
    EXHAUSTED,
    NO_WORDS_AVAILABLE,
    Challenge,
    Verdict,
    WordFilters,
)
from vocab_drill.selector import select_many, select_next
from vocab_drill.sessions import validate_session_id

if TYPE_CHECKING:
    from vocab_drill.db import Database
    from vocab_drill.sessions import SessionStore

log = logging.getLogger("vocab_drill.service")

MAX_CATEGORY_LENGTH = 100


def parse_direction(value: str | None) -> str:
    if value not in DIRECTIONS:
        raise ValidationError.invalid_direction(value)
    return value


def parse_filters(category: str | None = None, difficulty: int | str | None = None) -> WordFilters:
    if category is not None:
        category = category.strip()
        if not category:
            raise ValidationError.empty_field("category")
        if len(category) > MAX_CATEGORY_LENGTH:
            raise ValidationError(
                f"category must be at most {MAX_CATEGORY_LENGTH} characters", "category"
            )
    if difficulty is not None:
        try:
            difficulty = int(difficulty)
        except (TypeError, ValueError):
            raise ValidationError.invalid_difficulty(difficulty) from None
        if difficulty not in (1, 2, 3):
            raise ValidationError.invalid_difficulty(difficulty)
    return WordFilters(category=category, difficulty=difficulty)


class QuizService:
    def __init__(
        self,
        db: Database,
        store: SessionStore,
        max_batch_size: int = 100,
        near_miss_threshold: float = judge.NEAR_MISS_THRESHOLD,
        rng: random.Random | None = None,
    ):
        self.db = db
        self.store = store
        self.max_batch_size = max_batch_size
        self.near_miss_threshold = near_miss_threshold
        self.rng = rng or random.Random()
        self.started_at = time.monotonic()

    # ── Challenges ────────────────────────────────────────────────────────

    def get_challenge(
        self,
        session_id: str | None,
        direction: str,
        category: str | None = None,
        difficulty: int | None = None,
        recycle: bool = True,
    ):
        """Dispense one unused word as a Challenge.

        Returns NO_WORDS_AVAILABLE when nothing matches the filters. When the
        session has used every matching word, the filter's exclusions are
        cleared and selection retried if *recycle* is set; otherwise
        EXHAUSTED is returned.
        """
        session_id = validate_session_id(session_id)
        direction = parse_direction(direction)
        filters = parse_filters(category, difficulty)

        pool = self.db.find_words(filters)
        if not pool:
            log.info("No words for filters %s (session %s)", filters.to_dict(), session_id)
            return NO_WORDS_AVAILABLE

        with self.store.lock(session_id):
            session = self.store.get_or_create(session_id)
            word = select_next(pool, session.used_word_ids, self.rng)
            if word is EXHAUSTED:
                if not recycle:
                    log.info("Session %s exhausted %d words", session_id, len(pool))
                    return EXHAUSTED
                log.info(
                    "Session %s used all %d words for %s, recycling",
                    session_id, len(pool), filters.to_dict(),
                )
                self.store.reset_for_pool(session_id, [w.id for w in pool])
                word = select_next(pool, (), self.rng)
            self.store.record_used(session_id, word.id)

        log.info("Dispensed word %s to session %s", word.id, session_id)
        return word.to_challenge(direction)

    def get_challenge_batch(
        self,
        session_id: str | None,
        direction: str,
        count: int,
        category: str | None = None,
        difficulty: int | None = None,
    ) -> list[Challenge]:
        """Up to *count* distinct challenges; an empty list means no words match."""
        session_id = validate_session_id(session_id)
        direction = parse_direction(direction)
        filters = parse_filters(category, difficulty)
        limit = max(1, min(int(count), self.max_batch_size))

        pool = self.db.find_words(filters)
        if not pool:
            log.info("No words for filters %s (session %s)", filters.to_dict(), session_id)
            return []

        with self.store.lock(session_id):
            session = self.store.get_or_create(session_id)
            excluded = set(session.used_word_ids)
            unused = sum(1 for w in pool if w.id not in excluded)
            if unused < limit:
                log.info(
                    "Session %s has %d unused of %d requested, recycling pool",
                    session_id, unused, limit,
                )
                self.store.reset_for_pool(session_id, [w.id for w in pool])
                excluded = set()
            picked = select_many(pool, excluded, limit, self.rng)
            for w in picked:
                self.store.record_used(session_id, w.id)

        log.info("Dispensed batch of %d words to session %s", len(picked), session_id)
        return [w.to_challenge(direction) for w in picked]

    # ── Answers ───────────────────────────────────────────────────────────

    def check_answer(
        self,
        session_id: str | None,
        challenge_id: str,
        answer: str,
        direction: str,
    ) -> Verdict:
        session_id = validate_session_id(session_id)
        direction = parse_direction(direction)
        if not challenge_id or not str(challenge_id).strip():
            raise ValidationError.empty_field("challenge_id")
        challenge_id = str(challenge_id).strip()

        word = self.db.get_word(challenge_id)
        if word is None:
            raise NotFoundError.word(challenge_id)
        if not self._session_has_seen(session_id, challenge_id):
            raise NotFoundError.word(challenge_id)

        verdict = judge.check(
            word.answer_for(direction), answer, self.near_miss_threshold
        )
        self.db.record_answer(session_id, challenge_id, direction, verdict.is_correct)
        log.debug(
            "Session %s answered word %s: %s (similarity %.2f)",
            session_id, challenge_id,
            "correct" if verdict.is_correct else "incorrect", verdict.similarity,
        )
        return verdict

    def _session_has_seen(self, session_id: str, word_id: str) -> bool:
        if not self.store.exists(session_id):
            return False
        with self.store.lock(session_id):
            return word_id in self.store.get_or_create(session_id).seen_word_ids

    # ── Sessions ──────────────────────────────────────────────────────────

    def reset_session(self, session_id: str | None) -> bool:
        session_id = validate_session_id(session_id)
        with self.store.lock(session_id):
            existed = self.store.delete(session_id)
        log.info("Reset session %s%s", session_id, "" if existed else " (unknown)")
        return True

    def sweep_expired_sessions(self, max_age: timedelta) -> int:
        return self.store.delete_expired(max_age)

    # ── Dictionary ────────────────────────────────────────────────────────

    def categories(self) -> list[str]:
        return self.db.get_categories()

    def difficulties(self) -> list[int]:
        return self.db.get_difficulties()

    def word_count(self, category: str | None = None, difficulty: int | None = None) -> int:
        return self.db.get_word_count(parse_filters(category, difficulty))

    def all_words(self) -> list[dict]:
        return [
            {
                "id": w.id,
                "polish": w.polish,
                "english": w.english,
                "category": w.category,
                "difficulty": w.difficulty,
            }
            for w in self.db.get_all_words()
        ]

    def health(self) -> dict:
        return {
            "status": "ok",
            "uptime": round(time.monotonic() - self.started_at, 1),
            "session_count": self.store.count(),
            "word_count": self.db.get_word_count(),
        }
