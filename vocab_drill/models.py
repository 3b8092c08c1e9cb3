from __future__ import annotations

from dataclasses import dataclass

EN_TO_PL = "EN_TO_PL"
PL_TO_EN = "PL_TO_EN"
DIRECTIONS = (EN_TO_PL, PL_TO_EN)

DIFFICULTY_LABELS = {1: "Easy", 2: "Medium", 3: "Hard"}


def reverse_direction(direction: str) -> str:
    return PL_TO_EN if direction == EN_TO_PL else EN_TO_PL


@dataclass(frozen=True)
class Word:
    id: str
    polish: str
    english: str
    category: str
    difficulty: int  # 1-3
    source_file: str = ""

    def prompt_for(self, direction: str) -> str:
        return self.english if direction == EN_TO_PL else self.polish

    def answer_for(self, direction: str) -> str:
        return self.polish if direction == EN_TO_PL else self.english

    def to_challenge(self, direction: str) -> Challenge:
        return Challenge(
            id=self.id,
            prompt_text=self.prompt_for(direction),
            accepted_answer_spec=self.answer_for(direction),
            category=self.category,
            difficulty=self.difficulty,
            direction=direction,
        )


@dataclass(frozen=True)
class Challenge:
    id: str
    prompt_text: str
    accepted_answer_spec: str  # raw dictionary answer, never sent to the client
    category: str
    difficulty: int
    direction: str

    def to_public(self) -> dict:
        return {
            "id": self.id,
            "prompt_text": self.prompt_text,
            "category": self.category,
            "difficulty": self.difficulty,
            "direction": self.direction,
        }

    @classmethod
    def from_public(cls, data: dict) -> Challenge:
        return cls(
            id=str(data["id"]),
            prompt_text=data["prompt_text"],
            accepted_answer_spec="",
            category=data.get("category", ""),
            difficulty=int(data.get("difficulty", 0)),
            direction=data.get("direction", EN_TO_PL),
        )


@dataclass(frozen=True)
class Verdict:
    is_correct: bool
    canonical_answer: str
    submitted_answer: str
    similarity: float = 0.0
    near_miss: bool = False

    def to_dict(self) -> dict:
        return {
            "is_correct": self.is_correct,
            "canonical_answer": self.canonical_answer,
            "submitted_answer": self.submitted_answer,
            "similarity": round(self.similarity, 4),
            "near_miss": self.near_miss,
        }

    @classmethod
    def from_dict(cls, data: dict) -> Verdict:
        return cls(
            is_correct=bool(data["is_correct"]),
            canonical_answer=data["canonical_answer"],
            submitted_answer=data["submitted_answer"],
            similarity=float(data.get("similarity", 0.0)),
            near_miss=bool(data.get("near_miss", False)),
        )


class _Outcome:
    """Named sentinel for non-word selector/service outcomes."""

    def __init__(self, name: str):
        self.name = name

    def __repr__(self) -> str:
        return self.name

    def __bool__(self) -> bool:
        return False


EXHAUSTED = _Outcome("EXHAUSTED")
NO_WORDS_AVAILABLE = _Outcome("NO_WORDS_AVAILABLE")


@dataclass
class WordFilters:
    category: str | None = None
    difficulty: int | None = None

    def matches(self, word: Word) -> bool:
        if self.category is not None and word.category != self.category:
            return False
        if self.difficulty is not None and word.difficulty != self.difficulty:
            return False
        return True

    def to_dict(self) -> dict:
        return {"category": self.category, "difficulty": self.difficulty}


@dataclass(frozen=True)
class QuizStats:
    correct: int = 0
    incorrect: int = 0

    @property
    def answered(self) -> int:
        return self.correct + self.incorrect

    @property
    def accuracy(self) -> float:
        if self.answered == 0:
            return 0
        return round(self.correct / self.answered * 100, 1)

