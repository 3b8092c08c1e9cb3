"""Quiz progression state machine.

The machine is a pure transition function over an explicit phase and an
immutable context::

    transition(phase, context, event) -> (phase, context)

``QuizMachine`` wraps it with the current state and one dispatcher per
action. Network work is not done here: the phase tells the caller which
request is outstanding (see ``vocab_drill.client.QuizDriver``), and results
come back in as events tagged with the run id they were issued under.

Phases::

    setup -> loading | collectingPool
          -> playing.waitingForInput -> playing.checking -> playing.showingResult
             -> loadingNext                  (standard / timed)
             -> playing.repeatWord           (reinforcement, resolved immediately)
          -> finished
    error  (any fetch failure that is not exhaustion)
"""
from __future__ import annotations

import logging
import random
import uuid
from dataclasses import dataclass, field, replace
from enum import Enum

from vocab_drill.errors import ValidationError
from vocab_drill.models import DIRECTIONS, EN_TO_PL, Challenge, QuizStats, Verdict, reverse_direction
from vocab_drill.selector import shuffled

log = logging.getLogger("vocab_drill.machine")

DEFAULT_WORD_LIMIT = 50
# Timed runs end on the clock only, so the word count must never get there first.
TIMED_WORD_LIMIT = 1_000_000


class Phase(str, Enum):
    SETUP = "setup"
    LOADING = "loading"
    COLLECTING_POOL = "collectingPool"
    WAITING_FOR_INPUT = "playing.waitingForInput"
    CHECKING = "playing.checking"
    SHOWING_RESULT = "playing.showingResult"
    REPEAT_WORD = "playing.repeatWord"
    LOADING_NEXT = "loadingNext"
    FINISHED = "finished"
    ERROR = "error"

    @property
    def is_playing(self) -> bool:
        return self.value.startswith("playing.")

    @property
    def is_awaiting_response(self) -> bool:
        return self in _AWAITING


_AWAITING = frozenset({Phase.LOADING, Phase.COLLECTING_POOL, Phase.CHECKING, Phase.LOADING_NEXT})
# Phases in which the countdown runs.
_CLOCKED = _AWAITING | frozenset({Phase.WAITING_FOR_INPUT, Phase.SHOWING_RESULT})


def _new_run_id() -> str:
    return uuid.uuid4().hex


@dataclass(frozen=True)
class QuizSettings:
    direction: str = EN_TO_PL
    category: str | None = None
    difficulty: int | None = None
    word_limit: int = DEFAULT_WORD_LIMIT
    time_limit_seconds: int = 0

    def validate(self) -> None:
        if self.direction not in DIRECTIONS:
            raise ValidationError.invalid_direction(self.direction)
        if self.difficulty is not None and self.difficulty not in (1, 2, 3):
            raise ValidationError.invalid_difficulty(self.difficulty)
        if self.word_limit < 1:
            raise ValidationError("word_limit must be at least 1", "word_limit")
        if self.time_limit_seconds < 0:
            raise ValidationError("time_limit_seconds must not be negative", "time_limit_seconds")


@dataclass(frozen=True)
class QuizContext:
    # Settings
    direction: str = EN_TO_PL
    category: str | None = None
    difficulty: int | None = None
    word_limit: int = DEFAULT_WORD_LIMIT
    time_limit_seconds: int = 0
    reinforce_mode: bool = False

    # Run state
    current_challenge: Challenge | None = None
    user_input: str = ""
    last_verdict: Verdict | None = None
    stats: QuizStats = QuizStats()
    completed_count: int = 0
    time_remaining_seconds: int = 0

    # Reinforcement only
    word_pool: tuple[Challenge, ...] = ()
    repeat_queue: tuple[Challenge, ...] = ()
    shuffled_upcoming: tuple[Challenge, ...] = ()
    mastered_count: int = 0

    run_id: str = field(default_factory=_new_run_id)
    error: str | None = None
    no_more_words: bool = False
    recycle_requested: bool = False

    @property
    def is_timed(self) -> bool:
        return self.time_limit_seconds > 0


# ── Events ────────────────────────────────────────────────────────────────
# Events fed back from the RPC boundary carry the run id their request was
# issued under; None means "current run" (direct injection).


@dataclass(frozen=True)
class Start:
    settings: QuizSettings = QuizSettings()


@dataclass(frozen=True)
class StartReinforce:
    settings: QuizSettings = QuizSettings()


@dataclass(frozen=True)
class InputChanged:
    value: str


@dataclass(frozen=True)
class Submit:
    pass


@dataclass(frozen=True)
class RequestNext:
    pass


@dataclass(frozen=True)
class ToggleDirection:
    pass


@dataclass(frozen=True)
class Reset:
    pass


@dataclass(frozen=True)
class WordLoaded:
    challenge: Challenge
    run_id: str | None = None


@dataclass(frozen=True)
class PoolLoaded:
    challenges: tuple[Challenge, ...]
    run_id: str | None = None


@dataclass(frozen=True)
class NoMoreWords:
    run_id: str | None = None


@dataclass(frozen=True)
class LoadError:
    error: str
    run_id: str | None = None


@dataclass(frozen=True)
class VerdictReceived:
    verdict: Verdict
    run_id: str | None = None


@dataclass(frozen=True)
class TimerTick:
    run_id: str | None = None


@dataclass(frozen=True)
class TimerEnd:
    run_id: str | None = None


_RPC_EVENTS = (WordLoaded, PoolLoaded, NoMoreWords, LoadError, VerdictReceived, TimerTick, TimerEnd)


# ── Guards ────────────────────────────────────────────────────────────────

def is_quiz_complete(ctx: QuizContext) -> bool:
    if ctx.is_timed:
        return False
    if ctx.reinforce_mode:
        return ctx.mastered_count >= len(ctx.word_pool)
    return ctx.completed_count >= ctx.word_limit


def _is_stale(ctx: QuizContext, event) -> bool:
    run_id = getattr(event, "run_id", None)
    return run_id is not None and run_id != ctx.run_id


# ── Actions ───────────────────────────────────────────────────────────────

def _apply_settings(settings: QuizSettings, reinforce: bool) -> QuizContext:
    settings.validate()
    time_limit = 0 if reinforce else settings.time_limit_seconds
    word_limit = TIMED_WORD_LIMIT if time_limit > 0 else settings.word_limit
    return QuizContext(
        direction=settings.direction,
        category=settings.category,
        difficulty=settings.difficulty,
        word_limit=word_limit,
        time_limit_seconds=time_limit,
        reinforce_mode=reinforce,
        time_remaining_seconds=time_limit,
    )


def _present(ctx: QuizContext, challenge: Challenge | None, **changes) -> QuizContext:
    return replace(
        ctx,
        current_challenge=challenge,
        user_input="",
        last_verdict=None,
        **changes,
    )


def _start_pool(ctx: QuizContext, challenges, rng) -> QuizContext:
    pool: list[Challenge] = []
    seen: set[str] = set()
    for ch in challenges:
        if ch.id not in seen:
            seen.add(ch.id)
            pool.append(ch)
    first, *rest = shuffled(pool, rng)
    return _present(
        ctx,
        first,
        word_pool=tuple(pool),
        shuffled_upcoming=tuple(rest),
        repeat_queue=(),
        mastered_count=0,
        no_more_words=False,
    )


def _process_verdict(ctx: QuizContext, verdict: Verdict) -> QuizContext:
    stats = QuizStats(
        correct=ctx.stats.correct + (1 if verdict.is_correct else 0),
        incorrect=ctx.stats.incorrect + (0 if verdict.is_correct else 1),
    )
    current = ctx.current_challenge

    if not ctx.reinforce_mode:
        return replace(
            ctx,
            last_verdict=verdict,
            stats=stats,
            completed_count=ctx.completed_count + 1,
        )

    if verdict.is_correct:
        return replace(
            ctx,
            last_verdict=verdict,
            stats=stats,
            mastered_count=ctx.mastered_count + 1,
            repeat_queue=tuple(c for c in ctx.repeat_queue if c.id != current.id),
            shuffled_upcoming=tuple(c for c in ctx.shuffled_upcoming if c.id != current.id),
        )

    queued = any(c.id == current.id for c in ctx.repeat_queue) or any(
        c.id == current.id for c in ctx.shuffled_upcoming
    )
    return replace(
        ctx,
        last_verdict=verdict,
        stats=stats,
        repeat_queue=ctx.repeat_queue if queued else ctx.repeat_queue + (current,),
    )


def _enter_repeat_word(ctx: QuizContext, rng) -> tuple[Phase, QuizContext]:
    upcoming = list(ctx.shuffled_upcoming)
    repeat = ctx.repeat_queue

    if not upcoming and repeat:
        upcoming = shuffled(repeat, rng)
        repeat = ()
        last_id = ctx.current_challenge.id if ctx.current_challenge else None
        if len(upcoming) > 1 and upcoming[0].id == last_id:
            upcoming = upcoming[1:] + upcoming[:1]

    if not upcoming:
        return Phase.FINISHED, replace(ctx, current_challenge=None, no_more_words=True)

    nxt, *rest = upcoming
    return Phase.WAITING_FOR_INPUT, _present(
        ctx, nxt, shuffled_upcoming=tuple(rest), repeat_queue=tuple(repeat)
    )


def _tick(phase: Phase, ctx: QuizContext) -> tuple[Phase, QuizContext]:
    if not ctx.is_timed or phase not in _CLOCKED:
        return phase, ctx
    remaining = max(0, ctx.time_remaining_seconds - 1)
    ctx = replace(ctx, time_remaining_seconds=remaining)
    if remaining <= 0:
        return Phase.FINISHED, ctx
    return phase, ctx


# ── Transition function ───────────────────────────────────────────────────

def transition(
    phase: Phase,
    ctx: QuizContext,
    event,
    rng: random.Random | None = None,
) -> tuple[Phase, QuizContext]:
    """Apply one event; unhandled events leave the state untouched."""
    if isinstance(event, _RPC_EVENTS) and _is_stale(ctx, event):
        log.debug("Ignoring %s from stale run %s", type(event).__name__, event.run_id)
        return phase, ctx

    if isinstance(event, Reset):
        return Phase.SETUP, QuizContext()

    if isinstance(event, TimerTick):
        return _tick(phase, ctx)

    if isinstance(event, TimerEnd):
        if ctx.is_timed and phase in _CLOCKED:
            return Phase.FINISHED, replace(ctx, time_remaining_seconds=0)
        return phase, ctx

    if phase is Phase.SETUP:
        if isinstance(event, Start):
            return Phase.LOADING, _apply_settings(event.settings, reinforce=False)
        if isinstance(event, StartReinforce):
            return Phase.COLLECTING_POOL, _apply_settings(event.settings, reinforce=True)
        if isinstance(event, ToggleDirection):
            return phase, replace(ctx, direction=reverse_direction(ctx.direction))

    elif phase is Phase.LOADING:
        if isinstance(event, WordLoaded):
            return Phase.WAITING_FOR_INPUT, _present(ctx, event.challenge, no_more_words=False)
        if isinstance(event, NoMoreWords):
            return Phase.FINISHED, replace(ctx, no_more_words=True)
        if isinstance(event, LoadError):
            return Phase.ERROR, replace(ctx, error=event.error)

    elif phase is Phase.COLLECTING_POOL:
        if isinstance(event, PoolLoaded):
            if not event.challenges:
                return Phase.FINISHED, replace(ctx, no_more_words=True)
            return Phase.WAITING_FOR_INPUT, _start_pool(ctx, event.challenges, rng)
        if isinstance(event, NoMoreWords):
            return Phase.FINISHED, replace(ctx, no_more_words=True)
        if isinstance(event, LoadError):
            return Phase.ERROR, replace(ctx, error=event.error)

    elif phase is Phase.WAITING_FOR_INPUT:
        if isinstance(event, InputChanged):
            return phase, replace(ctx, user_input=event.value)
        if isinstance(event, Submit):
            return Phase.CHECKING, ctx

    elif phase is Phase.CHECKING:
        if isinstance(event, VerdictReceived):
            if ctx.current_challenge is None:
                return phase, ctx
            ctx = _process_verdict(ctx, event.verdict)
            if is_quiz_complete(ctx):
                return Phase.FINISHED, ctx
            return Phase.SHOWING_RESULT, ctx
        if isinstance(event, LoadError):
            return Phase.ERROR, replace(ctx, error=event.error)

    elif phase is Phase.SHOWING_RESULT:
        if isinstance(event, RequestNext):
            if ctx.reinforce_mode:
                return _enter_repeat_word(ctx, rng)
            return Phase.LOADING_NEXT, replace(ctx, recycle_requested=False)

    elif phase is Phase.LOADING_NEXT:
        if isinstance(event, WordLoaded):
            return Phase.WAITING_FOR_INPUT, _present(
                ctx, event.challenge, no_more_words=False, recycle_requested=False
            )
        if isinstance(event, NoMoreWords):
            if ctx.is_timed and not ctx.recycle_requested:
                return phase, replace(ctx, recycle_requested=True)
            return Phase.FINISHED, replace(ctx, no_more_words=True, recycle_requested=False)
        if isinstance(event, LoadError):
            return Phase.ERROR, replace(ctx, error=event.error, recycle_requested=False)

    return phase, ctx


class QuizMachine:
    """Stateful wrapper around ``transition`` with one dispatcher per action."""

    def __init__(self, rng: random.Random | None = None):
        self.rng = rng or random.Random()
        self.phase = Phase.SETUP
        self.context = QuizContext()
        self._listeners: list = []

    @property
    def state(self) -> tuple[Phase, QuizContext]:
        return self.phase, self.context

    def subscribe(self, listener) -> None:
        """Call ``listener(phase, context)`` after every handled event."""
        self._listeners.append(listener)

    def send(self, event) -> tuple[Phase, QuizContext]:
        before = self.phase
        self.phase, self.context = transition(self.phase, self.context, event, self.rng)
        if self.phase is not before:
            log.debug("%s: %s -> %s", type(event).__name__, before.value, self.phase.value)
        for listener in list(self._listeners):
            listener(self.phase, self.context)
        return self.state

    # ── User actions ──

    def start(self, settings: QuizSettings | None = None):
        return self.send(Start(settings or QuizSettings()))

    def start_with_reinforcement(self, settings: QuizSettings | None = None):
        return self.send(StartReinforce(settings or QuizSettings()))

    def update_input(self, value: str):
        return self.send(InputChanged(value))

    def submit(self):
        return self.send(Submit())

    def request_next(self):
        return self.send(RequestNext())

    def reset(self):
        return self.send(Reset())

    def toggle_direction(self):
        return self.send(ToggleDirection())

    # ── RPC boundary ──

    def word_loaded(self, challenge: Challenge, run_id: str | None = None):
        return self.send(WordLoaded(challenge, run_id))

    def pool_loaded(self, challenges, run_id: str | None = None):
        return self.send(PoolLoaded(tuple(challenges), run_id))

    def no_more_words(self, run_id: str | None = None):
        return self.send(NoMoreWords(run_id))

    def load_error(self, error: str, run_id: str | None = None):
        return self.send(LoadError(error, run_id))

    def verdict_received(self, verdict: Verdict, run_id: str | None = None):
        return self.send(VerdictReceived(verdict, run_id))

    def timer_tick(self, run_id: str | None = None):
        return self.send(TimerTick(run_id))

    def timer_end(self, run_id: str | None = None):
        return self.send(TimerEnd(run_id))
