"""HTTP client for the quiz API and the driver that feeds it into the state machine."""
from __future__ import annotations

import logging

import httpx

from vocab_drill.errors import NotFoundError, QuizError, TransportError, ValidationError
from vocab_drill.machine import Phase, QuizMachine, QuizSettings
from vocab_drill.models import EXHAUSTED, NO_WORDS_AVAILABLE, Challenge, Verdict

log = logging.getLogger("vocab_drill.client")


class QuizClient:
    def __init__(
        self,
        base_url: str = "http://127.0.0.1:8765",
        session_id: str = "default",
        http: httpx.Client | None = None,
        timeout: float = 10.0,
    ):
        self.session_id = session_id
        self.http = http or httpx.Client(base_url=base_url, timeout=timeout)

    def close(self) -> None:
        self.http.close()

    def _request(self, method: str, url: str, **kwargs) -> dict:
        try:
            resp = self.http.request(method, url, **kwargs)
        except httpx.HTTPError as e:
            log.warning("%s %s failed: %s", method, url, e)
            raise TransportError(f"Request failed: {e}") from e

        if resp.status_code == 404:
            raise NotFoundError(*_not_found_args(resp))
        if resp.status_code == 400:
            err = _error_body(resp)
            raise ValidationError(err.get("message", "Invalid request"),
                                  err.get("details", {}).get("field"))
        if resp.status_code >= 400:
            log.warning("%s %s returned %d", method, url, resp.status_code)
            raise TransportError(f"Server returned {resp.status_code}")
        try:
            return resp.json()
        except ValueError as e:
            raise TransportError("Server returned invalid JSON") from e

    # ── Session ──

    def new_session(self) -> str:
        data = self._request("POST", "/api/session")
        self.session_id = data["session_id"]
        return self.session_id

    def reset_session(self) -> bool:
        data = self._request("POST", "/api/session/reset", json={"session_id": self.session_id})
        return bool(data.get("success"))

    # ── Challenges ──

    def fetch_challenge(
        self,
        direction: str,
        category: str | None = None,
        difficulty: int | None = None,
        recycle: bool = True,
    ):
        """Returns a Challenge, EXHAUSTED or NO_WORDS_AVAILABLE."""
        params = _params(
            session_id=self.session_id,
            direction=direction,
            category=category,
            difficulty=difficulty,
            recycle=str(recycle).lower(),
        )
        data = self._request("GET", "/api/challenge", params=params)
        status = data.get("status")
        if status == "ok":
            return Challenge.from_public(data["challenge"])
        if status == "exhausted":
            return EXHAUSTED
        if status == "no_words":
            return NO_WORDS_AVAILABLE
        raise TransportError(f"Unexpected challenge status: {status!r}")

    def fetch_challenge_batch(
        self,
        direction: str,
        count: int,
        category: str | None = None,
        difficulty: int | None = None,
    ) -> list[Challenge]:
        params = _params(
            session_id=self.session_id,
            direction=direction,
            count=count,
            category=category,
            difficulty=difficulty,
        )
        data = self._request("GET", "/api/challenges", params=params)
        return [Challenge.from_public(c) for c in data.get("challenges", [])]

    def check_answer(self, challenge_id: str, submitted: str, direction: str) -> Verdict:
        data = self._request("POST", "/api/answer", json={
            "session_id": self.session_id,
            "challenge_id": challenge_id,
            "answer": submitted,
            "direction": direction,
        })
        return Verdict.from_dict(data)

    # ── Dictionary ──

    def categories(self) -> list[str]:
        return self._request("GET", "/api/categories")["categories"]

    def difficulties(self) -> list[int]:
        return self._request("GET", "/api/difficulties")["difficulties"]

    def word_count(self, category: str | None = None, difficulty: int | None = None) -> int:
        params = _params(category=category, difficulty=difficulty)
        return self._request("GET", "/api/words/count", params=params)["count"]


def _params(**kwargs) -> dict:
    return {k: v for k, v in kwargs.items() if v is not None}


def _error_body(resp: httpx.Response) -> dict:
    try:
        return resp.json().get("error", {})
    except ValueError:
        return {}


def _not_found_args(resp: httpx.Response) -> tuple[str, str | None]:
    details = _error_body(resp).get("details", {})
    return details.get("entity", "Resource"), details.get("id")


class QuizDriver:
    """Runs the requests a QuizMachine phase implies and feeds the results back.

    Every response is tagged with the run id current when its request was
    issued, so an answer arriving after a reset is dropped by the machine.
    """

    def __init__(self, machine: QuizMachine, client: QuizClient):
        self.machine = machine
        self.client = client
        self._first_fetch = False

    @property
    def phase(self) -> Phase:
        return self.machine.phase

    @property
    def context(self):
        return self.machine.context

    # ── Actions ──

    def start(self, settings: QuizSettings | None = None):
        self.machine.start(settings)
        self._first_fetch = True
        return self._settle()

    def start_with_reinforcement(self, settings: QuizSettings | None = None):
        self.machine.start_with_reinforcement(settings)
        return self._settle()

    def update_input(self, value: str):
        return self.machine.update_input(value)

    def submit(self, answer: str | None = None):
        if answer is not None:
            self.machine.update_input(answer)
        self.machine.submit()
        return self._settle()

    def request_next(self):
        self.machine.request_next()
        return self._settle()

    def toggle_direction(self):
        return self.machine.toggle_direction()

    def tick(self, seconds: int = 1):
        for _ in range(seconds):
            self.machine.timer_tick(self.machine.context.run_id)
        return self.machine.state

    def timer_end(self):
        return self.machine.timer_end(self.machine.context.run_id)

    def reset(self):
        state = self.machine.reset()
        try:
            self.client.reset_session()
        except QuizError as e:
            log.warning("Session reset failed: %s", e)
        return state

    # ── Effects ──

    def _settle(self):
        while self.machine.phase.is_awaiting_response:
            before = self.machine.state
            self._perform(*before)
            if self.machine.state == before:
                break
        return self.machine.state

    def _perform(self, phase: Phase, ctx) -> None:
        run_id = ctx.run_id
        m = self.machine
        try:
            if phase is Phase.COLLECTING_POOL:
                challenges = self.client.fetch_challenge_batch(
                    ctx.direction, ctx.word_limit, ctx.category, ctx.difficulty
                )
                m.pool_loaded(challenges, run_id)
            elif phase in (Phase.LOADING, Phase.LOADING_NEXT):
                recycle = self._first_fetch or ctx.recycle_requested
                result = self.client.fetch_challenge(
                    ctx.direction, ctx.category, ctx.difficulty, recycle=recycle
                )
                self._first_fetch = False
                if result is EXHAUSTED or result is NO_WORDS_AVAILABLE:
                    m.no_more_words(run_id)
                else:
                    m.word_loaded(result, run_id)
            elif phase is Phase.CHECKING:
                verdict = self.client.check_answer(
                    ctx.current_challenge.id, ctx.user_input, ctx.direction
                )
                m.verdict_received(verdict, run_id)
        except QuizError as e:
            log.warning("Request in phase %s failed: %s", phase.value, e)
            m.load_error(e.message, run_id)
