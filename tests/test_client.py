"""Tests for the HTTP client and the driver running the machine against the API."""
from __future__ import annotations

import random

import httpx
import pytest

from vocab_drill.client import QuizClient, QuizDriver
from vocab_drill.errors import NotFoundError, TransportError, ValidationError
from vocab_drill.judge import expand_answer_spec
from vocab_drill.machine import Phase, QuizMachine, QuizSettings
from vocab_drill.models import EN_TO_PL, EXHAUSTED, NO_WORDS_AVAILABLE, PL_TO_EN, Challenge


@pytest.fixture
def api(test_app_with_data):
    client, db, _ = test_app_with_data
    return QuizClient(session_id="s1", http=client), db


@pytest.fixture
def driver(api):
    quiz_client, _ = api
    return QuizDriver(QuizMachine(random.Random(3)), quiz_client)


def _failing_client(handler) -> QuizClient:
    http = httpx.Client(base_url="http://quiz.invalid", transport=httpx.MockTransport(handler))
    return QuizClient(http=http)


def _right_answer(db, driver) -> str:
    ctx = driver.context
    word = db.get_word(ctx.current_challenge.id)
    return expand_answer_spec(word.answer_for(ctx.direction))[0]


class TestQuizClient:
    def test_fetch_challenge(self, api):
        client, _ = api
        ch = client.fetch_challenge(EN_TO_PL)
        assert isinstance(ch, Challenge)
        assert ch.accepted_answer_spec == ""

    def test_fetch_exhausted(self, api):
        client, _ = api
        for _ in range(5):
            client.fetch_challenge(EN_TO_PL, recycle=False)
        assert client.fetch_challenge(EN_TO_PL, recycle=False) is EXHAUSTED

    def test_fetch_no_words(self, api):
        client, _ = api
        assert client.fetch_challenge(EN_TO_PL, category="nope") is NO_WORDS_AVAILABLE

    def test_fetch_batch(self, api):
        client, _ = api
        assert len(client.fetch_challenge_batch(PL_TO_EN, 4, category="food")) == 3

    def test_check_answer(self, api):
        client, _ = api
        ch = client.fetch_challenge(EN_TO_PL, category="food", difficulty=2)
        v = client.check_answer(ch.id, "auto", EN_TO_PL)
        assert v.is_correct
        assert v.canonical_answer == "samochód"

    def test_check_unknown_raises_not_found(self, api):
        client, _ = api
        with pytest.raises(NotFoundError) as exc:
            client.check_answer("404", "x", EN_TO_PL)
        assert exc.value.entity_id == "404"

    def test_validation_error(self, api):
        client, _ = api
        with pytest.raises(ValidationError) as exc:
            client.fetch_challenge("SIDEWAYS")
        assert exc.value.field == "direction"

    def test_new_session(self, api):
        client, _ = api
        sid = client.new_session()
        assert sid.startswith("sess_")
        assert client.session_id == sid

    def test_dictionary_queries(self, api):
        client, _ = api
        assert client.categories() == ["food", "phrases"]
        assert client.difficulties() == [1, 2, 3]
        assert client.word_count(category="food") == 3

    def test_connection_failure(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        with pytest.raises(TransportError):
            _failing_client(handler).fetch_challenge(EN_TO_PL)

    def test_server_error(self):
        client = _failing_client(lambda request: httpx.Response(500, text="oops"))
        with pytest.raises(TransportError):
            client.reset_session()

    def test_unexpected_status_payload(self):
        client = _failing_client(lambda request: httpx.Response(200, json={"status": "weird"}))
        with pytest.raises(TransportError):
            client.fetch_challenge(EN_TO_PL)


class TestDriverStandard:
    def test_full_run(self, api, driver):
        _, db = api
        phase, _ = driver.start(QuizSettings(word_limit=3))
        assert phase is Phase.WAITING_FOR_INPUT
        seen = set()
        for i in range(3):
            seen.add(driver.context.current_challenge.id)
            phase, ctx = driver.submit(_right_answer(db, driver))
            if i < 2:
                assert phase is Phase.SHOWING_RESULT
                driver.request_next()
        assert driver.phase is Phase.FINISHED
        assert driver.context.stats.correct == 3
        assert len(seen) == 3

    def test_wrong_answer_shows_result(self, driver):
        driver.start(QuizSettings(word_limit=3))
        phase, ctx = driver.submit("definitely wrong")
        assert phase is Phase.SHOWING_RESULT
        assert not ctx.last_verdict.is_correct

    def test_pool_exhaustion_finishes(self, api, driver):
        _, db = api
        driver.start(QuizSettings(word_limit=10))
        for _ in range(5):
            driver.submit(_right_answer(db, driver))
            driver.request_next()
        assert driver.phase is Phase.FINISHED
        assert driver.context.no_more_words
        assert driver.context.completed_count == 5

    def test_no_words(self, driver):
        driver.start(QuizSettings(category="nope"))
        assert driver.phase is Phase.FINISHED
        assert driver.context.no_more_words

    def test_new_run_starts_even_after_exhaustion(self, api, driver):
        _, db = api
        driver.start(QuizSettings(word_limit=5))
        for _ in range(5):
            driver.submit(_right_answer(db, driver))
            driver.request_next()
        driver.machine.reset()
        driver.start(QuizSettings(word_limit=5))
        assert driver.phase is Phase.WAITING_FOR_INPUT

    def test_transport_error(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        d = QuizDriver(QuizMachine(), _failing_client(handler))
        d.start()
        assert d.phase is Phase.ERROR
        assert "refused" in d.context.error


class TestDriverReinforcement:
    def test_masters_whole_pool(self, api, driver):
        _, db = api
        driver.start_with_reinforcement(QuizSettings(word_limit=5))
        assert len(driver.context.word_pool) == 5
        driver.submit("wrong")
        driver.request_next()
        while driver.phase is not Phase.FINISHED:
            driver.submit(_right_answer(db, driver))
            if driver.phase is Phase.SHOWING_RESULT:
                driver.request_next()
        ctx = driver.context
        assert ctx.mastered_count == 5
        assert ctx.stats.incorrect == 1
        assert ctx.stats.correct == 5


class TestDriverTimed:
    def test_recycles_instead_of_finishing(self, api, driver):
        _, db = api
        driver.start(QuizSettings(time_limit_seconds=120))
        for _ in range(8):
            driver.submit(_right_answer(db, driver))
            driver.request_next()
            assert driver.phase is Phase.WAITING_FOR_INPUT
        assert driver.context.completed_count == 8

    def test_clock_runs_out(self, driver):
        driver.start(QuizSettings(time_limit_seconds=5))
        driver.tick(4)
        assert driver.phase is Phase.WAITING_FOR_INPUT
        driver.tick()
        assert driver.phase is Phase.FINISHED


class TestDriverReset:
    def test_reset_clears_server_session(self, api, driver):
        quiz_client, db = api
        driver.start(QuizSettings(word_limit=5))
        for _ in range(4):
            driver.submit(_right_answer(db, driver))
            driver.request_next()
        driver.reset()
        assert driver.phase is Phase.SETUP
        ids = {quiz_client.fetch_challenge(EN_TO_PL, recycle=False).id for _ in range(5)}
        assert len(ids) == 5

    def test_response_for_reset_run_ignored(self, api):
        quiz_client, _ = api
        machine = QuizMachine()

        class ResettingClient:
            def fetch_challenge(self, *args, **kwargs):
                machine.reset()
                return quiz_client.fetch_challenge(*args, **kwargs)

        d = QuizDriver(machine, ResettingClient())
        d.start()
        assert d.phase is Phase.SETUP
        assert d.context.current_challenge is None
