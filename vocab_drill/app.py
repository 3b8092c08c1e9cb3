"""FastAPI application with all routes."""
from __future__ import annotations

import asyncio
import logging
import os
from datetime import timedelta

logging.basicConfig(level=logging.INFO, format="%(name)s | %(message)s")

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from vocab_drill.config import Settings, load_settings, save_settings
from vocab_drill.db import Database
from vocab_drill.errors import QuizError, ValidationError
from vocab_drill.importer import import_dictionaries
from vocab_drill.models import EXHAUSTED, NO_WORDS_AVAILABLE
from vocab_drill.service import QuizService
from vocab_drill.sessions import (
    InMemorySessionStore,
    SessionStore,
    SqliteSessionStore,
    generate_session_id,
)

app = FastAPI(title="Vocab Drill")

# Global state (initialized on startup)
_db: Database | None = None
_settings: Settings | None = None
_service: QuizService | None = None


def get_db() -> Database:
    assert _db is not None
    return _db


def get_settings() -> Settings:
    assert _settings is not None
    return _settings


def get_service() -> QuizService:
    assert _service is not None
    return _service


def build_store(settings: Settings, db: Database) -> SessionStore:
    if settings.session_store == "memory":
        return InMemorySessionStore(max_sessions=settings.session_max_count)
    if settings.session_store == "sqlite":
        return SqliteSessionStore(db, max_sessions=settings.session_max_count)
    raise ValueError(f"Unknown session store: {settings.session_store}")


def build_service(settings: Settings, db: Database) -> QuizService:
    return QuizService(
        db,
        build_store(settings, db),
        max_batch_size=settings.max_batch_size,
        near_miss_threshold=settings.similarity_hint_threshold,
    )


_bg_log = logging.getLogger("vocab_drill.bg")
_bg_tasks: set[asyncio.Task] = set()

SWEEP_INTERVAL_SECONDS = 300


async def _sweep_expired_sessions():
    while True:
        await asyncio.sleep(SWEEP_INTERVAL_SECONDS)
        try:
            max_age = timedelta(hours=get_settings().session_max_age_hours)
            n = get_service().sweep_expired_sessions(max_age)
        except Exception as e:
            _bg_log.warning("Session sweep failed: %s", e)
            continue
        if n:
            _bg_log.info("Expired %d idle sessions", n)


@app.on_event("startup")
async def startup():
    global _db, _settings, _service
    if _db is not None:
        return  # Already initialized (e.g. by tests)
    _settings = load_settings()
    logging.getLogger("vocab_drill").setLevel(_settings.log_level.upper())
    _db = Database(_settings.db_full_path)
    if not os.environ.get("VOCAB_DRILL_NO_AUTO_IMPORT"):
        import_dictionaries(_db, _settings.resolved_dictionary_files(), only_changed=True)
    _service = build_service(_settings, _db)
    task = asyncio.create_task(_sweep_expired_sessions())
    _bg_tasks.add(task)
    task.add_done_callback(_bg_tasks.discard)


@app.on_event("shutdown")
async def shutdown():
    for task in list(_bg_tasks):
        task.cancel()
    if _db:
        _db.close()


@app.exception_handler(QuizError)
async def quiz_error_handler(request: Request, exc: QuizError):
    return JSONResponse(status_code=exc.http_status, content={"error": exc.to_dict()})


async def _json_body(request: Request) -> dict:
    if not await request.body():
        return {}
    try:
        body = await request.json()
    except ValueError:
        raise ValidationError("Request body must be valid JSON") from None
    if not isinstance(body, dict):
        raise ValidationError("Request body must be a JSON object")
    return body


def _parse_int(value: str | None, name: str) -> int | None:
    if value is None:
        return None
    try:
        return int(value)
    except ValueError:
        raise ValidationError(f"{name} must be an integer", name) from None


# ── API: Challenges ───────────────────────────────────────────────────────

@app.get("/api/challenge")
async def api_challenge(
    direction: str | None = None,
    session_id: str | None = None,
    category: str | None = None,
    difficulty: str | None = None,
    recycle: bool = True,
):
    result = get_service().get_challenge(
        session_id, direction, category, _parse_int(difficulty, "difficulty"), recycle=recycle
    )
    if result is NO_WORDS_AVAILABLE:
        return {"status": "no_words"}
    if result is EXHAUSTED:
        return {"status": "exhausted"}
    return {"status": "ok", "challenge": result.to_public()}


@app.get("/api/challenges")
async def api_challenges(
    direction: str | None = None,
    count: str = "10",
    session_id: str | None = None,
    category: str | None = None,
    difficulty: str | None = None,
):
    challenges = get_service().get_challenge_batch(
        session_id,
        direction,
        _parse_int(count, "count"),
        category,
        _parse_int(difficulty, "difficulty"),
    )
    return {"challenges": [c.to_public() for c in challenges]}


# ── API: Answers ──────────────────────────────────────────────────────────

@app.post("/api/answer")
async def api_answer(request: Request):
    body = await _json_body(request)
    answer = body.get("answer")
    if answer is None:
        answer = ""
    elif not isinstance(answer, str):
        raise ValidationError("answer must be a string", "answer")
    verdict = get_service().check_answer(
        body.get("session_id"),
        body.get("challenge_id", ""),
        answer,
        body.get("direction"),
    )
    return verdict.to_dict()


# ── API: Sessions ─────────────────────────────────────────────────────────

@app.post("/api/session")
async def api_new_session():
    return {"session_id": generate_session_id()}


@app.post("/api/session/reset")
async def api_session_reset(request: Request):
    body = await _json_body(request)
    return {"success": get_service().reset_session(body.get("session_id"))}


# ── API: Dictionary ───────────────────────────────────────────────────────

@app.get("/api/categories")
async def api_categories():
    return {"categories": get_service().categories()}


@app.get("/api/difficulties")
async def api_difficulties():
    return {"difficulties": get_service().difficulties()}


@app.get("/api/words/count")
async def api_word_count(category: str | None = None, difficulty: str | None = None):
    return {"count": get_service().word_count(category, _parse_int(difficulty, "difficulty"))}


@app.get("/api/words")
async def api_words():
    return {"words": get_service().all_words()}


@app.post("/api/import")
async def api_import():
    db = get_db()
    n = import_dictionaries(db, get_settings().resolved_dictionary_files())
    return {"words_imported": n, "total_words": db.get_word_count()}


# ── API: Stats ────────────────────────────────────────────────────────────

@app.get("/api/stats")
async def api_stats():
    return get_db().get_stats()


@app.get("/api/health")
async def api_health():
    return get_service().health()


# ── API: Settings ─────────────────────────────────────────────────────────

@app.get("/api/settings")
async def api_get_settings():
    return get_settings().to_dict()


@app.put("/api/settings")
async def api_update_settings(request: Request):
    body = await _json_body(request)
    s = get_settings()
    known = {f.name for f in Settings.__dataclass_fields__.values()}
    for k, v in body.items():
        if k in known:
            setattr(s, k, v)
    save_settings(s)
    service = get_service()
    service.max_batch_size = s.max_batch_size
    service.near_miss_threshold = s.similarity_hint_threshold
    return s.to_dict()
