"""CLI entry point for vocab-drill.

Usage:
  python -m vocab_drill serve [--port PORT] [--host HOST] [--no-auto-import]
  python -m vocab_drill stop
  python -m vocab_drill restart [--port PORT]
  python -m vocab_drill status
  python -m vocab_drill import
  python -m vocab_drill stats
  python -m vocab_drill play [--reinforce] [--words N] [--time SECONDS]
                             [--direction EN_TO_PL|PL_TO_EN] [--category C]
                             [--difficulty 1|2|3] [--server URL]
"""
from __future__ import annotations

import os
import signal
import sys
from pathlib import Path

PID_FILE = Path(__file__).resolve().parent.parent / ".server.pid"


def main():
    args = sys.argv[1:]
    command = args[0] if args else "serve"

    if command == "serve":
        _serve(args[1:])
    elif command == "stop":
        _stop()
    elif command == "restart":
        _restart(args[1:])
    elif command == "status":
        _status()
    elif command == "import":
        _import_dictionaries()
    elif command == "stats":
        _stats()
    elif command == "play":
        _play(args[1:])
    else:
        print(f"Unknown command: {command}")
        print("Commands: serve, stop, restart, status, import, stats, play")
        sys.exit(1)


def _parse_flag(args: list[str], name: str, default: str | None) -> str | None:
    for i, a in enumerate(args):
        if a == name and i + 1 < len(args):
            return args[i + 1]
    return default


def _read_pid() -> int | None:
    """Read PID from file, return None if stale or missing."""
    if not PID_FILE.exists():
        return None
    try:
        pid = int(PID_FILE.read_text().strip())
        os.kill(pid, 0)
        return pid
    except (ValueError, ProcessLookupError, PermissionError):
        PID_FILE.unlink(missing_ok=True)
        return None


def _write_pid() -> None:
    PID_FILE.write_text(str(os.getpid()))


def _remove_pid() -> None:
    PID_FILE.unlink(missing_ok=True)


def _stop() -> bool:
    """Stop a running server. Returns True if a server was stopped."""
    pid = _read_pid()
    if pid is None:
        print("Server is not running.")
        return False
    try:
        os.kill(pid, signal.SIGTERM)
        print(f"Stopped server (PID {pid}).")
        PID_FILE.unlink(missing_ok=True)
        return True
    except ProcessLookupError:
        print("Server was not running (stale PID file removed).")
        PID_FILE.unlink(missing_ok=True)
        return False


def _status():
    pid = _read_pid()
    if pid is None:
        print("Server is not running.")
    else:
        print(f"Server is running (PID {pid}).")


def _restart(args: list[str]):
    import time
    _stop()
    time.sleep(1)
    _serve(args)


def _serve(args: list[str]):
    import uvicorn

    existing = _read_pid()
    if existing is not None:
        print(f"Server already running (PID {existing}). Use 'restart' or 'stop' first.")
        sys.exit(1)

    if "--no-auto-import" in args:
        os.environ["VOCAB_DRILL_NO_AUTO_IMPORT"] = "1"

    port = int(_parse_flag(args, "--port", "8765"))
    host = _parse_flag(args, "--host", "127.0.0.1")
    _write_pid()

    print(f"Starting Vocab Drill on http://{host}:{port}")
    print("Press Ctrl+C to stop\n")
    try:
        uvicorn.run(
            "vocab_drill.app:app",
            host=host,
            port=port,
            reload=False,
            timeout_graceful_shutdown=5,
        )
    finally:
        _remove_pid()
        os.environ.pop("VOCAB_DRILL_NO_AUTO_IMPORT", None)


def _import_dictionaries():
    from vocab_drill.config import load_settings
    from vocab_drill.db import Database
    from vocab_drill.importer import import_dictionary_file

    settings = load_settings()
    db = Database(settings.db_full_path)

    for df in settings.resolved_dictionary_files():
        if not df.exists():
            print(f"  Skipping (not found): {df}")
            continue
        print(f"  Parsing: {df.name}")
        n = import_dictionary_file(db, df)
        print(f"    {n} words")

    print(f"\nTotal in DB: {db.get_word_count()} words, {len(db.get_categories())} categories")
    db.close()


def _stats():
    from vocab_drill.config import load_settings
    from vocab_drill.db import Database

    settings = load_settings()
    db = Database(settings.db_full_path)
    stats = db.get_stats()

    print("Vocab Drill Stats")
    print("=" * 40)
    print(f"Total words:        {stats['total_words']}")
    print(f"Categories:         {stats['total_categories']}")
    print(f"Stored sessions:    {stats['total_sessions']}")
    print(f"Answers checked:    {stats['total_answers']}")
    print(f"Overall accuracy:   {stats['accuracy']}%")
    if stats["most_missed"]:
        print("Most missed:")
        for row in stats["most_missed"]:
            word = db.get_word(row["word_id"])
            label = f"{word.polish} = {word.english}" if word else row["word_id"]
            print(f"  {row['misses']:3d}x  {label}")
    db.close()


def _play(args: list[str]):
    import time

    from vocab_drill.client import QuizClient, QuizDriver
    from vocab_drill.config import load_settings
    from vocab_drill.errors import QuizError
    from vocab_drill.machine import Phase, QuizMachine, QuizSettings
    from vocab_drill.models import EN_TO_PL

    settings = load_settings()
    difficulty = _parse_flag(args, "--difficulty", None)
    try:
        quiz_settings = QuizSettings(
            direction=_parse_flag(args, "--direction", EN_TO_PL),
            category=_parse_flag(args, "--category", None),
            difficulty=int(difficulty) if difficulty else None,
            word_limit=int(_parse_flag(args, "--words", str(settings.default_word_limit))),
            time_limit_seconds=int(_parse_flag(args, "--time", "0")),
        )
    except ValueError as e:
        print(f"Invalid option: {e}")
        sys.exit(1)

    client = QuizClient(base_url=_parse_flag(args, "--server", settings.server_url))
    driver = QuizDriver(QuizMachine(), client)
    started = time.monotonic()
    ticked = 0
    shown = None

    def catch_up_clock():
        nonlocal ticked
        elapsed = int(time.monotonic() - started)
        if elapsed > ticked:
            driver.tick(elapsed - ticked)
            ticked = elapsed

    try:
        client.new_session()
        if "--reinforce" in args:
            driver.start_with_reinforcement(quiz_settings)
        else:
            driver.start(quiz_settings)
        started = time.monotonic()

        while True:
            phase, ctx = driver.machine.state
            if phase is Phase.WAITING_FOR_INPUT:
                clock = f" [{ctx.time_remaining_seconds}s]" if ctx.is_timed else ""
                print(f"\n{ctx.current_challenge.prompt_text}{clock}")
                answer = input("> ")
                catch_up_clock()
                if driver.phase is Phase.WAITING_FOR_INPUT:
                    driver.submit(answer)
            elif phase is Phase.SHOWING_RESULT:
                if ctx.last_verdict is not shown:
                    shown = ctx.last_verdict
                    _print_verdict(shown)
                catch_up_clock()
                if driver.phase is Phase.SHOWING_RESULT:
                    driver.request_next()
            elif phase is Phase.FINISHED:
                _print_summary(ctx, shown)
                break
            else:
                print(f"\nQuiz stopped: {ctx.error or phase.value}")
                break
    except QuizError as e:
        print(f"Error: {e.message}")
        sys.exit(1)
    except (EOFError, KeyboardInterrupt):
        print()
        _print_summary(driver.context, shown)
    finally:
        client.close()


def _print_verdict(v) -> None:
    if v.is_correct:
        print("  Correct!")
    elif v.near_miss:
        print(f"  Almost. Answer: {v.canonical_answer}")
    else:
        print(f"  Wrong. Answer: {v.canonical_answer}")


def _print_summary(ctx, shown=None) -> None:
    if ctx.last_verdict is not None and ctx.last_verdict is not shown:
        _print_verdict(ctx.last_verdict)
    print("\nQuiz finished")
    print("=" * 40)
    if ctx.no_more_words and ctx.stats.answered == 0:
        print("No words available for these settings.")
    print(f"Correct:   {ctx.stats.correct}")
    print(f"Incorrect: {ctx.stats.incorrect}")
    print(f"Accuracy:  {ctx.stats.accuracy}%")
    if ctx.reinforce_mode:
        print(f"Mastered:  {ctx.mastered_count}/{len(ctx.word_pool)}")


if __name__ == "__main__":
    main()
