from __future__ import annotations

import logging
from pathlib import Path

from vocab_drill.db import Database
from vocab_drill.parsers.dictionary_parser import parse_dictionary_file

log = logging.getLogger("vocab_drill.import")


def import_dictionary_file(db: Database, path: Path) -> int:
    """Replace every word previously imported from *path* with its current rows."""
    db.delete_words_by_source(path.name)
    words = parse_dictionary_file(path)
    n = db.import_words(words)
    db.set_file_mtime(str(path), path.stat().st_mtime_ns)
    return n


def import_dictionaries(db: Database, files: list[Path], only_changed: bool = False) -> int:
    """Import dictionary files; with *only_changed*, skip files whose mtime is unchanged."""
    total = 0
    for df in files:
        if not df.exists():
            log.warning("Dictionary file not found: %s", df)
            continue
        if only_changed and db.get_file_mtime(str(df)) == df.stat().st_mtime_ns:
            continue
        n = import_dictionary_file(db, df)
        log.info("Imported %d words from %s", n, df.name)
        total += n
    return total
