"""Parse dictionary markdown files into Word objects.

Layout:
  ## <category>                               (section header = category)
  | ID | Polish | English | Difficulty |      (header row, skipped)
  | 12 | **ziemniak/kartofel** | potato | 1 |

The answer columns keep their raw form: "/" alternatives and "(...)" optional
segments are interpreted by the judge, not here.
"""
from __future__ import annotations

import re
from pathlib import Path

from vocab_drill.models import Word

_SECTION = re.compile(r"^## (.+)")
_ROW = re.compile(
    r"^\|\s*([A-Za-z0-9_-]+)\s*\|\s*\*\*(.+?)\*\*\s*\|\s*(.+?)\s*\|\s*(\d+)\s*\|"
)


def parse_dictionary_file(path: Path) -> list[Word]:
    text = path.read_text(encoding="utf-8")
    source = path.name
    words: list[Word] = []
    current_category = "general"

    for line in text.splitlines():
        m = _SECTION.match(line)
        if m:
            current_category = m.group(1).strip()
            continue

        if not line.startswith("|"):
            continue

        m = _ROW.match(line)
        if not m:
            continue
        difficulty = int(m.group(4))
        if difficulty not in (1, 2, 3):
            continue
        words.append(Word(
            id=m.group(1),
            polish=m.group(2).strip(),
            english=m.group(3).strip(),
            category=current_category,
            difficulty=difficulty,
            source_file=source,
        ))

    return words
