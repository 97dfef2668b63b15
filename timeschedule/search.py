"""
Read path.

Every function here resolves the dataset through StoreSwitch.active_store(),
so readers only ever see a slot that was completely built by a finished pass.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional

from timeschedule.model import Class, Department, Section
from timeschedule.switch import StoreSwitch


def list_departments(switch: StoreSwitch) -> List[Department]:
    return switch.active_store().select(Department, order_by="abbreviation")


def list_classes(switch: StoreSwitch, dept: str) -> List[Class]:
    return switch.active_store().select(Class, where={"dept_key": dept.strip().upper()}, order_by="code")


def list_sections(
    switch: StoreSwitch,
    class_key: str,
    open_only: bool = False,
    skip_quiz: bool = False,
    day: Optional[str] = None,
) -> List[Section]:
    """
    Sections of one class ordered by SLN.

    open_only keeps sections with a free seat, skip_quiz drops quiz sections
    and day (e.g. 'th') keeps sections with a meeting on that day.
    """
    key = class_key.replace(" ", "").lower()
    sects = switch.active_store().select(Section, where={"class_key": key}, order_by="sln")
    if open_only:
        sects = [s for s in sects if s.is_open()]
    if skip_quiz:
        sects = [s for s in sects if not s.is_quiz()]
    if day:
        wanted = day.strip().lower()
        sects = [s for s in sects if any(wanted in mt.day_set() for mt in s.meeting_times())]
    return sects


# ---------------------------------------------------------------------------
# Ranked search
# ---------------------------------------------------------------------------


def _prefix_len(term: str, word: str) -> int:
    """
    len(term) if term is a prefix of word (case-insensitive), else 0.
    """
    term = term.lower()
    word = word.lower()
    if term and word.startswith(term):
        return len(term)
    return 0


def word_score(search: str, phrase: str) -> int:
    """
    Number of (search term, phrase word) pairs where the term prefixes the word.
    """
    return sum(1 for t in search.split() for w in phrase.split() if _prefix_len(t, w) > 0)


def letter_score(search: str, phrase: str) -> int:
    """
    Total length of all prefix matches between search terms and phrase words.
    """
    return sum(_prefix_len(t, w) for t in search.split() for w in phrase.split())


@dataclass
class SearchHit:
    kind: str  # "dept" or "class"
    key: str
    label: str
    word: int
    letter: int


def search(switch: StoreSwitch, query: str, limit: int = 20) -> List[SearchHit]:
    """
    Rank departments and classes against query, best first.

    Hits are ordered by word score, then letter score. Records that match
    no term are left out.
    """
    query = query.strip()
    if not query:
        return []

    store = switch.active_store()
    hits: List[SearchHit] = []

    for d in store.select(Department):
        phrase = f"{d.name} {d.abbreviation}"
        hits.append(
            SearchHit("dept", d.abbreviation, f"{d.name} ({d.abbreviation})", word_score(query, phrase), letter_score(query, phrase))
        )

    for c in store.select(Class):
        phrase = f"{c.abbreviation} {c.code} {c.key} {c.title}"
        label = f"{c.abbreviation.upper()} {c.code} {c.title}".strip()
        hits.append(SearchHit("class", c.key, label, word_score(query, phrase), letter_score(query, phrase)))

    hits = [h for h in hits if h.word > 0]
    hits.sort(key=lambda h: (-h.word, -h.letter, h.label))
    return hits[:limit]
