"""
Extraction (HTML -> schedule records).

The time schedule is not parsed as a DOM. Its pages follow fixed layout
conventions, so every entity is found as a "chunk" matched by a regular
expression, and sections are read with fixed-width column slicing.

Three passes mirror the hierarchy:

- departments(): department index page -> [Department]
- classes():     department page       -> [Class] with character ranges
- sections():    department page       -> [Section], each attached to the
                 class whose range contains the section's chunk

Important rules (DO NOT CHANGE):
- Section column boundaries are exact and match the source format
- Classes come back in document order; sections() relies on it
- A malformed chunk is skipped and reported, never fatal
"""

from __future__ import annotations

import html
import re
from typing import List, Optional, Tuple
from urllib.parse import urljoin

from bs4 import BeautifulSoup

from timeschedule.errors import ExtractionError
from timeschedule.model import Class, Department, MeetingTime, Section, dump_meeting_times


# ---------------------------------------------------------------------------
# Section row columns (first line of a section chunk)
# ---------------------------------------------------------------------------

RESTRICTION_COLS = (0, 7)
SLN_COLS = (7, 13)
SECTION_COLS = (13, 16)
CREDIT_COLS = (16, 24)
INSTRUCTOR_COLS = (56, 83)
STATUS_COLS = (83, 89)
SEATS_COLS = (89, 101)
GRADES_COLS = (101, 108)
FEE_COLS = (108, 115)
OTHER_START = 115

# Meeting time columns (any line of a section chunk)
DAYS_COLS = (24, 31)
TIME_COLS = (31, 42)
BUILDING_COLS = (42, 47)
ROOM_COLS = (47, 56)


def _col(line: str, cols: Tuple[int, int]) -> str:
    return line[cols[0]:cols[1]].strip()


class Extractor:
    """
    Owns the compiled patterns used to pull records out of schedule pages.

    Build one instance and reuse it; all methods are pure.
    """

    def __init__(self) -> None:
        self.tag_re = re.compile(r"<.+?>")
        self.dept_chunk_re = re.compile(r"<li><a.+?</a>", re.I | re.S)
        self.parentheses_re = re.compile(r"\(([^()]*)\)")
        self.class_chunk_re = re.compile(r'<table bgcolor="#ffcccc".*?</table>', re.I | re.S)
        self.class_name_re = re.compile(r"name=([^>]*)>", re.I)
        self.class_abbreviation_re = re.compile(r"[a-z]+")
        self.class_code_re = re.compile(r"\d+")
        self.class_title_re = re.compile(r"<a href.*?>.+?</a>", re.I | re.S)
        self.sect_chunk_re = re.compile(r".{7}<A HREF=h.+?</td>", re.S)
        self.sln_re = re.compile(r"^\d{5,6}$")
        self.meeting_time_re = re.compile(r"([a-z]{2,5})\s*(\d{3,4}-\d{3,4})", re.I)
        self.seats_re = re.compile(r"\d+")
        self.blank_line_re = re.compile(r"^\s*$")

    # -----------------------------------------------------------------------
    # Departments
    # -----------------------------------------------------------------------

    def departments(self, content: str, root_url: str) -> Tuple[List[Department], List[ExtractionError]]:
        """
        Extract departments from the department index page.

        Each '<li><a ...>Name (ABBR)</a>' chunk is one department. Chunks
        without a parenthesized abbreviation or with a fragment-only link are
        headings/notes and are skipped silently. A repeated abbreviation keeps
        its first occurrence.
        """
        depts: List[Department] = []
        errors: List[ExtractionError] = []
        seen: set[str] = set()

        for match in self.dept_chunk_re.finditer(content):
            soup = BeautifulSoup(match.group(0), "html.parser")
            anchor = soup.find("a")
            text = " ".join(soup.get_text(" ").split())

            abbreviations = self.parentheses_re.findall(text)
            if not abbreviations:
                continue
            abbreviation = abbreviations[-1].replace(" ", "").upper()
            if not abbreviation:
                errors.append(ExtractionError("skipped department: empty abbreviation", match.start()))
                continue

            href = (anchor.get("href") or "").strip() if anchor is not None else ""
            if href.startswith("#"):
                continue
            if not href:
                errors.append(ExtractionError(f"skipped department {abbreviation}: missing link", match.start()))
                continue

            if abbreviation in seen:
                continue
            seen.add(abbreviation)

            name = " ".join(self.parentheses_re.sub("", text).split())
            depts.append(Department(abbreviation=abbreviation, name=name, link=urljoin(root_url, href)))

        return depts, errors

    # -----------------------------------------------------------------------
    # Classes
    # -----------------------------------------------------------------------

    def classes(self, content: str, dept_key: str) -> Tuple[List[Class], List[ExtractionError]]:
        """
        Extract class headings from a department page, in document order.

        Each class covers [own chunk start, next heading chunk start); the
        last one runs to the end of the page. Malformed headings still end
        the range before them, so their sections are not claimed by the
        previous class.
        """
        classes: List[Class] = []
        errors: List[ExtractionError] = []
        chunk_starts: List[int] = []

        for match in self.class_chunk_re.finditer(content):
            chunk = match.group(0)
            chunk_starts.append(match.start())

            name_match = self.class_name_re.search(chunk)
            if not name_match:
                errors.append(ExtractionError("skipped class: no name anchor", match.start()))
                continue
            name = name_match.group(1).strip().strip("\"'").lower()

            abbreviation = self.class_abbreviation_re.search(name)
            code = self.class_code_re.search(name)
            if not abbreviation or not code:
                errors.append(ExtractionError(f"skipped class: cannot split name {name!r}", match.start()))
                continue

            title = ""
            title_match = self.class_title_re.search(chunk)
            if title_match:
                title = BeautifulSoup(title_match.group(0), "html.parser").get_text(" ", strip=True)

            classes.append(
                Class(
                    dept_key=dept_key,
                    abbreviation=abbreviation.group(0),
                    code=code.group(0),
                    title=title,
                    start=match.start(),
                )
            )

        next_start = dict(zip(chunk_starts, chunk_starts[1:] + [len(content)]))
        for cls in classes:
            cls.end = next_start[cls.start]

        return classes, errors

    # -----------------------------------------------------------------------
    # Sections
    # -----------------------------------------------------------------------

    def sections(self, content: str, classes: List[Class]) -> Tuple[List[Section], List[ExtractionError]]:
        """
        Extract section rows from a department page.

        classes must be the list returned by classes() for the same page.
        Section chunks and classes are merged in document order: a section
        belongs to the last class starting before it.
        """
        sects: List[Section] = []
        errors: List[ExtractionError] = []
        owner = -1

        for match in self.sect_chunk_re.finditer(content):
            offset = match.start()

            while owner + 1 < len(classes) and classes[owner + 1].start < offset:
                owner += 1
            if owner < 0:
                errors.append(ExtractionError("skipped section: no class precedes it", offset))
                continue
            cls = classes[owner]
            if not cls.start <= offset < cls.end:
                errors.append(ExtractionError(f"skipped section: outside range of class {cls.key}", offset))
                continue

            sect, error = self.section(match.group(0), cls.key, offset)
            if error is not None:
                errors.append(error)
                continue
            sects.append(sect)

        return sects, errors

    def section(self, chunk: str, class_key: str, offset: int = 0) -> Tuple[Optional[Section], Optional[ExtractionError]]:
        """
        Build one Section from a raw section chunk.
        """
        lines = self.tag_re.sub("", chunk).split("\n")
        first = lines[0]

        sln = _col(first, SLN_COLS)
        if not self.sln_re.match(sln):
            return None, ExtractionError(f"skipped section: bad SLN {sln!r}", offset)

        sect = Section(
            class_key=class_key,
            sln=sln,
            restriction=html.unescape(_col(first, RESTRICTION_COLS)),
            section=html.unescape(_col(first, SECTION_COLS)),
            credit=html.unescape(_col(first, CREDIT_COLS)),
            instructor=html.unescape(_col(first, INSTRUCTOR_COLS)),
            status=html.unescape(_col(first, STATUS_COLS)),
            grades=html.unescape(_col(first, GRADES_COLS)),
            fee=html.unescape(_col(first, FEE_COLS)),
            other=html.unescape(first[OTHER_START:].strip()),
        )
        sect.taken_spots, sect.total_spots = self.seats(first[SEATS_COLS[0]:SEATS_COLS[1]])

        meeting_times: List[MeetingTime] = []
        mt = self.meeting_time(first)
        if mt is not None:
            meeting_times.append(mt)

        for line in lines[1:]:
            mt = self.meeting_time(line)
            if mt is not None:
                meeting_times.append(mt)
            elif not self.blank_line_re.match(line):
                sect.info += html.unescape(line.strip()) + "\n"

        try:
            sect.meeting_times_json = dump_meeting_times(meeting_times)
        except (TypeError, ValueError) as exc:
            return None, ExtractionError(f"skipped section {sln}: cannot serialize meeting times: {exc}", offset)

        return sect, None

    def seats(self, segment: str) -> Tuple[int, int]:
        """
        Parse a 'taken/ total' segment. Anything but exactly two numbers gives (0, 0).
        """
        numbers = self.seats_re.findall(segment)
        if len(numbers) != 2:
            return 0, 0
        return int(numbers[0]), int(numbers[1])

    def meeting_time(self, line: str) -> Optional[MeetingTime]:
        """
        Parse a meeting time out of one line, or return None.

        The pattern is searched anywhere in the line, so long day tokens
        like 'MTWThF' match on their tail. Lines in the schedule's own layout
        are sliced at the fixed columns, which yields the whole day token.
        Other lines take the full word around the match as the day token and
        are split on whitespace after it.
        """
        m = self.meeting_time_re.search(line)
        if not m:
            return None

        if DAYS_COLS[0] <= m.start(1) < DAYS_COLS[1] and TIME_COLS[0] <= m.start(2) < TIME_COLS[1]:
            return MeetingTime(
                days=_col(line, DAYS_COLS),
                time=_col(line, TIME_COLS),
                building=html.unescape(_col(line, BUILDING_COLS)),
                room=html.unescape(_col(line, ROOM_COLS)),
            )

        days_start = m.start(1)
        while days_start > 0 and line[days_start - 1].isalpha():
            days_start -= 1
        rest = line[m.end():].split()
        return MeetingTime(
            days=line[days_start:m.end(1)],
            time=m.group(2),
            building=html.unescape(rest[0]) if rest else "",
            room=html.unescape(rest[1]) if len(rest) > 1 else "",
        )
