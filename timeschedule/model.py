"""
Central data model definitions used across the project.

This module defines the canonical structure of the four schedule entities:

    Department -> Class -> Section (-> MeetingTime, embedded as JSON)

All keys are natural string keys taken from the time schedule itself.
"""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass
from typing import List


@dataclass
class Department:
    """
    Represents one department entry of the time schedule index.
    """

    abbreviation: str  # primary key, upper case
    name: str
    link: str

    @property
    def key(self) -> str:
        return self.abbreviation


@dataclass
class Class:
    """
    Represents one class heading on a department page.

    start/end are character offsets into the department page. They scope the
    search for the class's sections and are not persisted.
    """

    dept_key: str
    abbreviation: str
    code: str
    title: str
    start: int = 0
    end: int = 0

    @property
    def key(self) -> str:
        return self.abbreviation + self.code


@dataclass
class MeetingTime:
    """
    Represents when and where a Section meets.
    """

    days: str
    time: str
    building: str
    room: str

    def day_set(self) -> set[str]:
        """
        Split a day token like 'TTh' or 'MWF' into single day names.
        """
        days = self.days.lower()
        out: set[str] = set()
        # "th" must be consumed before "t"
        for day in ("th", "m", "w", "f", "s", "t"):
            if day in days:
                out.add(day)
                days = days.replace(day, "")
        return out


@dataclass
class Section:
    """
    Represents one section row of the time schedule.

    Meeting times are stored denormalized as a JSON array in meeting_times_json.
    """

    class_key: str
    sln: str  # primary key
    restriction: str = ""
    section: str = ""
    credit: str = ""
    meeting_times_json: str = "[]"
    instructor: str = ""
    status: str = ""
    taken_spots: int = 0
    total_spots: int = 0
    grades: str = ""
    fee: str = ""
    other: str = ""
    info: str = ""

    @property
    def key(self) -> str:
        return self.sln

    def meeting_times(self) -> List[MeetingTime]:
        raw = json.loads(self.meeting_times_json or "[]")
        return [MeetingTime(**item) for item in raw]

    def is_open(self) -> bool:
        return self.total_spots - self.taken_spots >= 1

    def is_quiz(self) -> bool:
        return self.credit == "QZ"


def dump_meeting_times(meeting_times: List[MeetingTime]) -> str:
    """
    Serialize meeting times into the JSON form stored in the Section record.
    """
    return json.dumps([asdict(mt) for mt in meeting_times], ensure_ascii=False)

