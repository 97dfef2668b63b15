"""
Unit tests for the SQLite datastore.

Storage contract:
- reset_schema() leaves three empty tables
- insert() stores one record; a duplicate key raises InsertError
- select() filters by column equality and orders by one column
"""

import tempfile
import unittest
from pathlib import Path

from timeschedule.errors import InsertError, SelectError
from timeschedule.model import Class, Department, MeetingTime, Section, dump_meeting_times
from timeschedule.storage import Datastore


class TestDatastore(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.store = Datastore(Path(self._tmp.name) / "slot.db")
        self.store.reset_schema()

    def tearDown(self) -> None:
        self._tmp.cleanup()

    def test_insert_and_select_each_kind(self) -> None:
        dept = Department(abbreviation="MATH", name="Mathematics", link="https://x/math.html")
        cls = Class(dept_key="MATH", abbreviation="math", code="124", title="CALCULUS I", start=10, end=99)
        sect = Section(
            class_key="math124",
            sln="18001",
            credit="5",
            meeting_times_json=dump_meeting_times([MeetingTime("MWF", "930-1020", "KNE", "120")]),
            taken_spots=12,
            total_spots=30,
            info="note\n",
        )
        for record in (dept, cls, sect):
            self.store.insert(record)

        self.assertEqual(self.store.select(Department), [dept])

        loaded_cls = self.store.select(Class)[0]
        # offsets are not persisted
        self.assertEqual((loaded_cls.key, loaded_cls.title, loaded_cls.start), ("math124", "CALCULUS I", 0))

        loaded_sect = self.store.select(Section)[0]
        self.assertEqual(loaded_sect, sect)
        self.assertEqual(loaded_sect.meeting_times(), [MeetingTime("MWF", "930-1020", "KNE", "120")])

    def test_duplicate_key_raises(self) -> None:
        self.store.insert(Section(class_key="a1", sln="11111"))
        with self.assertRaises(InsertError):
            self.store.insert(Section(class_key="b2", sln="11111"))
        self.assertEqual(self.store.count(Section), 1)

    def test_select_filter_and_order(self) -> None:
        for code in ("300", "124", "200"):
            self.store.insert(Class(dept_key="MATH", abbreviation="math", code=code, title=""))
        self.store.insert(Class(dept_key="ENGL", abbreviation="engl", code="131", title=""))

        got = self.store.select(Class, where={"dept_key": "MATH"}, order_by="code")
        self.assertEqual([c.code for c in got], ["124", "200", "300"])

        got = self.store.select(Class, order_by="-code", limit=2)
        self.assertEqual([c.code for c in got], ["300", "200"])

    def test_select_unknown_column(self) -> None:
        with self.assertRaises(SelectError):
            self.store.select(Class, where={"nope": 1})
        with self.assertRaises(SelectError):
            self.store.select(Class, order_by="nope")

    def test_reset_schema_discards_rows(self) -> None:
        self.store.insert(Department(abbreviation="MATH", name="Mathematics", link=""))
        self.store.reset_schema()
        self.assertEqual(self.store.count(Department), 0)


if __name__ == "__main__":
    unittest.main()
