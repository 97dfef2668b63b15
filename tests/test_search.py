"""
Tests for the read path and ranked search.

Scoring used here:
- word score: number of (term, word) pairs where the term prefixes the word
- letter score: total length of those prefix matches
"""

import tempfile
import unittest
from pathlib import Path

from timeschedule.model import Class, Department, MeetingTime, Section, dump_meeting_times
from timeschedule.search import letter_score, list_sections, search, word_score
from timeschedule.switch import Slot, StoreSwitch


class TestScores(unittest.TestCase):
    def test_prefix_matches(self) -> None:
        self.assertEqual(word_score("calc anal", "calculus analytic geometry"), 2)
        self.assertEqual(letter_score("calc anal", "calculus analytic geometry"), 8)

    def test_case_insensitive(self) -> None:
        self.assertEqual(word_score("MATH", "math 124"), 1)
        self.assertEqual(letter_score("Mat", "MATHEMATICS"), 3)

    def test_no_match(self) -> None:
        self.assertEqual(word_score("geo", "calculus"), 0)
        self.assertEqual(letter_score("", "calculus"), 0)


class TestSearch(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.switch = StoreSwitch(Path(self._tmp.name))
        self.switch.setup()
        store = self.switch.store(Slot.A)
        store.insert(Department("MATH", "Mathematics", "https://x/math.html"))
        store.insert(Department("ENGL", "English", "https://x/engl.html"))
        store.insert(Class("MATH", "math", "124", "CALCULUS WITH ANALYTIC GEOMETRY I"))
        store.insert(Class("MATH", "math", "300", "INTRODUCTION TO MATHEMATICAL REASONING"))
        store.insert(Class("ENGL", "engl", "131", "COMPOSITION: EXPOSITION"))
        store.insert(Section("math124", "18002", credit="QZ"))
        store.insert(
            Section(
                "math124",
                "18001",
                credit="5",
                meeting_times_json=dump_meeting_times([MeetingTime("TTh", "830-920", "KNE", "110")]),
                taken_spots=3,
                total_spots=4,
            )
        )

    def tearDown(self) -> None:
        self._tmp.cleanup()

    def test_best_match_first(self) -> None:
        hits = search(self.switch, "calc anal")
        self.assertEqual([h.key for h in hits], ["math124"])
        self.assertEqual((hits[0].word, hits[0].letter), (2, 8))

    def test_departments_and_classes_are_ranked_together(self) -> None:
        hits = search(self.switch, "math")
        keys = [h.key for h in hits]
        self.assertEqual(set(keys), {"MATH", "math124", "math300"})
        # "math" also prefixes MATHEMATICAL in the 300 title
        self.assertEqual(keys[0], "math300")

    def test_limit_and_empty_query(self) -> None:
        self.assertEqual(len(search(self.switch, "math", limit=1)), 1)
        self.assertEqual(search(self.switch, "   "), [])
        self.assertEqual(search(self.switch, "zzz"), [])

    def test_sections_ordered_by_sln(self) -> None:
        sects = list_sections(self.switch, "MATH 124")
        self.assertEqual([s.sln for s in sects], ["18001", "18002"])

    def test_section_filters(self) -> None:
        self.assertEqual([s.sln for s in list_sections(self.switch, "math124", open_only=True)], ["18001"])
        self.assertEqual([s.sln for s in list_sections(self.switch, "math124", skip_quiz=True)], ["18001"])
        self.assertEqual([s.sln for s in list_sections(self.switch, "math124", day="Th")], ["18001"])
        self.assertEqual(list_sections(self.switch, "math124", day="m"), [])

    def test_search_reads_active_slot_only(self) -> None:
        self.switch.flip_slot(Slot.A)
        self.assertEqual(search(self.switch, "math"), [])


class TestSectionHelpers(unittest.TestCase):
    def test_open_and_quiz(self) -> None:
        self.assertTrue(Section("math124", "1", taken_spots=29, total_spots=30).is_open())
        self.assertFalse(Section("math124", "2", taken_spots=30, total_spots=30).is_open())
        self.assertTrue(Section("math124", "3", credit="QZ").is_quiz())

    def test_day_set(self) -> None:
        self.assertEqual(MeetingTime("TTh", "830-920", "", "").day_set(), {"t", "th"})
        self.assertEqual(MeetingTime("MWF", "930-1020", "", "").day_set(), {"m", "w", "f"})
        self.assertEqual(MeetingTime("Th", "830-920", "", "").day_set(), {"th"})


if __name__ == "__main__":
    unittest.main()
