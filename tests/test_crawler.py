"""
Tests for the crawl orchestrator.

These tests focus on:
- the full Department -> Class -> Section tree landing in the datastore
- skipping a department whose page cannot be fetched
- the fetch and insert limits never being exceeded
"""

import tempfile
import threading
import time
import unittest
from pathlib import Path

from schedule_pages import ROOT_URL, FakeFetcher, site

from timeschedule.crawler import Permits, crawl
from timeschedule.errors import FetchError
from timeschedule.model import Class, Department, Section
from timeschedule.storage import Datastore


class RecordingPermits(Permits):
    """
    Permits that remember the highest number held at once.
    """

    def __init__(self, limit: int, name: str = "permits") -> None:
        super().__init__(limit, name)
        self._count_lock = threading.Lock()
        self.held = 0
        self.peak = 0
        self.acquired = 0

    def acquire(self) -> None:
        super().acquire()
        with self._count_lock:
            self.held += 1
            self.acquired += 1
            self.peak = max(self.peak, self.held)

    def release(self) -> None:
        with self._count_lock:
            self.held -= 1
        super().release()


class SlowFetcher(FakeFetcher):
    """
    FakeFetcher that takes a while per page and counts overlapping calls.
    """

    def __init__(self, pages, delay: float = 0.02) -> None:
        super().__init__(pages)
        self.delay = delay
        self._lock = threading.Lock()
        self.in_flight = 0
        self.peak = 0

    def __call__(self, url: str) -> bytes:
        with self._lock:
            self.in_flight += 1
            self.peak = max(self.peak, self.in_flight)
        try:
            time.sleep(self.delay)
            return super().__call__(url)
        finally:
            with self._lock:
                self.in_flight -= 1


def _many_departments(n: int) -> dict:
    """
    A site with n copies of the English page under different abbreviations.
    """
    pages = dict(site())
    items = []
    engl = pages[ROOT_URL + "engl.html"].decode("utf-8")
    for i in range(n):
        items.append(f'<li><a href="d{i}.html">Dept {i} (D{i})</a></li>')
        # unique keys per department
        pages[ROOT_URL + f"d{i}.html"] = (
            engl.replace("engl", f"dpt{chr(97 + i)}").replace("20001", f"{50000 + i}").encode("utf-8")
        )
    pages[ROOT_URL] = ("<ul>" + "\n".join(items) + "</ul>").encode("utf-8")
    return pages


class TestCrawl(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.store = Datastore(Path(self._tmp.name) / "slot.db")
        self.store.reset_schema()

    def tearDown(self) -> None:
        self._tmp.cleanup()

    def test_full_tree_is_persisted(self) -> None:
        report = crawl(ROOT_URL, self.store, fetch_limit=2, insert_limit=2, fetcher=FakeFetcher(site()))

        self.assertEqual(report.departments_seen, 3)
        self.assertEqual(report.departments_fetched, 3)
        self.assertEqual(report.fetch_failures, 0)
        self.assertEqual(report.insert_failures, 0)
        self.assertEqual(report.records_inserted, 3 + 4 + 6)

        self.assertEqual(sorted(d.abbreviation for d in self.store.select(Department)), ["CSE", "ENGL", "MATH"])
        self.assertEqual(sorted(c.key for c in self.store.select(Class)), ["cse142", "engl131", "math124", "math125"])
        sects = {s.sln: s.class_key for s in self.store.select(Section)}
        self.assertEqual(sects["18010"], "math125")
        self.assertEqual(sects["30002"], "cse142")

    def test_one_failing_department_is_skipped(self) -> None:
        fetcher = FakeFetcher(site(), failing={ROOT_URL + "engl.html"})
        report = crawl(ROOT_URL, self.store, fetch_limit=3, insert_limit=3, fetcher=fetcher)

        self.assertEqual(report.fetch_failures, 1)
        self.assertEqual(report.departments_fetched, 2)
        self.assertEqual(sorted(d.abbreviation for d in self.store.select(Department)), ["CSE", "MATH"])
        self.assertEqual(self.store.select(Class, where={"dept_key": "ENGL"}), [])
        self.assertEqual(self.store.count(Section), 5)

    def test_root_failure_is_fatal(self) -> None:
        fetcher = FakeFetcher(site(), failing={ROOT_URL})
        with self.assertRaises(FetchError):
            crawl(ROOT_URL, self.store, fetch_limit=1, insert_limit=1, fetcher=fetcher)
        self.assertEqual(fetcher.calls, [ROOT_URL])

    def test_insert_failure_does_not_stop_siblings(self) -> None:
        pages = site()
        # ENGL reuses an SLN already used by MATH
        pages[ROOT_URL + "engl.html"] = pages[ROOT_URL + "engl.html"].replace(b"20001", b"18001")
        report = crawl(ROOT_URL, self.store, fetch_limit=3, insert_limit=3, fetcher=FakeFetcher(pages))

        self.assertEqual(report.insert_failures, 1)
        self.assertEqual(report.records_inserted, 3 + 4 + 5)
        self.assertEqual(self.store.count(Class), 4)

    def test_empty_index(self) -> None:
        pages = {ROOT_URL: b"<html><body>Nothing here</body></html>"}
        with self.assertLogs("timeschedule.crawler", level="ERROR") as logs:
            report = crawl(ROOT_URL, self.store, fetch_limit=1, insert_limit=1, fetcher=FakeFetcher(pages))
        self.assertEqual(report.departments_seen, 0)
        self.assertEqual(self.store.count(Department), 0)
        self.assertIn("no departments found", logs.output[0])

    def test_fetch_limit_is_respected(self) -> None:
        fetcher = SlowFetcher(_many_departments(12))
        permits = RecordingPermits(3, "fetch")

        report = crawl(ROOT_URL, self.store, fetch_limit=3, insert_limit=4, fetcher=fetcher, fetch_permits=permits)

        self.assertEqual(report.departments_fetched, 12)
        self.assertLessEqual(permits.peak, 3)
        self.assertLessEqual(fetcher.peak, 3)
        self.assertEqual(permits.acquired, 13)  # root + 12 departments
        self.assertEqual(permits.held, 0)

    def test_insert_limit_is_respected(self) -> None:
        permits = RecordingPermits(2, "insert")
        report = crawl(
            ROOT_URL,
            self.store,
            fetch_limit=4,
            insert_limit=2,
            fetcher=FakeFetcher(_many_departments(6)),
            insert_permits=permits,
        )

        self.assertLessEqual(permits.peak, 2)
        self.assertEqual(permits.acquired, report.records_inserted + report.insert_failures)
        self.assertEqual(self.store.count(Department), 6)


class TestPermits(unittest.TestCase):
    def test_limit_must_be_positive(self) -> None:
        with self.assertRaises(ValueError):
            Permits(0)


if __name__ == "__main__":
    unittest.main()
