"""
Crawl orchestration.

crawl() walks the whole schedule:

    root index -> departments -> (per department page) classes + sections

and inserts every record into one Datastore. Two independent limits apply:

- fetch permits cap how many pages are being downloaded at once
- insert permits cap how many inserts hit the datastore at once

Every department runs as its own task. A department task inserts its
Department, fans out one insert task per Class and Section, and waits for
all of them before it finishes. crawl() returns once every department task
has finished. Only a failure to fetch the root index aborts the pass.
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from typing import Any, List, Optional

from timeschedule.errors import ExtractionError, ExtractionErrors, FetchError, InsertError
from timeschedule.extract import Extractor
from timeschedule.fetch import Fetcher, decode_page, make_fetcher
from timeschedule.model import Department
from timeschedule.storage import Datastore, Record


logger = logging.getLogger(__name__)


class Permits:
    """
    Bounded counting semaphore for one kind of operation.

    Use as a context manager around the guarded call.
    """

    def __init__(self, limit: int, name: str = "permits") -> None:
        if limit < 1:
            raise ValueError(f"{name} limit must be >= 1, got {limit}")
        self.limit = limit
        self.name = name
        self._sem = threading.BoundedSemaphore(limit)

    def acquire(self) -> None:
        self._sem.acquire()

    def release(self) -> None:
        self._sem.release()

    def __enter__(self) -> "Permits":
        self.acquire()
        return self

    def __exit__(self, *exc: Any) -> None:
        self.release()


@dataclass
class CrawlReport:
    """
    Counters for one crawl pass. Safe to update from worker threads.
    """

    departments_seen: int = 0
    departments_fetched: int = 0
    fetch_failures: int = 0
    records_inserted: int = 0
    insert_failures: int = 0
    extraction_errors: List[str] = field(default_factory=list)
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    def bump(self, name: str, n: int = 1) -> None:
        with self._lock:
            setattr(self, name, getattr(self, name) + n)

    def add_errors(self, errors: List[ExtractionError], where: str) -> None:
        if not errors:
            return
        skipped = ExtractionErrors(errors)
        logger.warning("%s: %d chunk(s) skipped: %s", where, len(skipped), skipped)
        with self._lock:
            self.extraction_errors.extend(f"{where}: {err}" for err in skipped.errors)


def _insert(store: Datastore, record: Record, permits: Permits, report: CrawlReport) -> bool:
    with permits:
        try:
            store.insert(record)
        except InsertError as exc:
            logger.warning("%s", exc)
            report.bump("insert_failures")
            return False
    report.bump("records_inserted")
    return True


def crawl_department(
    dept: Department,
    store: Datastore,
    fetcher: Fetcher,
    extractor: Extractor,
    fetch_permits: Permits,
    insert_permits: Permits,
    insert_pool: ThreadPoolExecutor,
    report: CrawlReport,
) -> None:
    """
    Fetch one department page and persist the department, its classes and its sections.
    """
    with fetch_permits:
        try:
            body = fetcher(dept.link)
        except FetchError as exc:
            logger.warning("department %s SKIPPED: %s", dept.abbreviation, exc)
            report.bump("fetch_failures")
            return
    report.bump("departments_fetched")

    content = decode_page(body)
    classes, class_errors = extractor.classes(content, dept.key)
    report.add_errors(class_errors, f"classes of {dept.abbreviation}")
    sects, sect_errors = extractor.sections(content, classes)
    report.add_errors(sect_errors, f"sections of {dept.abbreviation}")

    _insert(store, dept, insert_permits, report)

    futures: List[Future] = [
        insert_pool.submit(_insert, store, record, insert_permits, report) for record in [*classes, *sects]
    ]
    wait(futures)
    for fut in futures:
        exc = fut.exception()
        if exc is not None:
            logger.error("insert task in %s crashed: %r", dept.abbreviation, exc)

    logger.info("scraped %s: %d classes, %d sections", dept.abbreviation, len(classes), len(sects))


def crawl(
    root_url: str,
    store: Datastore,
    fetch_limit: int,
    insert_limit: int,
    fetcher: Optional[Fetcher] = None,
    extractor: Optional[Extractor] = None,
    fetch_permits: Optional[Permits] = None,
    insert_permits: Optional[Permits] = None,
) -> CrawlReport:
    """
    Crawl the schedule rooted at root_url into store.

    Raises FetchError if the root index cannot be fetched. Every other
    failure (a department page, a malformed chunk, one insert) is logged,
    counted in the returned report and skipped.
    """
    fetcher = fetcher or make_fetcher(pool_size=fetch_limit)
    extractor = extractor or Extractor()
    fetch_permits = fetch_permits or Permits(fetch_limit, "fetch")
    insert_permits = insert_permits or Permits(insert_limit, "insert")
    report = CrawlReport()

    logger.info("crawl started: %s -> %s", root_url, store.path)
    with fetch_permits:
        body = fetcher(root_url)

    depts, errors = extractor.departments(decode_page(body), root_url)
    report.add_errors(errors, "department index")
    report.departments_seen = len(depts)
    if not depts:
        logger.error("no departments found at %s; the target store stays empty", root_url)
        return report

    with ThreadPoolExecutor(max_workers=len(depts), thread_name_prefix="dept") as dept_pool, ThreadPoolExecutor(
        max_workers=insert_limit, thread_name_prefix="insert"
    ) as insert_pool:
        futures = {
            dept_pool.submit(
                crawl_department,
                dept,
                store,
                fetcher,
                extractor,
                fetch_permits,
                insert_permits,
                insert_pool,
                report,
            ): dept
            for dept in depts
        }
        wait(futures)

    for fut, dept in futures.items():
        exc = fut.exception()
        if exc is not None:
            logger.error("department %s crashed: %r", dept.abbreviation, exc)

    logger.info(
        "crawl finished: %d/%d departments, %d records inserted, %d insert failures",
        report.departments_fetched,
        report.departments_seen,
        report.records_inserted,
        report.insert_failures,
    )
    return report
