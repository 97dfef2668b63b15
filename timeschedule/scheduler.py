"""
Scheduling loop: rebuild the inactive slot, then promote it.

One pass:
1. read the active slot
2. take the inactive slot's datastore as the target
3. drop and recreate the target's schema
4. crawl into the target
5. flip the active slot to the target

The loop is the only writer of the control row.
"""

from __future__ import annotations

import logging
import time
from typing import Callable, Optional

from timeschedule.config import Settings
from timeschedule.crawler import CrawlReport, crawl
from timeschedule.errors import FetchError
from timeschedule.fetch import Fetcher, make_fetcher
from timeschedule.switch import StoreSwitch


logger = logging.getLogger(__name__)


def run_pass(settings: Settings, switch: StoreSwitch, fetcher: Optional[Fetcher] = None) -> CrawlReport:
    """
    Run one full rebuild of the inactive slot and flip to it.

    A FetchError on the root index leaves the active slot untouched and is
    re-raised. SlotConflictError from the flip is never caught here.

    A root page that lists no departments is still a finished crawl: the
    empty slot is promoted and crawl() logs it at ERROR.
    """
    active = switch.get_active_slot()
    target_slot = active.other()
    target = switch.store(target_slot)

    logger.info("pass started: active slot %s, rebuilding slot %s", active.name, target_slot.name)
    target.reset_schema()

    start = time.monotonic()
    report = crawl(
        settings.root_url,
        target,
        settings.fetch_limit,
        settings.insert_limit,
        fetcher=fetcher or make_fetcher(timeout=settings.fetch_timeout, pool_size=settings.fetch_limit),
    )
    logger.info("time taken: %.1fs", time.monotonic() - start)

    switch.flip_slot(active)
    return report


def run_scheduler(
    settings: Settings,
    switch: StoreSwitch,
    fetcher: Optional[Fetcher] = None,
    sleep: Callable[[float], None] = time.sleep,
    max_passes: Optional[int] = None,
) -> int:
    """
    Run passes until done. Returns the number of successful flips.

    With settings.loop False a single pass runs. Otherwise passes repeat
    every interval_minutes (max_passes bounds the loop, mainly for tests).
    A failed root fetch skips that pass's flip but keeps the loop going.
    """
    flips = 0
    passes = 0
    while True:
        passes += 1
        try:
            run_pass(settings, switch, fetcher=fetcher)
            flips += 1
        except FetchError as exc:
            logger.error("pass aborted, slot %s stays active: %s", switch.get_active_slot().name, exc)
            if not settings.loop:
                raise

        if not settings.loop or (max_passes is not None and passes >= max_passes):
            return flips
        sleep(settings.interval_minutes * 60)
