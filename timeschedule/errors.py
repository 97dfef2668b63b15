"""
Exception types shared by the crawler, the stores and the CLI.
"""

from __future__ import annotations

from typing import Iterable, List, Optional


class ScheduleError(Exception):
    """Base class for all errors raised by timeschedule."""


class ConfigError(ScheduleError):
    pass


class FetchError(ScheduleError):
    """A page could not be fetched (network error, bad status, unreadable body)."""

    def __init__(self, url: str, reason: str) -> None:
        super().__init__(f"fetch {url!r} failed: {reason}")
        self.url = url
        self.reason = reason


class ExtractionError(ScheduleError):
    """One chunk of a page was skipped because it did not have the expected structure."""

    def __init__(self, message: str, offset: Optional[int] = None) -> None:
        if offset is not None:
            message = f"{message} (offset {offset})"
        super().__init__(message)
        self.offset = offset


class ExtractionErrors(ScheduleError):
    """
    Aggregate of per-chunk extraction errors from one page.
    """

    def __init__(self, errors: Iterable[ExtractionError]) -> None:
        self.errors: List[ExtractionError] = list(errors)
        super().__init__("; ".join(str(e) for e in self.errors))

    def __len__(self) -> int:
        return len(self.errors)


class InsertError(ScheduleError):
    pass


class SelectError(ScheduleError):
    pass


class StoreUnavailable(ScheduleError):
    """The control store holding the active slot cannot be read."""


class SlotConflictError(ScheduleError):
    """The active slot changed under a flip. There is only one writer, so this is fatal."""
