from __future__ import annotations

import logging
from typing import Callable

import requests
from requests.adapters import HTTPAdapter

from timeschedule.errors import FetchError


logger = logging.getLogger(__name__)

# Anything with this signature can stand in for fetch_bytes (tests, caches).
Fetcher = Callable[[str], bytes]


def fetch_bytes(url: str, session: requests.Session, timeout: float = 30) -> bytes:
    """
    GET url through session and return the response body.

    A response outside 2XX/3XX, a connection problem or an unreadable body
    raises FetchError. No retries.
    """
    try:
        resp = session.get(url, timeout=timeout)
    except requests.RequestException as exc:
        raise FetchError(url, str(exc)) from exc

    if resp.status_code < 200 or resp.status_code > 399:
        raise FetchError(url, f"status {resp.status_code}")

    try:
        body = resp.content
    except requests.RequestException as exc:
        raise FetchError(url, f"reading body: {exc}") from exc

    logger.debug("fetched %s (%d bytes)", url, len(body))
    return body


def make_fetcher(timeout: float = 30, pool_size: int = 10) -> Fetcher:
    """
    Return a fetcher that shares one pooled requests.Session.
    """
    session = requests.Session()
    adapter = HTTPAdapter(pool_maxsize=pool_size)
    session.mount("http://", adapter)
    session.mount("https://", adapter)

    def fetch(url: str) -> bytes:
        return fetch_bytes(url, session, timeout=timeout)

    return fetch


def decode_page(body: bytes) -> str:
    """
    Decode a fetched page. Invalid bytes become U+FFFD instead of failing.
    """
    return body.decode("utf-8", errors="replace")
