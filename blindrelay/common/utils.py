"""Common utility helpers: base64, timestamps, topic quoting."""

import base64
import binascii
import threading
import time
from urllib.parse import quote

from blindrelay.common.errors import DecodeError


def now_ms() -> int:
    """Return current time in Unix milliseconds."""
    return int(time.time() * 1000)


class MonotonicClock:
    """
    Millisecond clock that never hands out the same value twice.

    Timestamps double as message identity on a topic, so two messages
    produced within one millisecond must still differ.
    """

    def __init__(self):
        self._last = 0
        self._lock = threading.Lock()

    def next(self) -> int:
        with self._lock:
            ts = max(now_ms(), self._last + 1)
            self._last = ts
            return ts


_clock = MonotonicClock()


def next_timestamp() -> int:
    """Return a strictly increasing Unix-millisecond timestamp."""
    return _clock.next()


def b64_encode(data: bytes) -> str:
    """
    Base64-encode bytes -> str (ASCII).
    """
    return base64.b64encode(data).decode("ascii")


def b64_decode(s: str) -> bytes:
    """
    Base64-decode str -> bytes.

    Raises DecodeError on anything that is not strict base64.
    """
    try:
        return base64.b64decode(s.encode("ascii"), validate=True)
    except (binascii.Error, UnicodeEncodeError, ValueError) as exc:
        raise DecodeError(f"invalid base64: {exc}") from exc


def quote_topic(topic: str) -> str:
    """URL-encode a content topic for use as a single path segment."""
    return quote(topic, safe="")
