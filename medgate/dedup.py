"""
Guard against duplicate submissions.

Chat sends are exclusive: while one (subject, route, message) is in flight an
identical one is refused, and the same text from the same subject is also
refused for a short cooldown after the previous one started. Idempotent reads
are joinable instead: concurrent identical reads share one pending result.

The lock only covers map bookkeeping; the wrapped work runs outside it.
"""
import hashlib
import json
import logging
import threading
import time
from concurrent.futures import Future
from contextlib import contextmanager

from .errors import DuplicateInFlight

logger = logging.getLogger(__name__)


def fingerprint(*parts) -> str:
    raw = json.dumps(parts, ensure_ascii=False, sort_keys=True, default=str)
    return hashlib.sha256(raw.encode('utf-8')).hexdigest()


def normalize_text(text: str) -> str:
    return ' '.join((text or '').split())


class RequestDeduplicator:
    def __init__(self, cooldown: float = 1.0, retention: float = 300.0, clock=time.monotonic):
        self.cooldown = cooldown
        self.retention = retention
        self._clock = clock
        self._lock = threading.Lock()
        self._in_flight = set()
        self._last_sent = {}
        self._joinable = {}

    def _prune(self, now):
        cutoff = now - self.retention
        for key in [k for k, ts in self._last_sent.items() if ts < cutoff]:
            del self._last_sent[key]

    @contextmanager
    def exclusive(self, subject_id: str, route: str, text: str):
        """Hold the in-flight marker for one chat send."""
        text = normalize_text(text)
        key = fingerprint(subject_id, route, text)
        cooldown_key = fingerprint(subject_id, text)
        with self._lock:
            now = self._clock()
            if key in self._in_flight:
                logger.info(f"Duplicate chat send refused while in flight: {text[:50]}")
                raise DuplicateInFlight()
            last = self._last_sent.get(cooldown_key)
            if last is not None and now - last < self.cooldown:
                logger.info(f"Same message resent within {self.cooldown:g}s: {text[:50]}")
                raise DuplicateInFlight('Please do not send the same message repeatedly')
            self._in_flight.add(key)
            self._last_sent[cooldown_key] = now
            self._prune(now)
        try:
            yield key
        finally:
            with self._lock:
                self._in_flight.discard(key)

    def join(self, key: str, fn):
        """Run fn once for concurrent callers sharing key; later callers get the same result."""
        with self._lock:
            future = self._joinable.get(key)
            owner = future is None
            if owner:
                future = Future()
                self._joinable[key] = future
        if not owner:
            logger.debug(f"Joined pending request {key[:12]}")
            return future.result()

        try:
            result = fn()
        except BaseException as e:
            future.set_exception(e)
            raise
        else:
            future.set_result(result)
            return result
        finally:
            with self._lock:
                self._joinable.pop(key, None)

    def in_flight(self, subject_id: str, route: str, text: str) -> bool:
        key = fingerprint(subject_id, route, normalize_text(text))
        with self._lock:
            return key in self._in_flight
