"""In-process request timing, exposed to admins under /api/performance."""
import logging
import threading
import time
from collections import deque
from datetime import datetime, timezone

from flask import g, request

logger = logging.getLogger(__name__)


def _percentile(sorted_values, fraction):
    return sorted_values[min(int(len(sorted_values) * fraction), len(sorted_values) - 1)]


class RequestMetrics:
    def __init__(self, max_entries=1000, slow_ms=1000, clock=time.time):
        self.slow_ms = slow_ms
        self._clock = clock
        self._lock = threading.Lock()
        self._entries = deque(maxlen=max_entries)

    def record(self, path, method, duration_ms, status_code, user_agent=None):
        entry = {
            'path': path,
            'method': method,
            'duration': int(round(duration_ms)),
            'timestamp': self._clock(),
            'statusCode': status_code,
            'userAgent': user_agent,
        }
        with self._lock:
            self._entries.append(entry)
        if duration_ms > self.slow_ms:
            logger.warning(f"Slow request: {method} {path} - {int(duration_ms)}ms")

    def _snapshot(self):
        with self._lock:
            return list(self._entries)

    def _summarize(self, entries):
        if not entries:
            return None
        durations = sorted(e['duration'] for e in entries)
        total = len(durations)
        slow = sum(1 for d in durations if d > self.slow_ms)
        return {
            'total': total,
            'slowRequests': slow,
            'slowRequestPercentage': round(slow * 100.0 / total, 2),
            'avgDuration': round(sum(durations) / total),
            'minDuration': durations[0],
            'maxDuration': durations[-1],
            'p50': _percentile(durations, 0.5),
            'p90': _percentile(durations, 0.9),
            'p95': _percentile(durations, 0.95),
            'p99': _percentile(durations, 0.99),
        }

    def stats(self):
        entries = self._snapshot()
        now = self._clock()
        return {
            'last24Hours': self._summarize([e for e in entries if now - e['timestamp'] < 24 * 3600]),
            'lastHour': self._summarize([e for e in entries if now - e['timestamp'] < 3600]),
            'totalMetrics': len(entries),
        }

    def path_stats(self, path):
        """Last hour of timings for one path, or None when it has no recent requests."""
        now = self._clock()
        recent = [e for e in self._snapshot() if e['path'] == path and now - e['timestamp'] < 3600]
        if not recent:
            return None
        durations = sorted(e['duration'] for e in recent)
        return {
            'path': path,
            'requestCount': len(durations),
            'avgDuration': round(sum(durations) / len(durations)),
            'minDuration': durations[0],
            'maxDuration': durations[-1],
            'slowRequests': sum(1 for d in durations if d > self.slow_ms),
        }

    def slowest(self, limit=10):
        entries = sorted(self._snapshot(), key=lambda e: e['duration'], reverse=True)[:limit]
        return [
            {**e, 'timestamp': datetime.fromtimestamp(e['timestamp'], timezone.utc).isoformat()}
            for e in entries
        ]

    def cleanup(self, max_age_hours=24):
        cutoff = self._clock() - max_age_hours * 3600
        with self._lock:
            kept = [e for e in self._entries if e['timestamp'] >= cutoff]
            removed = len(self._entries) - len(kept)
            self._entries.clear()
            self._entries.extend(kept)
        if removed:
            logger.info(f"Removed {removed} old request metrics")
        return removed

    def init_app(self, app):
        @app.before_request
        def _start_timer():
            g._request_started = time.perf_counter()

        @app.after_request
        def _record(response):
            started = g.pop('_request_started', None)
            if started is not None:
                self.record(request.path, request.method, (time.perf_counter() - started) * 1000,
                            response.status_code, request.headers.get('User-Agent'))
            return response
