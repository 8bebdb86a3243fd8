import threading
import time


class FixedWindowLimiter:
    """Simple per-key rate limiting: at most `limit` hits per `window_sec`."""

    def __init__(self, limit: int, window_sec: float, clock=time.time):
        self.limit = limit
        self.window_sec = window_sec
        self._clock = clock
        self._lock = threading.Lock()
        self._table = {}  # {key: {'start': epoch, 'count': int}}

    def _prune(self, now):
        expired = [k for k, rec in self._table.items() if now - rec['start'] > self.window_sec]
        for key in expired:
            del self._table[key]

    def hit(self, key: str) -> bool:
        """Return True if within limit, False if exceeded."""
        now = self._clock()
        with self._lock:
            self._prune(now)
            rec = self._table.get(key)
            if not rec:
                # New window
                self._table[key] = {'start': now, 'count': 1}
                return True
            if rec['count'] >= self.limit:
                return False
            rec['count'] += 1
            return True

    def __len__(self):
        with self._lock:
            return len(self._table)

    def reset(self):
        with self._lock:
            self._table.clear()
