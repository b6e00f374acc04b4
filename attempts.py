"""Per-client tracking of rejected URL submissions.

A client that keeps submitting URLs that fail validation is blocked until its
tracking window runs out.
"""

import threading
import time
from datetime import datetime, timezone

# Only the most recent error codes are kept per client.
MAX_RECENT_ERRORS = 10


def _iso(ts: float) -> str:
    return datetime.fromtimestamp(ts, tz=timezone.utc).isoformat()


class FailedAttemptTracker:
    def __init__(self, max_failures: int = 10, window_seconds: float = 900, clock=time.time):
        self.max_failures = max_failures
        self.window_seconds = window_seconds
        self._clock = clock
        self._lock = threading.Lock()
        self._records = {}  # client -> {"count", "first", "last", "errors"}

    def _expired(self, record, now: float) -> bool:
        return now - record["first"] > self.window_seconds

    def record_failure(self, client: str, error_code: str) -> int:
        """Count one failure for ``client``; returns the count in the current window."""
        now = self._clock()
        with self._lock:
            record = self._records.get(client)
            if record is None or self._expired(record, now):
                record = {"count": 0, "first": now, "last": now, "errors": []}
                self._records[client] = record
            record["count"] += 1
            record["last"] = now
            record["errors"].append(error_code)
            del record["errors"][:-MAX_RECENT_ERRORS]
            return record["count"]

    def is_blocked(self, client: str) -> bool:
        now = self._clock()
        with self._lock:
            record = self._records.get(client)
            if record is None:
                return False
            if self._expired(record, now):
                del self._records[client]
                return False
            return record["count"] >= self.max_failures

    def failure_count(self, client: str) -> int:
        with self._lock:
            record = self._records.get(client)
            return record["count"] if record else 0

    def purge(self) -> int:
        """Drop expired records; returns how many were removed."""
        now = self._clock()
        with self._lock:
            stale = [c for c, r in self._records.items() if self._expired(r, now)]
            for client in stale:
                del self._records[client]
        return len(stale)

    def reset(self):
        with self._lock:
            self._records.clear()

    def stats(self, limit: int = 50):
        """Summary for monitoring: totals plus the most recently active clients."""
        self.purge()
        with self._lock:
            records = [
                (client, dict(r, errors=list(r["errors"])))
                for client, r in self._records.items()
            ]

        recent = sorted(records, key=lambda item: item[1]["last"], reverse=True)[:limit]
        return {
            "total_clients": len(records),
            "blocked_clients": sum(
                1 for _, r in records if r["count"] >= self.max_failures
            ),
            "recent_attempts": [
                {
                    "client": client,
                    "count": r["count"],
                    "first_attempt": _iso(r["first"]),
                    "last_attempt": _iso(r["last"]),
                    "recent_errors": r["errors"][-3:],
                }
                for client, r in recent
            ],
        }
