"""
In-memory record of which agents have sent a heartbeat recently.

Entries are only evicted when someone asks for a snapshot; there is no
background sweeper.
"""
import threading
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict

DEFAULT_TTL = 30  # seconds


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class PresenceRegistry:
    def __init__(self, clock: Callable[[], datetime] = _utcnow):
        self._clock = clock
        self._last_seen: Dict[str, datetime] = {}
        self._lock = threading.Lock()  # guards _last_seen

    def touch(self, hostname: str):
        with self._lock:
            self._last_seen[hostname] = self._clock()

    def snapshot(self, ttl: float = DEFAULT_TTL) -> Dict[str, datetime]:
        """Hosts seen within `ttl` seconds; older entries are dropped for good."""
        end_time = self._clock() - timedelta(seconds=ttl)
        with self._lock:
            stale = [host for host, seen in self._last_seen.items() if seen < end_time]
            for host in stale:
                del self._last_seen[host]
            return dict(self._last_seen)

    def __len__(self):
        with self._lock:
            return len(self._last_seen)
