"""
Concurrency-safe schedule state.

Maps category labels to ScheduleEntry objects. A single lock guards the
whole map; it is held only for the map mutation or the snapshot copy and
never across network I/O.
"""

import threading
from contextlib import contextmanager
from datetime import datetime, timedelta
from typing import Callable, Dict, Iterator, Optional, Set

import structlog

from jobsync.models import ScheduleEntry, utc_now

logger = structlog.get_logger(__name__)

FALLBACK_INTERVAL = timedelta(minutes=1)

IntervalResolver = Callable[[str], timedelta]


class ScheduleStore:
    """Schedule store keyed by the original category label."""

    def __init__(
        self,
        interval_resolver: Optional[IntervalResolver] = None,
        clock: Callable[[], datetime] = utc_now
    ):
        """
        Initialize the schedule store.

        Args:
            interval_resolver: Default resolver mapping an endpoint type to
                its refresh interval
            clock: Callable returning the current aware datetime
        """
        self._lock = threading.Lock()
        self._entries: Dict[str, ScheduleEntry] = {}
        self._in_flight: Set[str] = set()
        self.interval_resolver = interval_resolver
        self.clock = clock
        self.logger = logger.bind(component="schedule_store")

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def contains(self, key: str) -> bool:
        with self._lock:
            return key in self._entries

    def get(self, key: str) -> Optional[ScheduleEntry]:
        """Return a copy of the entry for key, or None."""
        with self._lock:
            entry = self._entries.get(key)
            return entry.model_copy() if entry is not None else None

    def snapshot_all(self) -> Dict[str, ScheduleEntry]:
        """Return a deep copy of every entry, safe to iterate without the lock."""
        with self._lock:
            return {key: entry.model_copy(deep=True) for key, entry in self._entries.items()}

    def upsert(
        self,
        key: str,
        endpoint_type: str,
        next_run: Optional[datetime] = None,
        interval_resolver: Optional[IntervalResolver] = None
    ) -> ScheduleEntry:
        """
        Create or update the schedule entry for key.

        An existing positive interval is kept. Otherwise the interval comes
        from the resolver, falling back to one minute. Without an explicit
        next_run the job becomes due one interval from now. The due time of
        an existing entry is never moved backwards.

        Args:
            key: Original category label
            endpoint_type: Endpoint type of the job
            next_run: Explicit next eligible run time
            interval_resolver: Resolver overriding the store default

        Returns:
            Copy of the stored entry
        """
        existing = self.get(key)
        interval = existing.interval if existing is not None else timedelta(0)

        if interval <= timedelta(0):
            interval = self._resolve_interval(endpoint_type, interval_resolver or self.interval_resolver)

        if next_run is None:
            next_run = self.clock() + interval

        with self._lock:
            entry = self._entries.get(key)
            if entry is not None and next_run < entry.next_run:
                self.logger.debug(
                    "Refusing to rewind next run",
                    category=key,
                    requested=next_run.isoformat(),
                    current=entry.next_run.isoformat()
                )
                next_run = entry.next_run
            entry = ScheduleEntry(endpoint_type=endpoint_type, interval=interval, next_run=next_run)
            self._entries[key] = entry
            return entry.model_copy()

    def _resolve_interval(self, endpoint_type: str, resolver: Optional[IntervalResolver]) -> timedelta:
        if resolver is not None:
            try:
                interval = resolver(endpoint_type)
            except Exception as e:
                self.logger.warning(
                    "Interval resolver failed, using fallback",
                    endpoint_type=endpoint_type,
                    error=str(e)
                )
            else:
                if interval is not None and interval > timedelta(0):
                    return interval
        return FALLBACK_INTERVAL

    def claim(self, key: str) -> bool:
        """Mark key as executing. Returns False if it already is."""
        with self._lock:
            if key in self._in_flight:
                return False
            self._in_flight.add(key)
            return True

    def release(self, key: str) -> None:
        with self._lock:
            self._in_flight.discard(key)

    def is_in_flight(self, key: str) -> bool:
        with self._lock:
            return key in self._in_flight

    @contextmanager
    def claimed(self, key: str) -> Iterator[bool]:
        """Context manager around claim()/release(); yields whether the claim succeeded."""
        acquired = self.claim(key)
        try:
            yield acquired
        finally:
            if acquired:
                self.release(key)
