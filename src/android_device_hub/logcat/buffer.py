"""Fixed-capacity record buffer with oldest-first eviction."""

from __future__ import annotations

from collections import deque

from android_device_hub.logcat.models import LogRecord

DEFAULT_CAPACITY = 10_000


class BoundedLogBuffer:
    """Keeps the most recent `capacity` records, oldest first.

    Every appended record gets an absolute sequence number; `since(cursor)`
    returns what was appended after a cursor that is still in the window.
    """

    def __init__(self, capacity: int = DEFAULT_CAPACITY) -> None:
        if capacity <= 0:
            raise ValueError("capacity must be positive")
        self.capacity = capacity
        self._records: deque[LogRecord] = deque(maxlen=capacity)
        self._total = 0

    def __len__(self) -> int:
        return len(self._records)

    @property
    def cursor(self) -> int:
        """Sequence number of the newest record (0 when nothing was appended)."""
        return self._total

    def append(self, record: LogRecord) -> None:
        self._records.append(record)
        self._total += 1

    def snapshot(self) -> list[LogRecord]:
        return list(self._records)

    def since(self, cursor: int) -> tuple[list[LogRecord], int]:
        """Return records appended after `cursor` and the new cursor.

        Records evicted since `cursor` are skipped. A cursor ahead of the
        buffer (e.g. after `clear()` on the other side) returns everything.
        """
        if cursor > self._total or cursor < 0:
            cursor = 0
        first_seq = self._total - len(self._records)
        start = max(cursor - first_seq, 0)
        records = list(self._records)[start:]
        return records, self._total

    def clear(self) -> None:
        """Drop all records. Sequence numbers keep increasing."""
        self._records.clear()
