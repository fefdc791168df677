"""NDJSON event log for one project directory.

Each event is one ``json.dumps(sort_keys=True)`` line appended to
``<project>/logs/events.ndjson``.  Appends hold an exclusive
``fcntl.flock`` and reads a shared one, so several CLI processes can
share the file.
"""

from __future__ import annotations

import fcntl
import json
import os
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator

from gridcalc.logging.events import GridEvent

# Default tail-read size (2 MB)
DEFAULT_TAIL_BYTES = 2 * 1024 * 1024

MAX_READ_LIMIT = 2000


@contextmanager
def _locked(path: Path, flags: int, operation: int) -> Iterator[int]:
    """Open *path* with *flags* and hold an ``flock`` while the block runs."""
    fd = os.open(str(path), flags, 0o644)
    try:
        fcntl.flock(fd, operation)
        yield fd
    finally:
        fcntl.flock(fd, fcntl.LOCK_UN)
        os.close(fd)


class EventSink:
    """Append-only event log with tail-bounded, filtered reads.

    Parameters
    ----------
    project_dir : Path
        Project root; events go to ``logs/events.ndjson`` beneath it.
    fsync : bool
        Flush each append to disk before releasing the lock.
    tail_bytes : int | None
        Reads only scan this many trailing bytes of the log.
    """

    def __init__(self, project_dir: Path, *, fsync: bool = False, tail_bytes: int | None = None) -> None:
        self.logs_dir = Path(project_dir) / "logs"
        self.path = self.logs_dir / "events.ndjson"
        self.fsync = fsync
        self.tail_bytes = tail_bytes if tail_bytes is not None else DEFAULT_TAIL_BYTES
        self.logs_dir.mkdir(parents=True, exist_ok=True)

    def write(self, event: GridEvent) -> None:
        line = json.dumps(event.model_dump(mode="json"), sort_keys=True, default=str) + "\n"
        flags = os.O_WRONLY | os.O_CREAT | os.O_APPEND
        with _locked(self.path, flags, fcntl.LOCK_EX) as fd:
            os.write(fd, line.encode("utf-8"))
            if self.fsync:
                os.fsync(fd)

    def read(
        self,
        *,
        level: str | None = None,
        event_type: str | None = None,
        cell: str | None = None,
        limit: int = 200,
    ) -> list[dict[str, Any]]:
        """Most recent events first, optionally filtered.

        *cell* matches the ``cell`` key of the event context.  At most
        ``MAX_READ_LIMIT`` events are returned whatever *limit* says.
        """
        limit = min(limit, MAX_READ_LIMIT)
        result: list[dict[str, Any]] = []
        for event in reversed(self._events()):
            if level and event.get("level") != level:
                continue
            if event_type and event.get("event_type") != event_type:
                continue
            if cell and event.get("context", {}).get("cell") != cell:
                continue
            result.append(event)
            if len(result) >= limit:
                break
        return result

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _events(self) -> list[dict[str, Any]]:
        """Decode the scanned tail; malformed lines are skipped."""
        if not self.path.exists():
            return []
        events: list[dict[str, Any]] = []
        for line in self._tail().splitlines():
            if not line.strip():
                continue
            try:
                events.append(json.loads(line))
            except json.JSONDecodeError:
                continue
        return events

    def _tail(self) -> str:
        with _locked(self.path, os.O_RDONLY, fcntl.LOCK_SH) as fd:
            size = os.fstat(fd).st_size
            start = max(0, size - self.tail_bytes)
            os.lseek(fd, start, os.SEEK_SET)
            data = os.read(fd, size - start)
        if start > 0:
            # The first line was cut by the seek.
            _, _, data = data.partition(b"\n")
        return data.decode("utf-8", errors="replace")
