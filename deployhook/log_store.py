"""
LogStore - date-partitioned, append-only run log.

Storage layout:
    logs_dir/
        20240101.txt
        20240102.txt
        ...

One file per local calendar day. Each line is a complete record:

    <deploy_id>: <JSON array of step results>

Lines are only ever appended, one write per line, so readers can scan a
partition while a run is finishing. A trailing partial line simply fails
to parse and is skipped.

There is no index. Point lookups scan today's partition and then walk
back one day at a time over a fixed window. This is fine for a few
hundred runs a day; a busier deployment would want a real store.
"""

import json
import logging
import re
import threading
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from pathlib import Path
from typing import Any, Callable, Optional, Union

from deployhook.errors import PersistenceError
from deployhook.schemas import LogEntry, RunRecord, StepResult

logger = logging.getLogger(__name__)

# How many days before today find_by_id searches
SEARCH_WINDOW_DAYS = 7

DEFAULT_QUERY_LIMIT = 20

PARTITION_SUFFIX = ".txt"
_PARTITION_PATTERN = re.compile(r"^\d{8}$")


def partition_name(day: date) -> str:
    """Partition key for a day, e.g. 20240131."""
    return day.strftime("%Y%m%d")


def format_line(record: RunRecord) -> str:
    """Serialize a run's steps into one partition line (with newline)."""
    steps = [step.to_dict() for step in record.steps]
    return f"{record.deploy_id}: {json.dumps(steps, ensure_ascii=False)}\n"


def parse_line(line: str) -> Optional[LogEntry]:
    """
    Parse a partition line.

    Returns:
        The LogEntry, or None if the line is blank or malformed
    """
    line = line.strip()
    if not line:
        return None

    deploy_id, sep, payload = line.partition(":")
    if not sep or not deploy_id.strip():
        return None

    try:
        raw_steps = json.loads(payload)
        if not isinstance(raw_steps, list):
            return None
        steps = tuple(StepResult.from_dict(s) for s in raw_steps)
    except (ValueError, KeyError, TypeError) as e:
        logger.debug(f"Skipping unparseable log line: {e}")
        return None

    return LogEntry(deploy_id=deploy_id.strip(), steps=steps)


@dataclass
class QueryResult:
    """Result of a partition query: first `limit` entries and the filtered total."""
    entries: list[LogEntry] = field(default_factory=list)
    total: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "logs": [entry.to_dict() for entry in self.entries],
            "total": self.total,
        }


class LogStore:
    """
    File-backed run log.

    A single store instance is the only writer of its directory. Appends
    from concurrently finishing runs are serialized by an internal lock.

    Args:
        logs_dir: Directory holding the partitions (created on first write)
        today: Callable returning the current local date (injectable for tests)
    """

    def __init__(self, logs_dir: Union[Path, str], today: Optional[Callable[[], date]] = None):
        self._logs_dir = Path(logs_dir)
        self._today = today or (lambda: datetime.now().date())
        self._write_lock = threading.Lock()

    @property
    def logs_dir(self) -> Path:
        return self._logs_dir

    def partition_path(self, day: Union[date, str]) -> Path:
        """Path of the partition for a date or a YYYYMMDD string."""
        key = day if isinstance(day, str) else partition_name(day)
        return self._logs_dir / f"{key}{PARTITION_SUFFIX}"

    def append(self, record: RunRecord) -> Path:
        """
        Append a finished run to today's partition.

        The partition is the day of the call, not the day the run started.

        Returns:
            Path of the partition written to

        Raises:
            PersistenceError: If the directory or file cannot be written
        """
        line = format_line(record)
        path = self.partition_path(self._today())

        try:
            with self._write_lock:
                self._logs_dir.mkdir(parents=True, exist_ok=True)
                with open(path, "a", encoding="utf-8") as f:
                    f.write(line)
        except OSError as e:
            raise PersistenceError(f"Failed to write run log {path}: {e}") from e

        logger.debug(f"Appended {record.deploy_id} to {path.name}")
        return path

    def read_partition(self, day: Union[date, str]) -> list[LogEntry]:
        """
        Parse every valid line of a partition.

        A missing partition is empty, not an error.

        Raises:
            PersistenceError: If the file exists but cannot be read
        """
        path = self.partition_path(day)
        try:
            content = path.read_text(encoding="utf-8", errors="replace")
        except FileNotFoundError:
            return []
        except OSError as e:
            raise PersistenceError(f"Failed to read run log {path}: {e}") from e

        entries = []
        for line in content.splitlines():
            entry = parse_line(line)
            if entry is not None:
                entries.append(entry)
        return entries

    def query(
        self,
        limit: int = DEFAULT_QUERY_LIMIT,
        app: Optional[str] = None,
        env: Optional[str] = None,
        date: Optional[str] = None,
    ) -> QueryResult:
        """
        Read one partition and filter it.

        Args:
            limit: Maximum entries returned
            app: Keep entries whose deploy id contains this substring
            env: Keep entries whose deploy id contains this substring
            date: Partition to read as YYYYMMDD; today's if omitted

        Returns:
            QueryResult with up to `limit` entries in file order and the
            number of entries that matched the filters

        Raises:
            ValueError: If date is not YYYYMMDD or limit is negative
        """
        if limit < 0:
            raise ValueError(f"limit must not be negative, got {limit}")

        if date:
            if not _PARTITION_PATTERN.match(date):
                raise ValueError(f"Invalid date '{date}', expected YYYYMMDD")
            entries = self.read_partition(date)
        else:
            entries = self.read_partition(self._today())

        if app:
            entries = [e for e in entries if app in e.deploy_id]
        if env:
            entries = [e for e in entries if env in e.deploy_id]

        return QueryResult(entries=entries[:limit], total=len(entries))

    def find_by_id(self, deploy_id: str) -> Optional[LogEntry]:
        """
        Find a run by deploy id.

        Searches today's partition, then each of the previous
        SEARCH_WINDOW_DAYS days, newest first. The first match wins.

        Returns:
            The LogEntry, or None if no partition in the window has it
        """
        today = self._today()
        for days_back in range(SEARCH_WINDOW_DAYS + 1):
            day = today - timedelta(days=days_back)
            try:
                entries = self.read_partition(day)
            except PersistenceError as e:
                logger.warning(f"Skipping partition during lookup: {e}")
                continue
            for entry in entries:
                if entry.deploy_id == deploy_id:
                    return entry
        return None

    def partitions(self) -> list[str]:
        """Sorted YYYYMMDD keys of partitions on disk."""
        if not self._logs_dir.exists():
            return []
        return sorted(
            p.stem for p in self._logs_dir.glob(f"*{PARTITION_SUFFIX}")
            if _PARTITION_PATTERN.match(p.stem)
        )
