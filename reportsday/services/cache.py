"""
Day Cache Service

File-backed store of the calls pushed by the PBX webhook for one local day.
It is the system of record for "what arrived today" and is read by status
queries; KPI computation reads the metrics provider directly.

Layout (one pair of files per date, inside ``cache_dir``):
    calls-YYYY-MM-DD.json      JSON list of normalized calls, each with a
                               ``received_at`` timestamp
    metadata-YYYY-MM-DD.json   {"created_at", "expires_at", "ttl_seconds"}

TTL:
- Sliding: every write pushes ``expires_at`` to now + ttl (default 25 hours)
- Lazy expiry: reading an expired day deletes both files and the day is
  treated as absent
- A day without metadata is treated as live

Every operation on a date holds that date's asyncio.Lock, so appends never
interleave. A date's lock is dropped once nobody holds or waits on it.
File I/O runs in a worker thread.
"""

import asyncio
import contextlib
import json
import logging
import math
import os
from datetime import date, datetime, timedelta
from pathlib import Path
from typing import Any, AsyncIterator, Dict, List, Optional, Union

from reportsday.core.timeutils import Clock, make_clock
from reportsday.models.schemas import CacheMetadata, CallRecord


logger = logging.getLogger(__name__)


DEFAULT_TTL_SECONDS = 90000


class _DayLock:
    __slots__ = ("lock", "users")

    def __init__(self) -> None:
        self.lock = asyncio.Lock()
        self.users = 0


class IngestionCache:
    """Per-day JSON file cache of ingested calls."""

    def __init__(
        self,
        directory: Union[str, Path],
        ttl_seconds: int = DEFAULT_TTL_SECONDS,
        clock: Optional[Clock] = None,
    ):
        self._directory = Path(directory)
        self._ttl_seconds = ttl_seconds
        self._clock = clock or make_clock(datetime.now().astimezone().tzinfo)
        self._locks: Dict[date, _DayLock] = {}
        self._connected = False

    @property
    def directory(self) -> Path:
        return self._directory

    @property
    def ttl_seconds(self) -> int:
        return self._ttl_seconds

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def connect(self) -> None:
        """
        Create the cache directory.

        Raises:
            OSError: If the directory cannot be created; the service cannot
                start without its cache.
        """
        await asyncio.to_thread(self._directory.mkdir, parents=True, exist_ok=True)
        self._connected = True
        logger.info(f"Day cache ready at {self._directory}")

    async def disconnect(self) -> None:
        self._connected = False

    def status(self) -> Dict[str, Any]:
        return {
            "connected": self._connected,
            "type": "file-system",
            "path": str(self._directory),
            "ttl_seconds": self._ttl_seconds,
        }

    # -------------------------------------------------------------------------
    # Paths and locks
    # -------------------------------------------------------------------------

    def _day(self, day: Optional[date]) -> date:
        return day if day is not None else self._clock().date()

    def calls_path(self, day: date) -> Path:
        return self._directory / f"calls-{day.isoformat()}.json"

    def metadata_path(self, day: date) -> Path:
        return self._directory / f"metadata-{day.isoformat()}.json"

    @contextlib.asynccontextmanager
    async def _lock(self, day: date) -> AsyncIterator[None]:
        entry = self._locks.get(day)
        if entry is None:
            entry = self._locks[day] = _DayLock()
        entry.users += 1
        try:
            async with entry.lock:
                yield
        finally:
            entry.users -= 1
            if entry.users == 0:
                del self._locks[day]

    # -------------------------------------------------------------------------
    # Blocking file helpers (run via asyncio.to_thread)
    # -------------------------------------------------------------------------

    @staticmethod
    def _write_json(path: Path, data: Any) -> None:
        tmp = path.with_suffix(path.suffix + ".tmp")
        tmp.write_text(json.dumps(data, indent=2, ensure_ascii=False), encoding="utf-8")
        os.replace(tmp, path)

    def _read_metadata(self, day: date) -> Optional[CacheMetadata]:
        path = self.metadata_path(day)
        try:
            return CacheMetadata.model_validate_json(path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return None
        except ValueError as e:
            logger.warning(f"Ignoring unreadable cache metadata {path.name}: {e}")
            return None

    def _read_calls(self, day: date) -> List[Dict[str, Any]]:
        path = self.calls_path(day)
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return []
        except ValueError as e:
            logger.warning(f"Ignoring unreadable cache file {path.name}: {e}")
            return []
        if not isinstance(data, list):
            return []
        return [item for item in data if isinstance(item, dict)]

    def _delete_day(self, day: date) -> None:
        for path in (self.calls_path(day), self.metadata_path(day)):
            path.unlink(missing_ok=True)

    def _is_live(self, day: date, now: datetime) -> bool:
        """True if the day's calls file exists and has not expired; expired days are deleted."""
        if not self.calls_path(day).exists():
            return False
        metadata = self._read_metadata(day)
        if metadata is None:
            return True
        if metadata.expires_at <= now:
            logger.info(f"Day cache for {day.isoformat()} expired, removing")
            self._delete_day(day)
            return False
        return True

    def _append(self, record: CallRecord, day: date, now: datetime) -> None:
        calls = self._read_calls(day) if self._is_live(day, now) else []
        entry = record.model_dump(mode="json")
        entry["received_at"] = now.isoformat()
        calls.append(entry)
        self._write_json(self.calls_path(day), calls)

        previous = self._read_metadata(day)
        metadata = CacheMetadata(
            created_at=previous.created_at if previous is not None else now,
            expires_at=now + timedelta(seconds=self._ttl_seconds),
            ttl_seconds=self._ttl_seconds,
        )
        self._write_json(self.metadata_path(day), metadata.model_dump(mode="json"))

    def _list(self, day: date, now: datetime) -> List[Dict[str, Any]]:
        if not self._is_live(day, now):
            return []
        return self._read_calls(day)

    def _remaining(self, day: date, now: datetime) -> int:
        if not self._is_live(day, now):
            return -1
        metadata = self._read_metadata(day)
        if metadata is None:
            return -1
        remaining = math.floor((metadata.expires_at - now).total_seconds())
        return remaining if remaining > 0 else -1

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    async def add_call(self, record: CallRecord, day: Optional[date] = None) -> bool:
        """
        Append a normalized call to the day's list and refresh the TTL.

        Returns:
            True on success, False when the write failed (logged)
        """
        target = self._day(day)
        async with self._lock(target):
            try:
                await asyncio.to_thread(self._append, record, target, self._clock())
            except OSError as e:
                logger.error(f"Failed to cache call for {target.isoformat()}: {e}", exc_info=True)
                return False
        return True

    async def list_calls(self, day: Optional[date] = None) -> List[Dict[str, Any]]:
        target = self._day(day)
        async with self._lock(target):
            return await asyncio.to_thread(self._list, target, self._clock())

    async def count(self, day: Optional[date] = None) -> int:
        return len(await self.list_calls(day))

    async def exists(self, day: Optional[date] = None) -> bool:
        target = self._day(day)
        async with self._lock(target):
            return await asyncio.to_thread(self._is_live, target, self._clock())

    async def remaining_ttl(self, day: Optional[date] = None) -> int:
        """Seconds until the day expires, or -1 if it does not exist or has expired."""
        target = self._day(day)
        async with self._lock(target):
            return await asyncio.to_thread(self._remaining, target, self._clock())

    async def clear(self, day: Optional[date] = None) -> bool:
        target = self._day(day)
        async with self._lock(target):
            try:
                await asyncio.to_thread(self._delete_day, target)
            except OSError as e:
                logger.error(f"Failed to clear day cache for {target.isoformat()}: {e}")
                return False
        return True
