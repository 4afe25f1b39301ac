"""Scan submission, status polling and result retrieval."""

import asyncio
import logging
import threading
import time
import uuid
from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any

from netsage.config import ScanOptions, ScanSettings
from netsage.exceptions import ScanNotFoundError

from .aggregator import failure_result
from .errors import classify_error, describe_error
from .orchestrator import ScanOrchestrator
from .target import resolve_target

logger = logging.getLogger(__name__)


class ScanPhase(StrEnum):
    PENDING = "pending"
    SCANNING = "scanning"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class ScanRecord:
    scan_id: str
    target: str
    options: dict[str, Any] = field(default_factory=dict)
    phase: ScanPhase = ScanPhase.PENDING
    created: float = 0.0
    started_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    completed_at: datetime | None = None
    error: str | None = None
    result: dict[str, Any] | None = None

    def status(self) -> dict[str, Any]:
        status: dict[str, Any] = {
            "scan_id": self.scan_id,
            "target": self.target,
            "phase": self.phase.value,
            "started_at": self.started_at.isoformat(),
        }
        if self.completed_at:
            status["completed_at"] = self.completed_at.isoformat()
        if self.error:
            status["error"] = self.error
        return status


class ScanStore(ABC):
    """Where scan records live between submit and retrieval."""

    @abstractmethod
    def put(self, record: ScanRecord) -> None: ...

    @abstractmethod
    def get(self, scan_id: str) -> ScanRecord | None: ...

    @abstractmethod
    def delete(self, scan_id: str) -> None: ...


class InMemoryScanStore(ScanStore):
    """Thread-safe dict store; records older than ``ttl`` seconds are evicted on access."""

    def __init__(self, ttl: float = 3600.0, clock: Callable[[], float] = time.monotonic):
        self.ttl = ttl
        self._clock = clock
        self._records: dict[str, ScanRecord] = {}
        self._lock = threading.Lock()

    def _evict(self) -> None:
        cutoff = self._clock() - self.ttl
        expired = [key for key, record in self._records.items() if record.created < cutoff]
        for key in expired:
            del self._records[key]
        if expired:
            logger.debug("Evicted %d expired scan record(s)", len(expired))

    def put(self, record: ScanRecord) -> None:
        with self._lock:
            self._evict()
            if not record.created:
                record.created = self._clock()
            self._records[record.scan_id] = record

    def get(self, scan_id: str) -> ScanRecord | None:
        with self._lock:
            self._evict()
            return self._records.get(scan_id)

    def delete(self, scan_id: str) -> None:
        with self._lock:
            self._records.pop(scan_id, None)

    def __len__(self) -> int:
        with self._lock:
            self._evict()
            return len(self._records)


class ScanService:
    """
    submit / status / results over a store.

    ``submit`` validates the target and options synchronously and starts the
    scan as a background task on the running loop. Without an explicit store,
    records live in memory for ``settings.scan_ttl_seconds``.
    """

    def __init__(
        self,
        store: ScanStore | None = None,
        orchestrator_factory: Callable[[], ScanOrchestrator] | None = None,
        settings: ScanSettings | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.settings = settings or ScanSettings.load()
        self.store = store or InMemoryScanStore(ttl=self.settings.scan_ttl_seconds, clock=clock)
        self._factory = orchestrator_factory or (lambda: ScanOrchestrator(self.settings))
        self._tasks: dict[str, asyncio.Task[None]] = {}

    async def submit(self, target: str, options: dict[str, Any] | None = None) -> str:
        resolve_target(target)
        ScanOptions.from_dict(options).apply(self.settings)
        scan_id = str(uuid.uuid4())
        self.store.put(ScanRecord(scan_id=scan_id, target=target, options=dict(options or {})))
        task = asyncio.create_task(self._execute(scan_id, target, options))
        self._tasks[scan_id] = task
        task.add_done_callback(lambda _t: self._tasks.pop(scan_id, None))
        logger.info("Submitted scan %s for %s", scan_id, target)
        return scan_id

    async def _execute(self, scan_id: str, target: str, options: dict[str, Any] | None) -> None:
        record = self.store.get(scan_id)
        if record is None:
            return
        record.phase = ScanPhase.SCANNING
        self.store.put(record)
        try:
            result = await self._factory().scan(target, options, scan_id=scan_id)
        except Exception as exc:
            kind = classify_error(exc)
            logger.error("Scan %s failed: %s", scan_id, exc, exc_info=True)
            record.phase = ScanPhase.FAILED
            record.error = describe_error(exc)
            record.result = failure_result(scan_id, target, kind, record.error)
        else:
            record.phase = ScanPhase.COMPLETED
            record.result = result
        record.completed_at = datetime.now(UTC)
        self.store.put(record)

    def _record(self, scan_id: str) -> ScanRecord:
        record = self.store.get(scan_id)
        if record is None:
            raise ScanNotFoundError(scan_id)
        return record

    def status(self, scan_id: str) -> dict[str, Any]:
        return self._record(scan_id).status()

    def results(self, scan_id: str) -> dict[str, Any]:
        """Result document of a finished scan. Unknown, evicted or unfinished scans raise."""
        record = self._record(scan_id)
        if record.result is None:
            raise ScanNotFoundError(scan_id)
        return record.result

    async def wait(self, scan_id: str) -> dict[str, Any]:
        task = self._tasks.get(scan_id)
        if task is not None:
            await asyncio.shield(task)
        return self.results(scan_id)
