"""Periodic sweep that moves workflows past their TTL to `expired`."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional

from sqlalchemy.orm import sessionmaker

from src.core.clock import Clock, ensure_utc, utc_now
from src.core.config import get_settings
from src.core.logger import get_logger
from src.core.metrics import record_workflow_transition, record_workflows_expired
from src.core.observability import capture_exception
from src.orchestrator.locks import SweepLockManager
from src.workflows.states import STATUS_EXPIRED
from src.workflows.store import WorkflowStore


RESOLUTION_TTL = "ttl"

logger = get_logger("chefsocial.orchestrator.cleanup")


@dataclass(frozen=True)
class CleanupRunResult:
    status: str
    scanned: int = 0
    expired: int = 0
    conflicts: int = 0
    batches: int = 0
    expired_ids: List[str] = field(default_factory=list)


class CleanupScheduler:
    """Expire active workflows whose `expires_at` has passed, under a Redis sweep lock."""

    def __init__(
        self,
        *,
        session_factory: sessionmaker,
        lock_manager: SweepLockManager,
        clock: Clock = utc_now,
        batch_size: Optional[int] = None,
        interval_seconds: Optional[int] = None,
    ) -> None:
        settings = get_settings()
        self._session_factory = session_factory
        self._lock_manager = lock_manager
        self._clock = clock
        self._batch_size = batch_size or settings.cleanup_batch_size
        self._interval_seconds = interval_seconds or settings.cleanup_interval_seconds

    @property
    def interval_seconds(self) -> int:
        return self._interval_seconds

    def run_once(self, now: Optional[datetime] = None) -> CleanupRunResult:
        lock = self._lock_manager.acquire()
        if lock is None:
            logger.info("cleanup_sweep_skipped_locked", lock_key=self._lock_manager.key)
            return CleanupRunResult(status="skipped_locked")

        cutoff = ensure_utc(now) if now is not None else ensure_utc(self._clock())
        try:
            return self._sweep(cutoff)
        finally:
            lock.release()

    def _sweep(self, cutoff: datetime) -> CleanupRunResult:
        expired_ids: List[str] = []
        conflicts = 0
        scanned = 0
        batches = 0
        with self._session_factory() as session:
            store = WorkflowStore(session, clock=lambda: cutoff)
            # Drain the backlog; a full batch where every row lost its CAS is left for the next run.
            while True:
                candidates = store.list_expired_active(now=cutoff, limit=self._batch_size)
                batches += 1
                scanned += len(candidates)
                progressed = 0
                for record in candidates:
                    updated = store.compare_and_swap(
                        record,
                        to_status=STATUS_EXPIRED,
                        payload_updates={"resolution": RESOLUTION_TTL},
                    )
                    if updated is None:
                        conflicts += 1
                        continue
                    progressed += 1
                    expired_ids.append(record.id)
                    record_workflow_transition(workflow_type=record.workflow_type, outcome="expired")
                if len(candidates) < self._batch_size or progressed == 0:
                    break

        record_workflows_expired(count=len(expired_ids))
        logger.info(
            "cleanup_sweep_completed",
            cutoff=cutoff.isoformat(),
            batches=batches,
            scanned=scanned,
            expired=len(expired_ids),
            conflicts=conflicts,
        )
        return CleanupRunResult(
            status="executed",
            scanned=scanned,
            expired=len(expired_ids),
            conflicts=conflicts,
            batches=batches,
            expired_ids=expired_ids,
        )

    async def run_forever(self, stop_event: Optional[asyncio.Event] = None) -> None:
        stop_event = stop_event or asyncio.Event()
        logger.info("cleanup_scheduler_started", interval_seconds=self._interval_seconds)
        while not stop_event.is_set():
            try:
                await asyncio.to_thread(self.run_once)
            except Exception as exc:
                capture_exception(exc)
                logger.error("cleanup_sweep_failed", error_type=type(exc).__name__, error=str(exc))
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=self._interval_seconds)
            except asyncio.TimeoutError:
                continue
        logger.info("cleanup_scheduler_stopped")
