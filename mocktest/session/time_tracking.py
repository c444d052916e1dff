"""
Per-question time accounting with periodic delta sync.
"""

import asyncio
import math
from typing import Dict, Optional

from mocktest.api.client import ApiClient
from mocktest.config import settings
from mocktest.logger import setup_logger
from mocktest.scheduling import Scheduler, TimerHandle
from mocktest.utils.exceptions import MockTestError

logger = setup_logger(__name__)


class TimeAccountant:
    """
    Tracks active time per question id.

    One question is active at a time. Elapsed whole seconds are added to a
    cumulative total and to a pending buffer that `flush()` pushes to the
    backend. Failed deltas stay pending for the next flush.
    """

    def __init__(
        self,
        api: ApiClient,
        attempt_id: str,
        scheduler: Scheduler,
        sync_interval: Optional[int] = None,
    ) -> None:
        self.api = api
        self.attempt_id = attempt_id
        self.scheduler = scheduler
        self.sync_interval = sync_interval or settings.time_sync_interval

        self.current_question_id: Optional[str] = None
        self.question_times: Dict[str, int] = {}
        self._started_at: Optional[float] = None
        self._paused_question_id: Optional[str] = None
        self._pending: Dict[str, int] = {}
        self._sync_handle: Optional[TimerHandle] = None
        # One request in flight at a time; a final flush waits for a periodic one
        self._flush_lock = asyncio.Lock()

    @property
    def is_tracking(self) -> bool:
        return self._started_at is not None

    @property
    def pending(self) -> Dict[str, int]:
        return dict(self._pending)

    def start(self, question_id: str) -> None:
        """Start timing a question, stopping any active one first."""
        if self.is_tracking:
            logger.debug("⚠️ Previous timer still active, stopping it first")
            self.stop()
        self.current_question_id = question_id
        self._started_at = self.scheduler.now()
        self._paused_question_id = None
        logger.debug(f"⏱️ Started timer for question: {question_id}")

    def stop(self) -> int:
        """Stop the active timer. Returns the whole seconds added."""
        if not self.is_tracking or self.current_question_id is None:
            return 0

        question_id = self.current_question_id
        spent = math.floor(self.scheduler.now() - self._started_at)
        if spent > 0:
            self.question_times[question_id] = (
                self.question_times.get(question_id, 0) + spent
            )
            self._pending[question_id] = self._pending.get(question_id, 0) + spent
            logger.debug(f"⏹️ Stopped timer for question: {question_id}, Time: {spent}s")

        self._started_at = None
        self.current_question_id = None
        return max(spent, 0)

    def pause(self) -> None:
        """Page hidden: stop counting but remember the question."""
        question_id = self.current_question_id
        if question_id is None:
            return
        self.stop()
        self._paused_question_id = question_id
        logger.debug("📱 Page hidden - timer paused")

    def resume(self) -> None:
        """Page visible again: restart the paused question."""
        if self._paused_question_id is None or self.is_tracking:
            return
        self.start(self._paused_question_id)
        logger.debug("📱 Page visible - timer resumed")

    def current_time(self, question_id: str) -> int:
        """Total seconds for a question, including the running span."""
        total = self.question_times.get(question_id, 0)
        if question_id == self.current_question_id and self._started_at is not None:
            total += math.floor(self.scheduler.now() - self._started_at)
        return total

    def total_time(self) -> int:
        return sum(self.question_times.values())

    # ------------------------------------------------------------------
    # Sync
    # ------------------------------------------------------------------
    def start_sync(self) -> None:
        if self._sync_handle is None:
            self._sync_handle = self.scheduler.call_every(self.sync_interval, self.flush)

    def stop_sync(self) -> None:
        if self._sync_handle is not None:
            self._sync_handle.cancel()
            self._sync_handle = None

    async def flush(self) -> bool:
        """
        Push pending deltas. On failure they are merged back so the next
        flush carries them.

        Flushes are serialized: a flush started while another is in flight
        runs after it and sees whatever that one merged back.
        """
        async with self._flush_lock:
            if not self._pending:
                return True

            batch = self._pending
            self._pending = {}
            try:
                await self.api.sync_times(self.attempt_id, batch)
                logger.debug(f"✅ Time data synced: {batch}")
                return True
            except MockTestError as e:
                logger.warning(f"⚠️ Failed to sync time data, will retry: {e}")
                for question_id, seconds in batch.items():
                    self._pending[question_id] = (
                        self._pending.get(question_id, 0) + seconds
                    )
                return False

    async def unload(self) -> None:
        """Best-effort final sync while the window is closing."""
        self.stop()
        self.stop_sync()
        if not self._pending:
            return
        batch = self._pending
        self._pending = {}
        await self.api.send_beacon(
            f"/attempts/{self.attempt_id}/sync-times", {"questionTimes": batch}
        )
