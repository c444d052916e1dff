"""
Test countdown with expiry callback.
"""

from typing import Any, Awaitable, Callable, Optional, Union

from mocktest.logger import setup_logger
from mocktest.scheduling import Scheduler, TimerHandle
from mocktest.utils.helpers import format_clock

logger = setup_logger(__name__)

ExpireCallback = Callable[[], Union[None, Awaitable[Any]]]


class CountdownTimer:
    """
    Counts down whole seconds on a 1s cadence and fires `on_expire` once at 0.

    start/stop/reset are idempotent; at most one interval is ever armed.
    """

    def __init__(
        self,
        scheduler: Scheduler,
        duration: int = 0,
        on_expire: Optional[ExpireCallback] = None,
    ) -> None:
        """
        Args:
            scheduler: Timer source.
            duration: Initial countdown in seconds.
            on_expire: Called exactly once when the countdown reaches 0.
        """
        self.scheduler = scheduler
        self.time_left = max(0, int(duration))
        self.on_expire = on_expire
        self._handle: Optional[TimerHandle] = None
        self._expired = False

    @property
    def is_running(self) -> bool:
        return self._handle is not None

    @property
    def is_expired(self) -> bool:
        return self._expired

    @property
    def formatted(self) -> str:
        return format_clock(self.time_left)

    def start(self) -> Optional[Awaitable[Any]]:
        """Start counting down. No-op if already running or expired."""
        if self._handle is not None or self._expired:
            return None
        if self.time_left <= 0:
            return self._expire()
        self._handle = self.scheduler.call_every(1, self.tick)
        logger.info(f"⏱️  Countdown started ({self.formatted} left)")
        return None

    def stop(self) -> None:
        """Pause the countdown, keeping the remaining time."""
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def reset(self, new_value: int) -> None:
        """Stop any running interval and load a new remaining time."""
        self.stop()
        self.time_left = max(0, int(new_value))
        self._expired = False

    def tick(self) -> Optional[Awaitable[Any]]:
        """Advance one second."""
        if self._expired or self.time_left <= 0:
            return None
        self.time_left -= 1
        if self.time_left <= 0:
            self.time_left = 0
            self.stop()
            return self._expire()
        return None

    def _expire(self) -> Optional[Awaitable[Any]]:
        if self._expired:
            return None
        self._expired = True
        logger.warning("⌛ Countdown reached zero")
        if self.on_expire is not None:
            return self.on_expire()
        return None
