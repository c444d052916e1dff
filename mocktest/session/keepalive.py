"""
Keeps the backend awake while a session or dashboard is open.
"""

from typing import Optional, Set

from mocktest.api.client import ApiClient
from mocktest.config import settings
from mocktest.logger import setup_logger
from mocktest.scheduling import Scheduler, TimerHandle
from mocktest.utils.exceptions import MockTestError

logger = setup_logger(__name__)


class KeepAliveService:
    """
    Reference-counted health pinger.

    Pings once on start and every `interval` seconds while at least one
    component holds it.
    """

    def __init__(
        self,
        api: ApiClient,
        scheduler: Scheduler,
        interval: Optional[int] = None,
    ) -> None:
        self.api = api
        self.scheduler = scheduler
        self.interval = interval or settings.keepalive_interval
        self.active_components: Set[str] = set()
        self._handle: Optional[TimerHandle] = None

    @property
    def is_active(self) -> bool:
        return self._handle is not None

    def start(self, component: str = "unknown") -> None:
        self.active_components.add(component)
        if self.is_active:
            logger.debug(
                f"🔄 Keep-alive already running ({len(self.active_components)} components)"
            )
            return
        logger.info(f"🔄 Keep-alive service started by {component}")
        self.scheduler.spawn(self.ping())
        self._handle = self.scheduler.call_every(self.interval, self.ping)

    def stop(self, component: str = "unknown") -> None:
        self.active_components.discard(component)
        if self.active_components:
            logger.debug(
                f"🔄 Keep-alive still needed by {len(self.active_components)} components"
            )
            return
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None
            logger.info("⏹️ Keep-alive service stopped (no active components)")

    def force_stop(self) -> None:
        self.active_components.clear()
        self.stop()

    async def ping(self) -> bool:
        try:
            await self.api.health()
            logger.debug("✅ Keep-alive ping successful")
            return True
        except MockTestError as e:
            logger.warning(f"⚠️ Keep-alive ping failed: {e}")
            return False
