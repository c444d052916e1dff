"""
Violation monitor: fullscreen exit, window blur and tab switching.

The monitor only knows the abstract signals (`on_exit_fullscreen`,
`on_blur`/`on_focus`, `on_hidden`). Platform adapters such as
`BrowserEventAdapter` translate raw events into those calls.
"""

import inspect
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Optional, Protocol, Union

from mocktest.config import settings
from mocktest.logger import setup_logger
from mocktest.scheduling import Scheduler, TimerHandle

logger = setup_logger(__name__)

Hook = Callable[..., Union[None, Awaitable[Any]]]


class ViolationKind(str, Enum):
    FULLSCREEN_EXIT = "exiting fullscreen mode"
    WINDOW_BLUR = "window switching or Alt+Tab"
    TAB_HIDDEN = "tab switching"


class MonitorState(str, Enum):
    CLEAN = "CLEAN"
    WARNED = "WARNED"
    TERMINAL = "TERMINAL"


class DisplayControl(Protocol):
    def is_fullscreen(self) -> bool: ...

    def request_fullscreen(self) -> None: ...


class NullDisplay:
    """Display without fullscreen support."""

    def is_fullscreen(self) -> bool:
        return True

    def request_fullscreen(self) -> None:
        return None


@dataclass
class WarningDialog:
    count: int
    max_warnings: int
    reason: str
    opened_at: float
    timeout: int

    def seconds_left(self, now: float) -> int:
        return max(0, int(self.timeout - (now - self.opened_at)))


class ViolationMonitor:
    """
    Escalating warning counter: CLEAN -> WARNED(n) -> TERMINAL.

    The counter never decreases. The `max_warnings`-th violation, or a
    warning left unacknowledged for `warning_timeout` seconds, forces
    submission once.
    """

    def __init__(
        self,
        scheduler: Scheduler,
        on_force_submit: Hook,
        on_warning: Optional[Hook] = None,
        display: Optional[DisplayControl] = None,
        max_warnings: Optional[int] = None,
        warning_timeout: Optional[int] = None,
        blur_threshold: Optional[float] = None,
    ) -> None:
        """
        Args:
            scheduler: Timer source.
            on_force_submit: Called once with the reason when escalation ends.
            on_warning: Called with the new count on every warning.
            display: Fullscreen control, re-requested on acknowledgement.
        """
        self.scheduler = scheduler
        self.on_force_submit = on_force_submit
        self.on_warning = on_warning
        self.display = display or NullDisplay()
        self.max_warnings = max_warnings or settings.max_warnings
        self.warning_timeout = warning_timeout or settings.warning_timeout
        self.blur_threshold = (
            settings.blur_threshold if blur_threshold is None else blur_threshold
        )

        self.warning_count = 0
        self.dialog: Optional[WarningDialog] = None
        self._terminal = False
        self._timeout_handle: Optional[TimerHandle] = None
        self._blurred_at: Optional[float] = None

    @property
    def state(self) -> MonitorState:
        if self._terminal:
            return MonitorState.TERMINAL
        return MonitorState.WARNED if self.warning_count else MonitorState.CLEAN

    # ------------------------------------------------------------------
    # Signals
    # ------------------------------------------------------------------
    def on_exit_fullscreen(self) -> None:
        self.trigger(ViolationKind.FULLSCREEN_EXIT)

    def on_blur(self) -> None:
        self._blurred_at = self.scheduler.now()
        logger.debug("Window lost focus - potential Alt+Tab or window switch")

    def on_focus(self) -> None:
        if self._blurred_at is None:
            return
        away = self.scheduler.now() - self._blurred_at
        self._blurred_at = None
        if away > self.blur_threshold:
            logger.info(f"Window regained focus after {away:.2f}s")
            self.trigger(ViolationKind.WINDOW_BLUR)

    def on_hidden(self) -> None:
        self.trigger(ViolationKind.TAB_HIDDEN)

    # ------------------------------------------------------------------
    # Escalation
    # ------------------------------------------------------------------
    def trigger(self, kind: ViolationKind) -> None:
        if self._terminal or self.dialog is not None:
            return
        if self.warning_count >= self.max_warnings:
            self._force(f"violation limit reached ({kind.value})")
            return

        self.warning_count += 1
        logger.warning(
            f"🚨 Test violation warning {self.warning_count}/{self.max_warnings}: {kind.value}"
        )
        if self.on_warning is not None:
            self._call(self.on_warning, self.warning_count)

        if self.warning_count >= self.max_warnings:
            self._force(f"violation limit reached ({kind.value})")
            return

        self.dialog = WarningDialog(
            count=self.warning_count,
            max_warnings=self.max_warnings,
            reason=kind.value,
            opened_at=self.scheduler.now(),
            timeout=self.warning_timeout,
        )
        self._timeout_handle = self.scheduler.call_later(
            self.warning_timeout, self._on_timeout
        )

    def acknowledge(self) -> None:
        """Candidate pressed OK before the dialog timed out."""
        if self.dialog is None or self._terminal:
            return
        self._cancel_timeout()
        self.dialog = None
        if not self.display.is_fullscreen():
            self.display.request_fullscreen()

    def close(self) -> None:
        """Cancel the pending dialog timeout."""
        self._cancel_timeout()
        self.dialog = None

    def _on_timeout(self) -> None:
        self._timeout_handle = None
        logger.warning("Warning timeout - auto-submitting test")
        self._force("warning not acknowledged in time")

    def _force(self, reason: str) -> None:
        if self._terminal:
            return
        self._terminal = True
        self.close()
        self._call(self.on_force_submit, reason)

    def _call(self, hook: Hook, *args: Any) -> None:
        result = hook(*args)
        if inspect.isawaitable(result):
            self.scheduler.spawn(result)

    def _cancel_timeout(self) -> None:
        if self._timeout_handle is not None:
            self._timeout_handle.cancel()
            self._timeout_handle = None


class ViolationSignals(Protocol):
    def on_exit_fullscreen(self) -> None: ...

    def on_blur(self) -> None: ...

    def on_focus(self) -> None: ...

    def on_hidden(self) -> None: ...

    def on_visible(self) -> None: ...


class BrowserEventAdapter:
    """
    Maps browser DOM events onto violation signals and serves as the
    DisplayControl for the page.

    Fullscreen change events arrive under several vendor names; each event
    carries the fullscreen/visibility flags observed by the page.
    """

    FULLSCREEN_EVENTS = {
        "fullscreenchange",
        "webkitfullscreenchange",
        "mozfullscreenchange",
        "msfullscreenchange",
    }

    def __init__(self, signals: Optional[ViolationSignals] = None) -> None:
        self.signals = signals
        self.fullscreen = False
        self.fullscreen_requested = False

    def bind(self, signals: ViolationSignals) -> None:
        self.signals = signals

    def is_fullscreen(self) -> bool:
        return self.fullscreen

    def request_fullscreen(self) -> None:
        # The page performs the request and reports back with a fullscreenchange
        self.fullscreen_requested = True
        logger.info("🖥️ Requesting fullscreen")

    def dispatch(
        self,
        event_type: str,
        fullscreen: Optional[bool] = None,
        hidden: Optional[bool] = None,
    ) -> None:
        if self.signals is None:
            logger.debug(f"No session bound, dropping event: {event_type}")
            return

        name = event_type.lower()
        if name in self.FULLSCREEN_EVENTS:
            was_fullscreen = self.fullscreen
            self.fullscreen = bool(fullscreen)
            if self.fullscreen:
                self.fullscreen_requested = False
            elif was_fullscreen:
                self.signals.on_exit_fullscreen()
        elif name == "blur":
            self.signals.on_blur()
        elif name == "focus":
            self.signals.on_focus()
        elif name == "visibilitychange":
            if hidden:
                self.signals.on_hidden()
            else:
                self.signals.on_visible()
        else:
            logger.debug(f"Ignoring browser event: {event_type}")
