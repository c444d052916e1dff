"""
Test-taking session controller.

Owns the question cursor and composes the answer store, the countdown, the
per-question time accountant and the violation monitor. Outer states:

    LOADING -> ACTIVE -> SUBMITTING -> TERMINATED

Every state change goes through `_transition`, so a timeout, a violation
and a manual submit can never submit twice.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Tuple

from mocktest.api.client import ApiClient
from mocktest.config import settings
from mocktest.logger import setup_logger
from mocktest.models import Attempt, Question, QuestionType, Section
from mocktest.scheduling import Scheduler, TimerHandle
from mocktest.session.answers import AnswerStore
from mocktest.session.keepalive import KeepAliveService
from mocktest.session.time_tracking import TimeAccountant
from mocktest.session.violations import DisplayControl, ViolationMonitor
from mocktest.timer import CountdownTimer
from mocktest.utils.exceptions import (
    AttemptCompletedError,
    InvalidTransitionError,
    MockTestError,
    NotFoundError,
    ValidationError,
)

logger = setup_logger(__name__)

DASHBOARD_PATH = "/student"
MIN_DURATION_SECONDS = 10
# Grading data never reaches the exam view
HIDDEN_FIELDS = {"correct_option", "correct_integer", "solution_image"}


class SessionState(str, Enum):
    LOADING = "LOADING"
    ACTIVE = "ACTIVE"
    SUBMITTING = "SUBMITTING"
    TERMINATED = "TERMINATED"


TRANSITIONS = {
    SessionState.LOADING: {SessionState.ACTIVE, SessionState.TERMINATED},
    SessionState.ACTIVE: {SessionState.SUBMITTING},
    # SUBMITTING -> ACTIVE only when a manual submit fails and may be retried
    SessionState.SUBMITTING: {SessionState.TERMINATED, SessionState.ACTIVE},
    SessionState.TERMINATED: set(),
}


@dataclass
class Dialog:
    title: str
    message: str
    kind: str = "info"
    blocking: bool = False


@dataclass
class SubmitSummary:
    sections: List[Dict[str, Any]]
    overall: Dict[str, int]


class SessionController:
    """
    State machine behind the exam window.
    """

    def __init__(
        self,
        api: ApiClient,
        attempt_id: str,
        scheduler: Scheduler,
        display: Optional[DisplayControl] = None,
        on_redirect: Optional[Callable[[str], None]] = None,
        keepalive: Optional[KeepAliveService] = None,
    ) -> None:
        self.api = api
        self.attempt_id = attempt_id
        self.scheduler = scheduler
        self.on_redirect = on_redirect

        self.state = SessionState.LOADING
        self.attempt: Optional[Attempt] = None
        self.answers = AnswerStore()
        self.section_index = 0
        self.question_index = 0
        self.dialog: Optional[Dialog] = None
        self.pending_confirmation: Optional[SubmitSummary] = None
        self.submit_reason: Optional[str] = None
        self.redirect_to: Optional[str] = None
        self.page_hidden = False

        self.countdown = CountdownTimer(scheduler, on_expire=self._on_time_up)
        self.time_tracker = TimeAccountant(api, attempt_id, scheduler)
        self.monitor = ViolationMonitor(
            scheduler,
            on_force_submit=self.force_submit,
            on_warning=self._report_warning,
            display=display,
        )
        self.keepalive = keepalive or KeepAliveService(api, scheduler)

        self._sync_handle: Optional[TimerHandle] = None
        self._grace_handle: Optional[TimerHandle] = None
        self._redirect_handle: Optional[TimerHandle] = None

    # ------------------------------------------------------------------
    # State machine
    # ------------------------------------------------------------------
    def _transition(self, target: SessionState) -> bool:
        if target not in TRANSITIONS[self.state]:
            logger.debug(f"Ignoring transition {self.state.value} -> {target.value}")
            return False
        logger.info(f"🔀 Session {self.state.value} -> {target.value}")
        self.state = target
        return True

    def _require_active(self) -> None:
        if self.state != SessionState.ACTIVE:
            raise InvalidTransitionError(
                f"Session is {self.state.value}, expected ACTIVE"
            )

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------
    async def load(self) -> Attempt:
        """
        Fetch the attempt and its test, restore saved answers and start
        the clocks.

        Raises:
            NotFoundError: attempt or test no longer exists
            AttemptCompletedError: attempt was already submitted
        """
        if self.state != SessionState.LOADING:
            raise InvalidTransitionError("Session already loaded")

        try:
            attempt = await self.api.get_attempt(self.attempt_id)
            if attempt.test is None:
                if not attempt.test_id:
                    raise NotFoundError(f"Attempt {self.attempt_id} has no test")
                attempt.test = await self.api.get_test(attempt.test_id)
            if attempt.is_completed:
                raise AttemptCompletedError(f"Attempt {self.attempt_id} is completed")
        except MockTestError as e:
            logger.error(f"❌ Error fetching attempt {self.attempt_id}: {e}")
            self._transition(SessionState.TERMINATED)
            self.dialog = Dialog(
                "Failed to Load Test",
                "Unable to load the test. You will be redirected to the student dashboard.",
                kind="error",
            )
            self._redirect(delay=settings.redirect_delay)
            raise

        self.attempt = attempt
        self.answers.load(attempt.answers)

        # Resume always restarts from the full duration
        self.countdown.reset(max(attempt.test.duration * 60, MIN_DURATION_SECONDS))

        self._transition(SessionState.ACTIVE)
        first = self.current_question
        if first is not None:
            self.answers.mark_visited(first.id)
        self.monitor.display.request_fullscreen()
        self._start_loops()
        logger.info(
            f"📝 Attempt {self.attempt_id} loaded: {len(self.questions)} questions, "
            f"{self.countdown.formatted} on the clock"
        )
        return attempt

    # ------------------------------------------------------------------
    # Cursor
    # ------------------------------------------------------------------
    @property
    def sections(self) -> List[Section]:
        if self.attempt is None or self.attempt.test is None:
            return []
        return self.attempt.test.sections

    @property
    def questions(self) -> List[Question]:
        return [q for section in self.sections for q in section.questions]

    @property
    def current_section(self) -> Optional[Section]:
        if 0 <= self.section_index < len(self.sections):
            return self.sections[self.section_index]
        return None

    @property
    def current_question(self) -> Optional[Question]:
        section = self.current_section
        if section is None or not (0 <= self.question_index < len(section.questions)):
            return None
        return section.questions[self.question_index]

    def _question_at(self, section_index: int, question_index: int) -> Question:
        if not (0 <= section_index < len(self.sections)):
            raise ValidationError(f"No section at index {section_index}")
        section = self.sections[section_index]
        if not (0 <= question_index < len(section.questions)):
            raise ValidationError(
                f"No question {question_index} in section {section.name!r}"
            )
        return section.questions[question_index]

    def _global_index(self) -> int:
        offset = sum(len(s.questions) for s in self.sections[: self.section_index])
        return offset + self.question_index

    def _cursor_for(self, global_index: int) -> Tuple[int, int]:
        remaining = global_index
        for section_index, section in enumerate(self.sections):
            if remaining < len(section.questions):
                return section_index, remaining
            remaining -= len(section.questions)
        raise ValidationError(f"No question at position {global_index}")

    def navigate_to(self, section_index: int, question_index: int) -> Question:
        """
        Move the cursor. The previous question's timer stops before the
        target's starts; both questions end up visited.
        """
        self._require_active()
        target = self._question_at(section_index, question_index)

        current = self.current_question
        if current is not None:
            self.time_tracker.stop()
            self.answers.mark_visited(current.id)

        self.section_index = section_index
        self.question_index = question_index

        self.time_tracker.start(target.id)
        if self.page_hidden:
            self.time_tracker.pause()
        self.answers.mark_visited(target.id)
        return target

    def next(self) -> bool:
        self._require_active()
        position = self._global_index()
        if position >= len(self.questions) - 1:
            return False
        self.navigate_to(*self._cursor_for(position + 1))
        return True

    def previous(self) -> bool:
        self._require_active()
        position = self._global_index()
        if position <= 0:
            return False
        self.navigate_to(*self._cursor_for(position - 1))
        return True

    # ------------------------------------------------------------------
    # Answers
    # ------------------------------------------------------------------
    def _require_question(self) -> Question:
        self._require_active()
        question = self.current_question
        if question is None:
            raise ValidationError("No question found in this test")
        return question

    def update_answer(self, question_id: str, **partial: Any):
        self._require_active()
        return self.answers.update(question_id, **partial)

    def select_option(self, option: str):
        question = self._require_question()
        if self.current_section.question_type != QuestionType.MCQ:
            raise ValidationError("Current question is not multiple choice")
        return self.answers.select_option(question.id, option)

    def enter_integer(self, text: str):
        question = self._require_question()
        if self.current_section.question_type != QuestionType.INTEGER:
            raise ValidationError("Current question expects an option, not a number")
        return self.answers.enter_integer(question.id, text)

    def mark_for_review_and_next(self) -> None:
        question = self._require_question()
        self.answers.mark_for_review(question.id)
        self.next()

    def clear_response(self) -> None:
        question = self._require_question()
        self.answers.clear(question.id)

    async def sync_answers(self) -> bool:
        """Periodic answer sync. Failures are logged and retried next cycle."""
        if self.state != SessionState.ACTIVE:
            return False
        try:
            await self.api.sync_answers(self.attempt_id, self.answers.payload())
            return True
        except MockTestError as e:
            logger.warning(f"⚠️ Error syncing answers: {e}")
            return False

    # ------------------------------------------------------------------
    # Violation signals (platform adapters call these)
    # ------------------------------------------------------------------
    def on_exit_fullscreen(self) -> None:
        if self.state == SessionState.ACTIVE:
            self.monitor.on_exit_fullscreen()

    def on_blur(self) -> None:
        if self.state == SessionState.ACTIVE:
            self.monitor.on_blur()

    def on_focus(self) -> None:
        if self.state == SessionState.ACTIVE:
            self.monitor.on_focus()

    def on_hidden(self) -> None:
        if self.state != SessionState.ACTIVE:
            return
        self.page_hidden = True
        self.time_tracker.pause()
        self.monitor.on_hidden()

    def on_visible(self) -> None:
        self.page_hidden = False
        if self.state == SessionState.ACTIVE:
            self.time_tracker.resume()

    def acknowledge_warning(self) -> None:
        self.monitor.acknowledge()

    async def _report_warning(self, count: int) -> None:
        try:
            await self.api.report_warning(self.attempt_id)
        except MockTestError as e:
            logger.error(f"❌ Error updating warning {count}: {e}")

    # ------------------------------------------------------------------
    # Submission
    # ------------------------------------------------------------------
    def submit_summary(self) -> SubmitSummary:
        sections = []
        overall = {
            "total": 0,
            "answered": 0,
            "not_answered": 0,
            "marked_for_review": 0,
            "not_visited": 0,
        }
        for section in self.sections:
            stats = self.answers.section_summary(section)
            sections.append({"name": section.name, **stats})
            for key in overall:
                overall[key] += stats[key]
        return SubmitSummary(sections=sections, overall=overall)

    def request_submit(self) -> SubmitSummary:
        """Manual submit, step one: the confirmation summary."""
        self._require_active()
        self.pending_confirmation = self.submit_summary()
        return self.pending_confirmation

    def cancel_submit(self) -> None:
        self.pending_confirmation = None

    async def confirm_submit(self) -> bool:
        """Manual submit, step two."""
        if self.pending_confirmation is None:
            raise InvalidTransitionError("Submission was not requested")
        return await self._submit(forced=False, reason="manual")

    async def force_submit(self, reason: str = "forced") -> bool:
        """Timeout or violation: no confirmation, always ends in a redirect."""
        return await self._submit(forced=True, reason=reason)

    async def _submit(self, forced: bool, reason: str) -> bool:
        if not self._transition(SessionState.SUBMITTING):
            logger.debug(f"Submission ({reason}) skipped in state {self.state.value}")
            return False
        if not forced and self.countdown.is_expired:
            # Confirmed inside the time-up grace window, which is cancelled below
            forced, reason = True, "time up"

        logger.info(f"🚀 Submitting attempt {self.attempt_id} ({reason})")
        self.submit_reason = reason
        self.pending_confirmation = None
        self._stop_loops()
        self.time_tracker.stop()
        await self.time_tracker.flush()

        try:
            await self.api.submit_attempt(
                self.attempt_id,
                self.answers.payload(),
                max_retries=1 if forced else None,
            )
        except MockTestError as e:
            if forced:
                # Never trap the candidate on a failed auto-submit
                logger.error(f"❌ Error auto-submitting test: {e}")
                self._transition(SessionState.TERMINATED)
                self.dialog = None
                self._redirect()
                return False
            logger.error(f"❌ Error submitting test: {e}")
            self.dialog = Dialog("Submission Failed", e.user_message, kind="error")
            self._transition(SessionState.ACTIVE)
            self._start_loops()
            return False

        self._transition(SessionState.TERMINATED)
        if forced:
            self.dialog = None
            self._redirect()
        else:
            self.dialog = Dialog(
                "Test Submitted Successfully!",
                "Your test has been submitted successfully. You will be "
                "redirected to the student dashboard.",
                kind="success",
            )
            self._redirect(delay=2)
        return True

    def _on_time_up(self) -> None:
        if self.state != SessionState.ACTIVE:
            return
        logger.warning("⏰ TIME UP! Auto-submitting shortly")
        self.dialog = Dialog(
            "Time Completed",
            "Time is completed! Your test is being submitted automatically.",
            blocking=True,
        )
        self._grace_handle = self.scheduler.call_later(
            1, lambda: self.force_submit("time up")
        )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    def _start_loops(self) -> None:
        self.countdown.start()
        question = self.current_question
        if question is not None and not self.page_hidden:
            self.time_tracker.start(question.id)
        self.time_tracker.start_sync()
        if self._sync_handle is None:
            self._sync_handle = self.scheduler.call_every(
                settings.sync_interval, self.sync_answers
            )
        self.keepalive.start("TestWindow")

    def _stop_loops(self) -> None:
        self.countdown.stop()
        self.time_tracker.stop_sync()
        if self._sync_handle is not None:
            self._sync_handle.cancel()
            self._sync_handle = None
        if self._grace_handle is not None:
            self._grace_handle.cancel()
            self._grace_handle = None
        self.monitor.close()
        self.keepalive.stop("TestWindow")

    def _redirect(self, delay: float = 0) -> None:
        self.redirect_to = DASHBOARD_PATH
        if delay:
            self._redirect_handle = self.scheduler.call_later(delay, self._do_redirect)
        else:
            self._do_redirect()

    def _do_redirect(self) -> None:
        self._redirect_handle = None
        logger.info(f"➡️  Redirecting to {self.redirect_to}")
        if self.on_redirect is not None:
            self.on_redirect(self.redirect_to)

    async def unload(self) -> None:
        """
        The window is closing: ask for resume permission and push the last
        time deltas, both best effort.
        """
        if self.state == SessionState.ACTIVE:
            await self.api.send_beacon(
                "/attempts/request-resume", {"attemptId": self.attempt_id}
            )
        await self.time_tracker.unload()
        self.close()

    def close(self) -> None:
        """Cancel every outstanding timer. Safe to call more than once."""
        self._stop_loops()
        self.time_tracker.stop()
        if self._redirect_handle is not None:
            self._redirect_handle.cancel()
            self._redirect_handle = None

    # ------------------------------------------------------------------
    # View model
    # ------------------------------------------------------------------
    def snapshot(self) -> Dict[str, Any]:
        question = self.current_question
        section = self.current_section
        warning = self.monitor.dialog
        return {
            "state": self.state.value,
            "attemptId": self.attempt_id,
            "sectionIndex": self.section_index,
            "questionIndex": self.question_index,
            "question": (
                question.model_dump(by_alias=True, mode="json", exclude=HIDDEN_FIELDS)
                if question
                else None
            ),
            "questionType": section.question_type.value if section else None,
            "answer": (
                self.answers.get(question.id).to_payload()
                if question is not None and question.id in self.answers
                else None
            ),
            "timeLeft": self.countdown.time_left,
            "formattedTime": self.countdown.formatted,
            "palette": [
                {
                    "name": s.name,
                    "questions": [
                        {
                            "id": q.id,
                            "status": self.answers.status_of(q.id).value,
                            "label": self.answers.display_status(q.id),
                        }
                        for q in s.questions
                    ],
                }
                for s in self.sections
            ],
            "counts": self.answers.status_counts(self.sections),
            "warningCount": self.monitor.warning_count,
            "warning": (
                {
                    "count": warning.count,
                    "maxWarnings": warning.max_warnings,
                    "reason": warning.reason,
                    "secondsLeft": warning.seconds_left(self.scheduler.now()),
                }
                if warning
                else None
            ),
            "dialog": asdict(self.dialog) if self.dialog else None,
            "confirmation": (
                asdict(self.pending_confirmation) if self.pending_confirmation else None
            ),
            "redirectTo": self.redirect_to,
        }
