import pytest

from mocktest.models import AnswerStatus
from mocktest.session.controller import DASHBOARD_PATH, SessionController, SessionState
from mocktest.utils.exceptions import (
    AttemptCompletedError,
    InvalidTransitionError,
    NotFoundError,
    ServerError,
    ValidationError,
)
from tests.conftest import make_attempt, make_test


@pytest.fixture
def redirects():
    return []


@pytest.fixture
def session(api, scheduler, redirects):
    controller = SessionController(api, "a1", scheduler, on_redirect=redirects.append)
    yield controller
    controller.close()


def short_test(backend, minutes=1):
    attempt = make_attempt(test=make_test(duration=minutes))
    backend.route("GET", "/attempts/a1", json=attempt)


async def test_load_starts_session(session, scheduler, backend):
    await session.load()
    await scheduler.run_pending()

    assert session.state == SessionState.ACTIVE
    assert session.countdown.time_left == 10800
    assert session.countdown.is_running
    assert session.current_question.id == "q1"
    assert session.answers.status_of("q1") == AnswerStatus.NOT_ANSWERED
    assert session.answers.status_of("q2") == AnswerStatus.NOT_VISITED
    assert len(backend.calls("GET", "/health")) == 1


async def test_load_fetches_test_when_not_embedded(session, backend):
    backend.route("GET", "/attempts/a1", json=make_attempt(test=None))
    await session.load()
    assert len(backend.calls("GET", "/tests/t1")) == 1
    assert len(session.questions) == 4


async def test_load_restores_saved_answers(session, backend):
    backend.route(
        "GET",
        "/attempts/a1",
        json=make_attempt(
            answers=[{"questionId": "q4", "integerAnswer": 12, "status": "ANSWERED"}]
        ),
    )
    await session.load()
    assert session.answers.get("q4").integer_answer == 12


async def test_load_completed_attempt_terminates(session, scheduler, backend, redirects):
    backend.route("GET", "/attempts/a1", json=make_attempt(isCompleted=True))
    with pytest.raises(AttemptCompletedError):
        await session.load()

    assert session.state == SessionState.TERMINATED
    assert session.dialog.title == "Failed to Load Test"
    assert redirects == []
    await scheduler.advance(3)
    assert redirects == [DASHBOARD_PATH]


async def test_load_missing_attempt(session, backend):
    backend.route("GET", "/attempts/a1", status=404, json={"message": "not found"})
    with pytest.raises(NotFoundError):
        await session.load()
    assert session.state == SessionState.TERMINATED


async def test_load_malformed_attempt_terminates(session, scheduler, backend, redirects):
    backend.route("GET", "/attempts/a1", json={"candidateName": "Asha"})
    with pytest.raises(ServerError):
        await session.load()

    assert session.state == SessionState.TERMINATED
    assert session.dialog.title == "Failed to Load Test"
    await scheduler.advance(3)
    assert redirects == [DASHBOARD_PATH]


async def test_zero_duration_gets_minimum_clock(session, backend):
    short_test(backend, minutes=0)
    await session.load()
    assert session.countdown.time_left == 10


async def test_navigation_moves_question_timer(session, scheduler):
    await session.load()
    await scheduler.advance(5)
    session.navigate_to(1, 0)
    await scheduler.advance(7)
    session.previous()

    tracker = session.time_tracker
    assert tracker.question_times == {"q1": 5, "q3": 7}
    assert tracker.current_question_id == "q2"
    assert session.answers.status_of("q3") == AnswerStatus.NOT_ANSWERED


async def test_next_and_previous_cross_sections(session):
    await session.load()
    assert session.previous() is False
    session.next()
    session.next()
    assert (session.section_index, session.question_index) == (1, 0)
    session.next()
    assert session.next() is False
    assert session.current_question.id == "q4"


async def test_navigate_out_of_range(session):
    await session.load()
    with pytest.raises(ValidationError):
        session.navigate_to(5, 0)


async def test_answer_types_follow_section(session):
    await session.load()
    session.select_option("b")
    assert session.answers.get("q1").selected_option == "B"
    with pytest.raises(ValidationError):
        session.enter_integer("3")

    session.navigate_to(1, 0)
    session.enter_integer("0")
    assert session.answers.get("q3").status == AnswerStatus.ANSWERED
    with pytest.raises(ValidationError):
        session.select_option("A")


async def test_mark_for_review_advances(session):
    await session.load()
    session.mark_for_review_and_next()
    assert session.answers.status_of("q1") == AnswerStatus.MARKED_FOR_REVIEW
    assert session.current_question.id == "q2"


async def test_clear_response(session):
    await session.load()
    session.select_option("C")
    session.clear_response()
    answer = session.answers.get("q1")
    assert answer.selected_option is None
    assert answer.status == AnswerStatus.NOT_ANSWERED


async def test_answers_sync_every_interval(session, scheduler, backend):
    await session.load()
    session.select_option("A")
    await scheduler.advance(15)
    bodies = backend.bodies("POST", "/attempts/sync")
    assert len(bodies) == 1
    assert bodies[0]["attemptId"] == "a1"
    assert {"questionId": "q1", "selectedOption": "A", "integerAnswer": None, "status": "ANSWERED"} in bodies[0]["answers"]


async def test_failed_answer_sync_keeps_session(session, scheduler, backend):
    backend.route("POST", "/attempts/sync", status=500, json={"message": "down"})
    await session.load()
    await scheduler.advance(15)
    assert session.state == SessionState.ACTIVE


async def test_manual_submit_flow(session, scheduler, backend, redirects):
    await session.load()
    session.select_option("A")
    summary = session.request_submit()
    assert summary.overall["answered"] == 1
    assert summary.overall["not_visited"] == 3

    assert await session.confirm_submit() is True
    assert session.state == SessionState.TERMINATED
    assert session.dialog.title == "Test Submitted Successfully!"
    submitted = backend.bodies("POST", "/attempts/submit")
    assert len(submitted) == 1
    assert submitted[0]["attemptId"] == "a1"

    assert redirects == []
    await scheduler.advance(2)
    assert redirects == [DASHBOARD_PATH]
    assert not session.countdown.is_running


async def test_confirm_requires_request(session):
    await session.load()
    with pytest.raises(InvalidTransitionError):
        await session.confirm_submit()


async def test_cancel_submit_keeps_session(session):
    await session.load()
    session.request_submit()
    session.cancel_submit()
    assert session.pending_confirmation is None
    assert session.state == SessionState.ACTIVE


async def test_manual_submit_failure_returns_to_active(session, scheduler, backend, redirects):
    backend.route("POST", "/attempts/submit", status=400, json={"message": "bad"})
    await session.load()
    session.request_submit()

    assert await session.confirm_submit() is False
    assert session.state == SessionState.ACTIVE
    assert session.dialog.title == "Submission Failed"
    assert session.countdown.is_running
    assert redirects == []


async def test_time_up_submits_once(session, scheduler, backend, redirects):
    short_test(backend, minutes=1)
    await session.load()

    await scheduler.advance(60)
    assert session.dialog.title == "Time Completed"
    assert session.dialog.blocking
    assert backend.calls("POST", "/attempts/submit") == []

    await scheduler.advance(1)
    assert len(backend.calls("POST", "/attempts/submit")) == 1
    assert session.state == SessionState.TERMINATED
    assert session.submit_reason == "time up"
    assert redirects == [DASHBOARD_PATH]

    await scheduler.advance(120)
    assert len(backend.calls("POST", "/attempts/submit")) == 1


async def test_fifth_violation_submits_once(session, scheduler, backend, redirects):
    await session.load()
    for _ in range(5):
        session.on_hidden()
        session.on_visible()
        session.acknowledge_warning()
    await scheduler.run_pending()

    assert len(backend.calls("POST", "/attempts/warning")) == 5
    assert len(backend.calls("POST", "/attempts/submit")) == 1
    assert session.state == SessionState.TERMINATED
    assert redirects == [DASHBOARD_PATH]


async def test_time_up_and_violation_race(session, scheduler, backend):
    short_test(backend, minutes=1)
    await session.load()
    await scheduler.advance(60)

    await session.force_submit("violation limit reached")
    await scheduler.advance(1)
    assert len(backend.calls("POST", "/attempts/submit")) == 1
    assert session.submit_reason == "violation limit reached"


async def test_confirm_during_time_up_grace_is_final(session, scheduler, backend, redirects):
    short_test(backend, minutes=0)
    backend.route("POST", "/attempts/submit", status=400, json={"message": "bad"})
    await session.load()
    session.request_submit()

    await scheduler.advance(10)
    assert session.dialog.title == "Time Completed"
    assert await session.confirm_submit() is False
    assert session.state == SessionState.TERMINATED
    assert session.submit_reason == "time up"
    assert redirects == [DASHBOARD_PATH]

    await scheduler.advance(600)
    assert len(backend.calls("POST", "/attempts/submit")) == 1


async def test_forced_submit_failure_still_redirects(session, backend, redirects):
    backend.route("POST", "/attempts/submit", status=500, json={"message": "down"})
    await session.load()
    assert await session.force_submit("time up") is False
    assert session.state == SessionState.TERMINATED
    assert redirects == [DASHBOARD_PATH]
    assert len(backend.calls("POST", "/attempts/submit")) == 1


async def test_submit_flushes_question_times(session, scheduler, backend):
    await session.load()
    await scheduler.advance(9)
    await session.force_submit("time up")
    assert backend.bodies("POST", "/attempts/a1/sync-times") == [
        {"questionTimes": {"q1": 9}}
    ]


async def test_hidden_page_pauses_question_timer(session, scheduler):
    await session.load()
    await scheduler.advance(4)
    session.on_hidden()
    await scheduler.advance(20)
    session.on_visible()
    session.acknowledge_warning()
    await scheduler.advance(6)
    session.next()
    assert session.time_tracker.question_times["q1"] == 10


async def test_unload_sends_beacons(session, scheduler, backend):
    await session.load()
    await scheduler.advance(3)
    await session.unload()
    assert backend.bodies("POST", "/attempts/request-resume") == [{"attemptId": "a1"}]
    assert backend.bodies("POST", "/attempts/a1/sync-times") == [
        {"questionTimes": {"q1": 3}}
    ]
    assert scheduler.active_timers() == 0


async def test_operations_rejected_after_termination(session):
    await session.load()
    await session.force_submit("time up")
    with pytest.raises(InvalidTransitionError):
        session.next()
    with pytest.raises(InvalidTransitionError):
        session.select_option("A")


async def test_snapshot_shape(session, scheduler):
    await session.load()
    session.select_option("D")
    session.on_hidden()
    view = session.snapshot()

    assert view["state"] == "ACTIVE"
    assert view["formattedTime"] == "03:00:00"
    assert "correctOption" not in view["question"]
    assert view["answer"]["selectedOption"] == "D"
    assert view["palette"][0]["questions"][0]["label"] == "Answered"
    assert view["warning"]["count"] == 1
    assert view["warning"]["secondsLeft"] == 60
    assert view["counts"]["NOT_VISITED"] == 3
