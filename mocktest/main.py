"""
Local HTTP service behind the browser view layer.

The exam page posts its DOM events and user actions under `/session` and
renders the snapshot returned by every call. The candidate dashboard lives
under `/student` and the test creator operations under `/creator`.
"""

from contextlib import asynccontextmanager
from typing import Any, Dict, List, Optional, Set

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from mocktest.analytics import charts
from mocktest.analytics.stats import build_report, question_frame
from mocktest.api.client import ApiClient
from mocktest.authoring.admin import TestAdmin
from mocktest.authoring.builder import TestDraft
from mocktest.config import settings
from mocktest.dashboard import StudentDashboard
from mocktest.identity import CandidateStore
from mocktest.logger import setup_logger
from mocktest.models import (
    AnswerRequest,
    BrowserEventRequest,
    HealthResponse,
    LoadSessionRequest,
    NavigateRequest,
    SignInRequest,
    StartTestRequest,
    Test,
    TestDraftRequest,
)
from mocktest.scheduling import AsyncioScheduler, Scheduler
from mocktest.session.controller import SessionController
from mocktest.session.violations import BrowserEventAdapter
from mocktest.utils.exceptions import (
    ApiError,
    InvalidTransitionError,
    MockTestError,
    NetworkError,
    NotFoundError,
    ServerError,
)

logger = setup_logger(__name__)


def _test_summary(test: Test) -> Dict[str, Any]:
    """What a candidate sees of a live test before starting it."""
    return {
        "id": test.id,
        "name": test.name,
        "duration": test.duration,
        "totalMarks": test.total_marks,
        "questionCount": len(test.all_questions()),
    }


def _dump(model: BaseModel, exclude: Optional[Set[str]] = None) -> Dict[str, Any]:
    return model.model_dump(by_alias=True, mode="json", exclude=exclude)


def create_app(
    api: Optional[ApiClient] = None,
    scheduler: Optional[Scheduler] = None,
    store: Optional[CandidateStore] = None,
) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Lifecycle manager: startup and shutdown."""
        logger.info("🚀 Starting mock-test session service")
        logger.info(f"   Config: API={settings.api_base_url}")
        app.state.api = api or ApiClient()
        app.state.scheduler = scheduler or AsyncioScheduler()
        app.state.dashboard = StudentDashboard(app.state.api, store)
        app.state.admin = TestAdmin(app.state.api)
        app.state.session = None
        app.state.adapter = None
        yield
        logger.info("🛑 Shutting down service")
        if app.state.session is not None:
            app.state.session.close()
        await app.state.api.close()

    app = FastAPI(title="Mock Test Client", version="1.0.0", lifespan=lifespan)

    def _session(request: Request) -> SessionController:
        session = request.app.state.session
        if session is None:
            raise InvalidTransitionError(
                "No session loaded", "No test is open. Please start a test first."
            )
        return session

    def _view(request: Request) -> Dict[str, Any]:
        """Session snapshot plus what the page must do with the display."""
        view = _session(request).snapshot()
        adapter = request.app.state.adapter
        view["fullscreenRequested"] = bool(adapter and adapter.fullscreen_requested)
        return view

    @app.post("/session")
    async def load_session(body: LoadSessionRequest, request: Request) -> Dict[str, Any]:
        """Open the exam window for an attempt, replacing any open one."""
        state = request.app.state
        if state.session is not None:
            state.session.close()

        adapter = BrowserEventAdapter()
        session = SessionController(
            state.api, body.attempt_id, state.scheduler, display=adapter
        )
        adapter.bind(session)
        state.session = session
        state.adapter = adapter

        logger.info(f"📥 Loading attempt {body.attempt_id}")
        await session.load()
        return _view(request)

    @app.get("/session")
    async def get_session(request: Request) -> Dict[str, Any]:
        return _view(request)

    @app.post("/session/navigate")
    async def navigate(body: NavigateRequest, request: Request) -> Dict[str, Any]:
        session = _session(request)
        session.navigate_to(body.section_index, body.question_index)
        return _view(request)

    @app.post("/session/next")
    async def next_question(request: Request) -> Dict[str, Any]:
        session = _session(request)
        session.next()
        return _view(request)

    @app.post("/session/previous")
    async def previous_question(request: Request) -> Dict[str, Any]:
        session = _session(request)
        session.previous()
        return _view(request)

    @app.post("/session/answer")
    async def answer(body: AnswerRequest, request: Request) -> Dict[str, Any]:
        session = _session(request)
        if body.integer_text is not None:
            session.enter_integer(body.integer_text)
        elif body.selected_option is not None:
            session.select_option(body.selected_option)
        return _view(request)

    @app.post("/session/mark-review")
    async def mark_review(request: Request) -> Dict[str, Any]:
        session = _session(request)
        session.mark_for_review_and_next()
        return _view(request)

    @app.post("/session/clear")
    async def clear(request: Request) -> Dict[str, Any]:
        session = _session(request)
        session.clear_response()
        return _view(request)

    @app.post("/session/submit")
    async def request_submit(request: Request) -> Dict[str, Any]:
        session = _session(request)
        session.request_submit()
        return _view(request)

    @app.post("/session/submit/cancel")
    async def cancel_submit(request: Request) -> Dict[str, Any]:
        session = _session(request)
        session.cancel_submit()
        return _view(request)

    @app.post("/session/submit/confirm")
    async def confirm_submit(request: Request) -> Dict[str, Any]:
        session = _session(request)
        await session.confirm_submit()
        return _view(request)

    @app.post("/session/events")
    async def browser_event(body: BrowserEventRequest, request: Request) -> Dict[str, Any]:
        session = _session(request)
        request.app.state.adapter.dispatch(
            body.type, fullscreen=body.fullscreen, hidden=body.hidden
        )
        return _view(request)

    @app.post("/session/warning/ack")
    async def acknowledge_warning(request: Request) -> Dict[str, Any]:
        session = _session(request)
        session.acknowledge_warning()
        return _view(request)

    @app.post("/session/unload")
    async def unload(request: Request) -> Dict[str, Any]:
        session = _session(request)
        await session.unload()
        request.app.state.session = None
        request.app.state.adapter = None
        return {"status": "closed", "attemptId": session.attempt_id}

    # ------------------------------------------------------------------
    # Candidate dashboard
    # ------------------------------------------------------------------
    @app.post("/student/sign-in")
    async def sign_in(body: SignInRequest, request: Request) -> Dict[str, Any]:
        candidate = request.app.state.dashboard.sign_in(body.name, body.image)
        return {"candidateName": candidate.name, "candidateImage": candidate.image}

    @app.get("/student/overview")
    async def student_overview(request: Request) -> Dict[str, Any]:
        overview = await request.app.state.dashboard.overview()
        return {
            "liveTests": [_test_summary(t) for t in overview["live_tests"]],
            "attempts": [_dump(a, exclude={"test"}) for a in overview["attempts"]],
            "accuracy": overview["accuracy"],
        }

    @app.post("/student/tests/{test_id}/start")
    async def start_test(
        test_id: str, body: StartTestRequest, request: Request
    ) -> Dict[str, Any]:
        """Start an attempt; 403 when a resume approval is pending."""
        attempt = await request.app.state.dashboard.start_test(test_id, body.agreed)
        return {"attemptId": attempt.id, "testId": attempt.test_id or test_id}

    # ------------------------------------------------------------------
    # Test creator
    # ------------------------------------------------------------------
    @app.get("/creator/tests")
    async def creator_tests(request: Request) -> Dict[str, Any]:
        groups = await request.app.state.admin.list_tests()
        return {
            group: [_dump(t, exclude={"attempts"}) for t in tests]
            for group, tests in groups.items()
        }

    @app.post("/creator/tests")
    async def publish_test(body: TestDraftRequest, request: Request) -> Dict[str, Any]:
        test = await request.app.state.admin.publish(TestDraft.from_request(body))
        return _dump(test, exclude={"attempts"})

    @app.post("/creator/drafts")
    async def save_draft(body: TestDraftRequest, request: Request) -> Dict[str, Any]:
        test = await request.app.state.admin.save_draft(TestDraft.from_request(body))
        return _dump(test, exclude={"attempts"})

    @app.post("/creator/tests/{test_id}/toggle-live")
    async def toggle_live(test_id: str, request: Request) -> Dict[str, Any]:
        test = await request.app.state.api.get_test(test_id)
        await request.app.state.admin.toggle_live(test)
        return {"id": test_id, "isLive": not test.is_live}

    @app.delete("/creator/tests/{test_id}")
    async def delete_test(test_id: str, request: Request) -> Dict[str, Any]:
        await request.app.state.admin.delete(test_id)
        return {"status": "deleted", "id": test_id}

    @app.get("/creator/resume-requests")
    async def resume_requests(
        request: Request, test_id: Optional[str] = None
    ) -> List[Dict[str, Any]]:
        requests = await request.app.state.admin.resume_requests(test_id)
        return [
            {
                "attemptId": r.id,
                "candidateName": r.candidate_name,
                "testId": r.test.id if r.test else None,
                "testName": r.test.name if r.test else None,
            }
            for r in requests
        ]

    @app.post("/creator/resume-requests/{attempt_id}/allow")
    async def allow_resume(attempt_id: str, request: Request) -> Dict[str, Any]:
        await request.app.state.admin.allow_resume(attempt_id)
        return {"status": "allowed", "attemptId": attempt_id}

    @app.get("/attempts/{attempt_id}/analysis")
    async def analysis(attempt_id: str, request: Request) -> Dict[str, Any]:
        """Report and charts for a completed attempt."""
        attempt = await request.app.state.api.get_attempt(attempt_id)
        if attempt.test is None:
            if not attempt.test_id:
                raise NotFoundError(f"Attempt {attempt_id} has no test")
            attempt.test = await request.app.state.api.get_test(attempt.test_id)

        report = build_report(attempt)
        frame = question_frame(attempt.test.sections, attempt.answers)
        return {
            "report": report.model_dump(mode="json"),
            "charts": {
                "sectionMarks": charts.section_marks_chart(report.sections),
                "questionTime": charts.question_time_chart(frame),
                "outcomes": charts.outcome_chart(frame),
            },
        }

    @app.get("/health", response_model=HealthResponse)
    async def health_check(request: Request):
        """Health check endpoint."""
        session = request.app.state.session
        return HealthResponse(
            status="healthy",
            api_base_url=request.app.state.api.base_url,
            session_state=session.state.value if session else None,
        )

    @app.exception_handler(MockTestError)
    async def mocktest_exception_handler(request: Request, exc: MockTestError):
        """Handle custom application exceptions."""
        logger.error(f"🔥 Application Error: {exc}")
        status_code = 400
        if isinstance(exc, ApiError) and exc.status_code:
            status_code = exc.status_code
        elif isinstance(exc, (NetworkError, ServerError)):
            status_code = 502
        elif isinstance(exc, InvalidTransitionError):
            status_code = 409
        return JSONResponse(
            status_code=status_code,
            content={"detail": exc.user_message, "error": type(exc).__name__},
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        """Handle unexpected exceptions."""
        logger.error(f"🔥 Unexpected Error: {exc}", exc_info=True)
        return JSONResponse(status_code=500, content={"detail": "Internal server error"})

    return app


app = create_app()
