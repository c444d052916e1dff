import httpx
import pytest

from mocktest.api import client as client_module
from mocktest.api.client import ApiClient
from mocktest.utils.exceptions import (
    ApiError,
    AttemptBlockedError,
    NetworkError,
    NotFoundError,
    ResumeRequiredError,
    ServerError,
    SubmissionError,
)
from tests.conftest import API_BASE


@pytest.fixture
def no_sleep(monkeypatch):
    delays = []

    async def fake_sleep(seconds):
        delays.append(seconds)

    monkeypatch.setattr(client_module.asyncio, "sleep", fake_sleep)
    return delays


async def test_get_attempt_parses_camel_case(api):
    attempt = await api.get_attempt("a1")
    assert attempt.test_id == "t1"
    assert attempt.test.sections[1].question_type.value == "INTEGER"
    assert attempt.test.sections[1].questions[0].correct_integer == 0
    assert attempt.test.sections[0].questions[0].marks == 4


async def test_start_attempt_blocked_uses_server_message(api, backend):
    backend.route(
        "POST", "/attempts/start", status=400, json={"message": "Test is not live"}
    )
    with pytest.raises(AttemptBlockedError) as exc:
        await api.start_attempt("t1", "Asha", None)
    assert exc.value.user_message == "Test is not live"
    assert exc.value.status_code == 400


async def test_start_attempt_needs_resume(api, backend):
    backend.route(
        "POST",
        "/attempts/start",
        status=403,
        json={"needsResume": True, "attemptId": "a1"},
    )
    with pytest.raises(ResumeRequiredError) as exc:
        await api.start_attempt("t1", "Asha", None)
    assert "test creator" in exc.value.user_message


async def test_error_mapping(api, backend):
    backend.route("GET", "/tests/missing", status=404, json={})
    backend.route("GET", "/tests/busy", status=503, json={"message": "Waking up"})
    backend.route("GET", "/tests/broken", status=500)
    backend.route("GET", "/tests/bad", status=422, json={"error": "Bad id"})

    with pytest.raises(NotFoundError):
        await api.get_test("missing")
    with pytest.raises(ServerError) as exc:
        await api.get_test("busy")
    assert exc.value.user_message == "Waking up"
    with pytest.raises(ServerError):
        await api.get_test("broken")
    with pytest.raises(ApiError) as exc:
        await api.get_test("bad")
    assert exc.value.user_message == "Bad id"
    assert exc.value.status_code == 422


async def test_transport_failure_is_network_error():
    def handler(request):
        raise httpx.ConnectError("refused", request=request)

    async with ApiClient(base_url=API_BASE, transport=httpx.MockTransport(handler)) as api:
        with pytest.raises(NetworkError) as exc:
            await api.health()
    assert "internet connection" in exc.value.user_message


async def test_timeout_is_network_error():
    def handler(request):
        raise httpx.ReadTimeout("slow", request=request)

    async with ApiClient(base_url=API_BASE, transport=httpx.MockTransport(handler)) as api:
        with pytest.raises(NetworkError) as exc:
            await api.get_live_tests()
    assert "timed out" in exc.value.user_message


async def test_submit_retries_server_errors(api, backend, no_sleep):
    responses = iter([503, 502, 200])

    def handler(request):
        status = next(responses)
        return httpx.Response(status, json={"success": status == 200})

    backend.route("POST", "/attempts/submit", handler=handler)
    await api.submit_attempt("a1", [])
    assert len(backend.calls("POST", "/attempts/submit")) == 3
    assert no_sleep == [2, 4]


async def test_submit_gives_up_after_retries(api, backend, no_sleep):
    backend.route("POST", "/attempts/submit", status=500)
    with pytest.raises(SubmissionError):
        await api.submit_attempt("a1", [], max_retries=2)
    assert len(backend.calls("POST", "/attempts/submit")) == 2


async def test_submit_client_error_not_retried(api, backend, no_sleep):
    backend.route("POST", "/attempts/submit", status=400, json={"message": "Already submitted"})
    with pytest.raises(SubmissionError) as exc:
        await api.submit_attempt("a1", [])
    assert exc.value.user_message == "Already submitted"
    assert len(backend.calls("POST", "/attempts/submit")) == 1
    assert no_sleep == []


async def test_submit_payload(api, backend):
    answers = [{"questionId": "q3", "selectedOption": None, "integerAnswer": 0, "status": "ANSWERED"}]
    await api.submit_attempt("a1", answers)
    assert backend.bodies("POST", "/attempts/submit") == [
        {"attemptId": "a1", "answers": answers}
    ]


async def test_beacon_never_raises(api, backend):
    backend.route("POST", "/attempts/request-resume", status=500)
    assert await api.send_beacon("/attempts/request-resume", {"attemptId": "a1"}) is False
    assert await api.send_beacon("/attempts/a1/sync-times", {"questionTimes": {}}) is True


async def test_toggle_live_and_delete(api, backend):
    backend.route("PATCH", "/tests/t1/toggle-live", json={"isLive": False})
    backend.route("DELETE", "/tests/t1", status=204)
    await api.toggle_test_live("t1", False)
    await api.delete_test("t1")
    assert backend.bodies("PATCH", "/tests/t1/toggle-live") == [{"isLive": False}]
    assert len(backend.calls("DELETE", "/tests/t1")) == 1


async def test_resume_requests(api, backend):
    backend.route(
        "GET",
        "/attempts/resume-requests",
        json=[{"id": "a9", "candidateName": "Ravi", "test": {"id": "t1", "name": "JEE Mock 1"}}],
    )
    requests = await api.get_resume_requests()
    assert requests[0].candidate_name == "Ravi"
    assert requests[0].test.id == "t1"


async def test_request_resume(api, backend):
    await api.request_resume("a1")
    assert backend.bodies("POST", "/attempts/request-resume") == [{"attemptId": "a1"}]


async def test_malformed_payload_is_server_error(api, backend):
    backend.route("GET", "/attempts/a1", json={"testId": "t1", "answers": "none"})
    with pytest.raises(ServerError) as exc:
        await api.get_attempt("a1")
    assert exc.value.user_message.startswith("Unexpected response")
