"""
REST client for the mock-test backend.

Every failure is raised as a MockTestError subclass carrying a
user-facing message.
"""

from __future__ import annotations

import asyncio
from typing import Any, Dict, List, Optional, Tuple, Type, TypeVar

import httpx
from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from mocktest.config import settings
from mocktest.logger import setup_logger
from mocktest.models import Attempt, ResumeRequest, Test
from mocktest.utils.exceptions import (
    ApiError,
    AttemptBlockedError,
    MockTestError,
    NetworkError,
    NotFoundError,
    ResumeRequiredError,
    ServerError,
    SubmissionError,
)

logger = setup_logger(__name__)

Files = List[Tuple[str, Tuple[str, bytes, str]]]
ModelT = TypeVar("ModelT", bound=BaseModel)


async def _log_request(request: httpx.Request) -> None:
    logger.debug(f"🔄 API Request: {request.method} {request.url}")


async def _log_response(response: httpx.Response) -> None:
    request = response.request
    logger.debug(
        f"✅ API Response: {request.method} {request.url} - {response.status_code}"
    )


def _error_body(response: httpx.Response) -> Dict[str, Any]:
    try:
        body = response.json()
    except ValueError:
        return {}
    return body if isinstance(body, dict) else {}


def map_http_error(response: httpx.Response) -> MockTestError:
    """Translate an error response into the client exception taxonomy."""
    status = response.status_code
    body = _error_body(response)
    server_message = body.get("message") or body.get("error")
    detail = f"HTTP {status} on {response.request.method} {response.request.url}"

    if status == 503:
        return ServerError(
            detail,
            server_message
            or "Service temporarily unavailable. Please try again in a moment.",
        )
    if status >= 500:
        return ServerError(detail)
    if status == 404:
        return NotFoundError(detail, status_code=status)
    if status == 403 and body.get("needsResume"):
        return ResumeRequiredError(detail, status_code=status)
    if status == 400 and response.request.url.path.endswith("/attempts/start"):
        return AttemptBlockedError(
            detail,
            server_message or "Unable to start the test.",
            status_code=status,
        )
    return ApiError(detail, server_message, status_code=status)


def parse_model(model: Type[ModelT], data: Any) -> ModelT:
    """Validate a response body; a malformed one is a server fault."""
    try:
        return model.model_validate(data)
    except PydanticValidationError as e:
        logger.error(f"❌ Malformed {model.__name__} payload: {e}")
        raise ServerError(
            f"Malformed {model.__name__} payload",
            "Unexpected response from the server. Please try again later.",
        )


class ApiClient:
    """
    Thin async wrapper over the backend's test and attempt endpoints.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        """
        Args:
            base_url: API root (default from settings).
            timeout: Request timeout in seconds (default from settings).
            transport: Optional httpx transport, used by tests.
        """
        self.base_url = (base_url or settings.api_base_url).rstrip("/")
        self._client = httpx.AsyncClient(
            base_url=self.base_url + "/",
            timeout=timeout or settings.api_timeout,
            transport=transport,
            headers={"User-Agent": "mocktest-client/1.0"},
            event_hooks={"request": [_log_request], "response": [_log_response]},
        )

    async def close(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "ApiClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------
    async def _request(
        self,
        method: str,
        path: str,
        timeout: Optional[float] = None,
        **kwargs: Any,
    ) -> Any:
        if timeout is not None:
            kwargs["timeout"] = timeout
        try:
            response = await self._client.request(method, path.lstrip("/"), **kwargs)
        except httpx.TimeoutException as e:
            logger.error(f"❌ API timeout: {method} {path}")
            raise NetworkError(
                str(e) or "timeout",
                "Request timed out. Please check your internet connection and try again.",
            )
        except httpx.TransportError as e:
            logger.error(f"❌ API network error: {method} {path}: {e}")
            raise NetworkError(str(e))

        if response.is_error:
            error = map_http_error(response)
            logger.error(f"❌ API Response Error: {error}")
            raise error

        if not response.content:
            return None
        try:
            return response.json()
        except ValueError:
            return response.text

    # ------------------------------------------------------------------
    # Tests
    # ------------------------------------------------------------------
    async def get_all_tests(self) -> List[Test]:
        data = await self._request("GET", "/tests")
        return [parse_model(Test, item) for item in data or []]

    async def get_live_tests(self) -> List[Test]:
        data = await self._request("GET", "/tests/live")
        return [parse_model(Test, item) for item in data or []]

    async def get_test(self, test_id: str) -> Test:
        return parse_model(Test, await self._request("GET", f"/tests/{test_id}"))

    async def create_test(self, data: Dict[str, str], files: Files) -> Test:
        """POST /tests as multipart; used for both publishing and drafts."""
        result = await self._request("POST", "/tests", data=data, files=files or None)
        return parse_model(Test, result)

    async def update_test(
        self, test_id: str, data: Dict[str, str], files: Files
    ) -> Test:
        result = await self._request(
            "PUT", f"/tests/{test_id}", data=data, files=files or None
        )
        return parse_model(Test, result)

    async def toggle_test_live(self, test_id: str, is_live: bool) -> Any:
        return await self._request(
            "PATCH", f"/tests/{test_id}/toggle-live", json={"isLive": is_live}
        )

    async def delete_test(self, test_id: str) -> None:
        await self._request("DELETE", f"/tests/{test_id}")

    # ------------------------------------------------------------------
    # Attempts
    # ------------------------------------------------------------------
    async def start_attempt(
        self, test_id: str, candidate_name: str, candidate_image: Optional[str]
    ) -> Attempt:
        data = await self._request(
            "POST",
            "/attempts/start",
            json={
                "testId": test_id,
                "candidateName": candidate_name,
                "candidateImage": candidate_image,
            },
        )
        return parse_model(Attempt, data)

    async def get_attempt(self, attempt_id: str) -> Attempt:
        return parse_model(
            Attempt, await self._request("GET", f"/attempts/{attempt_id}")
        )

    async def get_user_attempts(self, candidate_name: str) -> List[Attempt]:
        data = await self._request("GET", f"/attempts/user/{candidate_name}")
        return [parse_model(Attempt, item) for item in data or []]

    async def sync_answers(
        self, attempt_id: str, answers: List[Dict[str, Any]]
    ) -> Any:
        return await self._request(
            "POST", "/attempts/sync", json={"attemptId": attempt_id, "answers": answers}
        )

    async def sync_times(self, attempt_id: str, question_times: Dict[str, int]) -> Any:
        return await self._request(
            "POST",
            f"/attempts/{attempt_id}/sync-times",
            json={"questionTimes": question_times},
        )

    async def report_warning(self, attempt_id: str) -> Any:
        return await self._request(
            "POST", "/attempts/warning", json={"attemptId": attempt_id}
        )

    async def request_resume(self, attempt_id: str) -> Any:
        return await self._request(
            "POST", "/attempts/request-resume", json={"attemptId": attempt_id}
        )

    async def allow_resume(self, attempt_id: str) -> Any:
        return await self._request(
            "POST", "/attempts/allow-resume", json={"attemptId": attempt_id}
        )

    async def get_resume_requests(self) -> List[ResumeRequest]:
        data = await self._request("GET", "/attempts/resume-requests")
        return [parse_model(ResumeRequest, item) for item in data or []]

    async def submit_attempt(
        self,
        attempt_id: str,
        answers: List[Dict[str, Any]],
        max_retries: Optional[int] = None,
    ) -> Any:
        """
        Submit the final answer set.

        Network and server errors are retried with exponential backoff;
        client errors are not.

        Raises:
            SubmissionError: If submission fails after retries
        """
        retries = max(1, max_retries or settings.submit_max_retries)
        payload = {"attemptId": attempt_id, "answers": answers}
        logger.info(f"📤 Submitting {len(answers)} answers for attempt {attempt_id}")

        for attempt in range(1, retries + 1):
            try:
                result = await self._request("POST", "/attempts/submit", json=payload)
                logger.info(f"✅ Attempt {attempt_id} submitted")
                return result
            except (NetworkError, ServerError) as e:
                logger.warning(f"⚠️ Submit failed on attempt {attempt}/{retries}: {e}")
                if attempt == retries:
                    raise SubmissionError(str(e))
                await asyncio.sleep(2**attempt)
            except ApiError as e:
                raise SubmissionError(str(e), e.user_message)

        raise SubmissionError("Submission failed after all retries")

    # ------------------------------------------------------------------
    # Misc
    # ------------------------------------------------------------------
    async def health(self) -> Any:
        return await self._request("GET", "/health")

    async def send_beacon(self, path: str, payload: Dict[str, Any]) -> bool:
        """
        Fire-and-forget POST used while the page is going away.

        Never raises; returns whether the server accepted it.
        """
        try:
            await self._request(
                "POST", path, json=payload, timeout=settings.beacon_timeout
            )
            return True
        except MockTestError as e:
            logger.warning(f"⚠️ Beacon to {path} failed: {e}")
            return False
