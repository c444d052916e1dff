"""Custom exceptions for the mock-test client."""

from typing import List, Optional


class MockTestError(Exception):
    """Base exception for mock-test client errors."""

    user_message = "An unexpected error occurred. Please try again."

    def __init__(self, message: str = "", user_message: Optional[str] = None):
        super().__init__(message or self.user_message)
        if user_message is not None:
            self.user_message = user_message


class NetworkError(MockTestError):
    """Timeouts and connection failures."""

    user_message = (
        "Network error. Please check your internet connection and try again."
    )


class ServerError(MockTestError):
    """HTTP 5xx responses."""

    user_message = "Server error. Please try again later."


class ApiError(MockTestError):
    """HTTP 4xx responses without a more specific mapping."""

    user_message = "Request failed. Please check your input and try again."

    def __init__(
        self,
        message: str = "",
        user_message: Optional[str] = None,
        status_code: Optional[int] = None,
    ):
        super().__init__(message, user_message)
        self.status_code = status_code


class NotFoundError(ApiError):
    """Missing test or attempt."""

    user_message = "Resource not found."


class ResumeRequiredError(ApiError):
    """A previous session was closed; the test creator must allow a resume."""

    user_message = (
        "You previously closed the test window. The test creator needs to "
        "approve your request to start the test again. Please contact the "
        "test administrator."
    )


class AttemptBlockedError(ApiError):
    """The server refused to start an attempt."""

    pass


class AttemptCompletedError(MockTestError):
    """The attempt has already been submitted."""

    user_message = "This test has already been submitted."


class ValidationError(MockTestError):
    """Local validation failed before any request was made."""

    user_message = "Please check your input and try again."


class BulkSelectionError(ValidationError):
    """Bulk image selection did not match the questions it targets."""

    def __init__(
        self,
        kind: str,
        expected_count: int = 0,
        actual_count: int = 0,
        invalid_files: Optional[List[str]] = None,
    ):
        self.kind = kind
        self.expected_count = expected_count
        self.actual_count = actual_count
        self.invalid_files = invalid_files or []
        super().__init__(self._describe(), self._describe())

    def _describe(self) -> str:
        if self.kind == "wrongCount":
            return (
                f"Please select exactly {self.expected_count} files. "
                f"You selected {self.actual_count} files."
            )
        if self.kind == "invalidFileType":
            return (
                "Only image files (JPG, PNG, GIF, WEBP) are allowed. "
                f"Invalid files: {', '.join(self.invalid_files)}"
            )
        return (
            f"Wrong count: expected {self.expected_count}, got "
            f"{self.actual_count}. Invalid files: {', '.join(self.invalid_files)}"
        )


class InvalidTransitionError(MockTestError):
    """Operation not allowed in the current session state."""

    user_message = "This action is not available right now."


class SubmissionError(MockTestError):
    """Final answer submission failed."""

    user_message = "Failed to submit test. Please try again."


class AnalysisError(MockTestError):
    """Attempt analysis or chart rendering failed."""

    user_message = "Could not build the test analysis."
