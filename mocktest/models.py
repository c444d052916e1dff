from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class AnswerStatus(str, Enum):
    NOT_VISITED = "NOT_VISITED"
    NOT_ANSWERED = "NOT_ANSWERED"
    ANSWERED = "ANSWERED"
    MARKED_FOR_REVIEW = "MARKED_FOR_REVIEW"


class QuestionType(str, Enum):
    MCQ = "MCQ"
    INTEGER = "INTEGER"


class ApiModel(BaseModel):
    """Backend payloads use camelCase keys."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        coerce_numbers_to_str=True,
    )


class Question(ApiModel):
    id: str
    question_image: Optional[str] = None
    solution_image: Optional[str] = None
    correct_option: Optional[str] = None
    correct_integer: Optional[int] = None
    marks: int = 4


class Section(ApiModel):
    id: Optional[str] = None
    name: str
    question_type: QuestionType = QuestionType.MCQ
    questions: List[Question] = Field(default_factory=list)


class Test(ApiModel):
    __test__ = False  # not a pytest class

    id: Optional[str] = None
    name: str = ""
    duration: int = 180  # minutes
    total_marks: int = 0
    is_live: bool = False
    is_draft: bool = False
    sections: List[Section] = Field(default_factory=list)
    attempts: Optional[List[Attempt]] = None

    def all_questions(self) -> List[Question]:
        return [q for section in self.sections for q in section.questions]


class Answer(ApiModel):
    question_id: str
    selected_option: Optional[str] = None
    integer_answer: Optional[int] = None
    status: AnswerStatus = AnswerStatus.NOT_VISITED
    is_correct: Optional[bool] = None
    marks_awarded: Optional[float] = None
    time_spent: Optional[int] = None

    @property
    def has_value(self) -> bool:
        # 0 is a valid integer answer
        return self.selected_option is not None or self.integer_answer is not None

    @property
    def answered_and_marked(self) -> bool:
        return self.status == AnswerStatus.MARKED_FOR_REVIEW and self.has_value

    def to_payload(self) -> Dict[str, Any]:
        """Shape sent by sync and submit calls."""
        return {
            "questionId": self.question_id,
            "selectedOption": self.selected_option,
            "integerAnswer": self.integer_answer,
            "status": self.status.value,
        }


class Attempt(ApiModel):
    id: str
    test_id: Optional[str] = None
    candidate_name: str = ""
    candidate_image: Optional[str] = None
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    total_marks: float = 0
    warning_count: int = 0
    is_completed: bool = False
    answers: List[Answer] = Field(default_factory=list)
    test: Optional[Test] = None


class ResumeRequest(ApiModel):
    id: str
    candidate_name: str = ""
    test: Optional[Test] = None


Test.model_rebuild()


# ---------------------------------------------------------------------------
# Local service bodies
# ---------------------------------------------------------------------------
class LoadSessionRequest(BaseModel):
    """Request body for POST /session."""

    attempt_id: str


class NavigateRequest(BaseModel):
    """Request body for POST /session/navigate."""

    section_index: int
    question_index: int


class AnswerRequest(BaseModel):
    """Request body for POST /session/answer."""

    selected_option: Optional[str] = None
    integer_text: Optional[str] = None


class BrowserEventRequest(BaseModel):
    """Request body for POST /session/events."""

    type: str
    fullscreen: Optional[bool] = None
    hidden: Optional[bool] = None


class SignInRequest(BaseModel):
    """Request body for POST /student/sign-in."""

    name: str
    image: Optional[str] = None  # data URI or local photo path


class StartTestRequest(BaseModel):
    """Request body for POST /student/tests/{test_id}/start."""

    agreed: bool = False


class QuestionDraftRequest(BaseModel):
    question_image: Optional[str] = None  # server URL of an existing image
    question_image_file: Optional[str] = None  # local file to upload
    solution_image: Optional[str] = None
    solution_image_file: Optional[str] = None
    correct_option: Optional[str] = "A"
    correct_integer: Optional[int] = None


class SectionDraftRequest(BaseModel):
    name: str
    question_type: QuestionType = QuestionType.MCQ
    questions: List[QuestionDraftRequest] = Field(default_factory=list)


class TestDraftRequest(BaseModel):
    """Request body for POST /creator/tests and /creator/drafts."""

    __test__ = False  # not a pytest class

    name: str = ""
    hours: int = 3
    minutes: int = 0
    sections: List[SectionDraftRequest] = Field(default_factory=list)
    editing_id: Optional[str] = None


class HealthResponse(BaseModel):
    """Response body for GET /health."""

    status: str
    api_base_url: str
    session_state: Optional[str] = None
