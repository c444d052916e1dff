"""
In-memory answer sheet for one attempt.

The store is the single source of truth for answers; sync and submit read
snapshots from it and never write back.
"""

import re
from typing import Any, Dict, Iterable, List, Optional

from mocktest.logger import setup_logger
from mocktest.models import Answer, AnswerStatus, Section
from mocktest.utils.exceptions import ValidationError

logger = setup_logger(__name__)

MCQ_OPTIONS = ("A", "B", "C", "D")
INTEGER_PATTERN = re.compile(r"^-?\d+$")

_VALUE_FIELDS = ("selected_option", "integer_answer")


class AnswerStore:
    """Question id -> Answer, with the status rules of the exam window."""

    def __init__(self, answers: Optional[Iterable[Answer]] = None) -> None:
        self._answers: Dict[str, Answer] = {}
        if answers:
            self.load(answers)

    def load(self, answers: Iterable[Answer]) -> None:
        """Replace the sheet with answers persisted on the server."""
        self._answers = {
            a.question_id: Answer(
                question_id=a.question_id,
                selected_option=a.selected_option,
                integer_answer=a.integer_answer,
                status=a.status,
            )
            for a in answers
        }
        logger.info(f"📋 Loaded {len(self._answers)} saved answers")

    def get(self, question_id: str) -> Optional[Answer]:
        return self._answers.get(question_id)

    def status_of(self, question_id: str) -> AnswerStatus:
        answer = self._answers.get(question_id)
        return answer.status if answer else AnswerStatus.NOT_VISITED

    def __contains__(self, question_id: str) -> bool:
        return question_id in self._answers

    def __len__(self) -> int:
        return len(self._answers)

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------
    def update(self, question_id: str, **partial: Any) -> Answer:
        """
        Merge partial answer fields.

        Without an explicit status, ANSWERED/NOT_ANSWERED is derived from
        whether a value is present. An explicit status always wins.
        """
        unknown = set(partial) - set(_VALUE_FIELDS) - {"status"}
        if unknown:
            raise ValidationError(f"Unknown answer fields: {sorted(unknown)}")

        current = self._answers.get(question_id) or Answer(question_id=question_id)
        status = partial.pop("status", None)
        merged = current.model_copy(update=partial)

        if status is None:
            status = (
                AnswerStatus.ANSWERED if merged.has_value else AnswerStatus.NOT_ANSWERED
            )
        status = AnswerStatus(status)
        if status == AnswerStatus.NOT_VISITED and current.status != AnswerStatus.NOT_VISITED:
            raise ValidationError(
                f"Question {question_id} was already visited and cannot be reset"
            )

        merged.status = status
        self._answers[question_id] = merged
        return merged

    def mark_visited(self, question_id: str) -> None:
        if self.status_of(question_id) == AnswerStatus.NOT_VISITED:
            self.update(question_id, status=AnswerStatus.NOT_ANSWERED)

    def select_option(self, question_id: str, option: str) -> Answer:
        """MCQ input: keeps a review mark, otherwise ANSWERED."""
        option = option.strip().upper()
        if option not in MCQ_OPTIONS:
            raise ValidationError(
                f"Invalid option {option!r}", "Please choose one of A, B, C or D."
            )
        return self.update(
            question_id,
            selected_option=option,
            status=self._answered_status(question_id),
        )

    def enter_integer(self, question_id: str, text: str) -> Answer:
        """Integer input: empty text clears, otherwise must be a whole number."""
        text = text.strip()
        if text == "":
            return self.update(
                question_id, integer_answer=None, status=AnswerStatus.NOT_ANSWERED
            )
        if not INTEGER_PATTERN.match(text):
            raise ValidationError(
                f"Invalid integer {text!r}", "Please enter a whole number."
            )
        return self.update(
            question_id,
            integer_answer=int(text),
            status=self._answered_status(question_id),
        )

    def mark_for_review(self, question_id: str) -> Answer:
        return self.update(question_id, status=AnswerStatus.MARKED_FOR_REVIEW)

    def clear(self, question_id: str) -> Answer:
        return self.update(
            question_id,
            selected_option=None,
            integer_answer=None,
            status=AnswerStatus.NOT_ANSWERED,
        )

    def _answered_status(self, question_id: str) -> AnswerStatus:
        if self.status_of(question_id) == AnswerStatus.MARKED_FOR_REVIEW:
            return AnswerStatus.MARKED_FOR_REVIEW
        return AnswerStatus.ANSWERED

    # ------------------------------------------------------------------
    # Read models
    # ------------------------------------------------------------------
    def display_status(self, question_id: str) -> str:
        """Palette label, including the derived answered-and-marked state."""
        answer = self._answers.get(question_id)
        if answer is None:
            return "Not Visited"
        if answer.answered_and_marked:
            return "Answered & Marked for Review"
        return {
            AnswerStatus.NOT_VISITED: "Not Visited",
            AnswerStatus.NOT_ANSWERED: "Not Answered",
            AnswerStatus.ANSWERED: "Answered",
            AnswerStatus.MARKED_FOR_REVIEW: "Marked for Review",
        }[answer.status]

    def payload(self) -> List[Dict[str, Any]]:
        """Snapshot for sync/submit requests."""
        return [answer.to_payload() for answer in self._answers.values()]

    def status_counts(self, sections: List[Section]) -> Dict[str, int]:
        """
        Palette counts. Answered-and-marked questions count both as
        ANSWERED_AND_MARKED and ANSWERED.
        """
        counts = {status.value: 0 for status in AnswerStatus}
        counts["ANSWERED_AND_MARKED"] = 0
        for section in sections:
            for question in section.questions:
                answer = self._answers.get(question.id)
                if answer is not None and answer.answered_and_marked:
                    counts["ANSWERED_AND_MARKED"] += 1
                    counts[AnswerStatus.ANSWERED.value] += 1
                else:
                    counts[self.status_of(question.id).value] += 1
        return counts

    def section_summary(self, section: Section) -> Dict[str, int]:
        """Submit-confirmation counts for one section."""
        stats = {
            "total": len(section.questions),
            "answered": 0,
            "not_answered": 0,
            "marked_for_review": 0,
            "not_visited": 0,
        }
        for question in section.questions:
            answer = self._answers.get(question.id)
            status = self.status_of(question.id)
            if status == AnswerStatus.ANSWERED:
                stats["answered"] += 1
            elif status == AnswerStatus.NOT_ANSWERED:
                stats["not_answered"] += 1
            elif status == AnswerStatus.MARKED_FOR_REVIEW:
                stats["marked_for_review"] += 1
                if answer is not None and answer.has_value:
                    stats["answered"] += 1
            else:
                stats["not_visited"] += 1
        return stats
