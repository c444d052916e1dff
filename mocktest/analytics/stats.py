"""
Post-test analysis of a completed attempt.

Answers carry the server's grading (`is_correct`, `marks_awarded`); an
answer with `is_correct` of None, or no answer at all, is unattempted.
"""

from typing import Dict, List, Optional, Sequence

import pandas as pd
from pydantic import BaseModel, Field

from mocktest.analytics.percentile import PercentileEstimate, PercentileTable
from mocktest.logger import setup_logger
from mocktest.models import Answer, Attempt, Question, Section
from mocktest.utils.exceptions import ValidationError
from mocktest.utils.helpers import format_duration

logger = setup_logger(__name__)

SUBJECT_PREFIXES = (
    ("physics", "Physics"),
    ("chemistry", "Chemistry"),
    ("mathematics", "Mathematics"),
    ("maths", "Mathematics"),
)


class SectionStats(BaseModel):
    total: int = 0
    correct: int = 0
    wrong: int = 0
    unattempted: int = 0
    marks: float = 0
    max_marks: float = 0
    total_time: int = 0
    accuracy: float = 0.0

    @property
    def attempted(self) -> int:
        return self.correct + self.wrong

    @property
    def formatted_time(self) -> str:
        return format_duration(self.total_time)


class OverallStats(SectionStats):
    total_marks: float = 0
    percentage: float = 0.0


class SubjectGroup(BaseModel):
    name: str
    sections: List[str] = Field(default_factory=list)
    stats: SectionStats


class AttemptReport(BaseModel):
    attempt_id: str
    candidate_name: str
    overall: OverallStats
    sections: Dict[str, SectionStats]
    subjects: Dict[str, SubjectGroup]
    percentile: PercentileEstimate


def _accuracy(correct: int, attempted: int) -> float:
    if attempted == 0:
        return 0.0
    return round(correct / attempted * 100, 2)


def _answer_index(answers: Sequence[Answer]) -> Dict[str, Answer]:
    return {a.question_id: a for a in answers}


def question_stats(questions: Sequence[Question], answers: Sequence[Answer]) -> SectionStats:
    """Correct / wrong / unattempted counts and marks for a set of questions."""
    by_id = _answer_index(answers)
    stats = SectionStats(total=len(questions))

    for question in questions:
        stats.max_marks += question.marks
        answer = by_id.get(question.id)
        if answer is None or answer.is_correct is None:
            stats.unattempted += 1
        else:
            if answer.is_correct:
                stats.correct += 1
            else:
                stats.wrong += 1
            # wrong answers can carry negative marks
            stats.marks += answer.marks_awarded or 0
        if answer is not None and answer.time_spent:
            stats.total_time += answer.time_spent

    stats.accuracy = _accuracy(stats.correct, stats.attempted)
    return stats


def section_stats(section: Section, answers: Sequence[Answer]) -> SectionStats:
    return question_stats(section.questions, answers)


def overall_stats(attempt: Attempt) -> OverallStats:
    """Totals across all sections; percentage is of the test's maximum marks."""
    if attempt.test is None:
        raise ValidationError(f"Attempt {attempt.id} has no test attached")

    overall = OverallStats(total_marks=attempt.total_marks)
    for section in attempt.test.sections:
        stats = section_stats(section, attempt.answers)
        overall.total += stats.total
        overall.correct += stats.correct
        overall.wrong += stats.wrong
        overall.unattempted += stats.unattempted
        overall.marks += stats.marks
        overall.max_marks += stats.max_marks
        overall.total_time += stats.total_time

    max_marks = attempt.test.total_marks or overall.max_marks
    if max_marks:
        overall.percentage = round(attempt.total_marks / max_marks * 100, 2)
    overall.accuracy = _accuracy(overall.correct, overall.attempted)
    return overall


def extract_subject(section_name: Optional[str]) -> str:
    """'Physics Section A' -> 'Physics', 'Maths - Integer' -> 'Mathematics'."""
    if not section_name or not section_name.strip():
        return "Unknown"
    lowered = section_name.strip().lower()
    for prefix, subject in SUBJECT_PREFIXES:
        if lowered.startswith(prefix):
            return subject
    return section_name.split()[0]


def group_by_subject(
    sections: Sequence[Section], answers: Sequence[Answer]
) -> Dict[str, SubjectGroup]:
    grouped: Dict[str, List[Section]] = {}
    for section in sections:
        grouped.setdefault(extract_subject(section.name), []).append(section)

    return {
        subject: SubjectGroup(
            name=subject,
            sections=[s.name for s in members],
            stats=question_stats(
                [q for s in members for q in s.questions], answers
            ),
        )
        for subject, members in grouped.items()
    }


def has_multiple_subjects(sections: Sequence[Section]) -> bool:
    return len({extract_subject(s.name) for s in sections}) > 1


def question_frame(sections: Sequence[Section], answers: Sequence[Answer]) -> pd.DataFrame:
    """One row per question, numbered across sections, for charting."""
    by_id = _answer_index(answers)
    rows = []
    number = 1
    for section in sections:
        subject = extract_subject(section.name)
        for question in section.questions:
            answer = by_id.get(question.id)
            if answer is None or answer.is_correct is None:
                outcome = "Unattempted"
            else:
                outcome = "Correct" if answer.is_correct else "Wrong"
            rows.append(
                {
                    "question": number,
                    "section": section.name,
                    "subject": subject,
                    "marks": (answer.marks_awarded or 0) if answer else 0,
                    "max_marks": question.marks,
                    "time_spent": (answer.time_spent or 0) if answer else 0,
                    "outcome": outcome,
                }
            )
            number += 1
    return pd.DataFrame(
        rows,
        columns=["question", "section", "subject", "marks", "max_marks", "time_spent", "outcome"],
    )


def build_report(attempt: Attempt, table: Optional[PercentileTable] = None) -> AttemptReport:
    """Everything the analysis page shows for one completed attempt."""
    if attempt.test is None:
        raise ValidationError(f"Attempt {attempt.id} has no test attached")

    table = table or PercentileTable.load()
    overall = overall_stats(attempt)
    report = AttemptReport(
        attempt_id=attempt.id,
        candidate_name=attempt.candidate_name,
        overall=overall,
        sections={
            section.name: section_stats(section, attempt.answers)
            for section in attempt.test.sections
        },
        subjects=group_by_subject(attempt.test.sections, attempt.answers),
        percentile=table.lookup(attempt.total_marks),
    )
    logger.info(
        f"📊 Report for {attempt.id}: {overall.total_marks} marks, "
        f"{overall.percentage}% ({overall.accuracy}% accuracy)"
    )
    return report
