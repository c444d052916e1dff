"""
Editable test drafts and their multipart encoding.
"""

import json
import uuid
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple, Union

from mocktest.authoring.images import ImageFile, ImageRef, load_bulk_images
from mocktest.models import QuestionType, Test, TestDraftRequest
from mocktest.session.answers import MCQ_OPTIONS
from mocktest.utils.exceptions import ValidationError

IMAGE_FIELDS = ("question_image", "solution_image")
_WIRE_NAMES = {"question_image": "questionImage", "solution_image": "solutionImage"}


def _local_id() -> str:
    return f"q-{uuid.uuid4().hex[:12]}"


@dataclass
class QuestionDraft:
    question_image: Optional[ImageRef] = None
    solution_image: Optional[ImageRef] = None
    correct_option: Optional[str] = "A"
    correct_integer: Optional[int] = None
    uid: str = field(default_factory=_local_id)


@dataclass
class SectionDraft:
    name: str
    question_type: QuestionType = QuestionType.MCQ
    questions: List[QuestionDraft] = field(default_factory=list)


@dataclass
class TestDraft:
    """Test being authored. Sent to the backend as multipart form data."""

    __test__ = False  # not a pytest class

    name: str = ""
    hours: int = 3
    minutes: int = 0
    sections: List[SectionDraft] = field(
        default_factory=lambda: [SectionDraft("Physics")]
    )
    editing_id: Optional[str] = None

    @property
    def duration_minutes(self) -> int:
        return self.hours * 60 + self.minutes

    @classmethod
    def from_test(cls, test: Test) -> "TestDraft":
        """Load an existing test for editing; images stay as server URLs."""
        return cls(
            name=test.name,
            hours=test.duration // 60,
            minutes=test.duration % 60,
            sections=[
                SectionDraft(
                    name=section.name,
                    question_type=section.question_type,
                    questions=[
                        QuestionDraft(
                            question_image=q.question_image,
                            solution_image=q.solution_image,
                            correct_option=q.correct_option,
                            correct_integer=q.correct_integer,
                        )
                        for q in section.questions
                    ],
                )
                for section in test.sections
            ],
            editing_id=test.id,
        )

    @classmethod
    def from_request(cls, body: TestDraftRequest) -> "TestDraft":
        """
        Build a draft from the creator service's JSON body. `*_file` fields
        name local images to upload; plain fields keep server URLs.
        """
        if not body.sections:
            raise ValidationError(
                "Draft without sections", "At least one section is required"
            )

        def image(url: Optional[str], path: Optional[str]) -> Optional[ImageRef]:
            return ImageFile.from_path(path) if path else url

        return cls(
            name=body.name,
            hours=body.hours,
            minutes=body.minutes,
            sections=[
                SectionDraft(
                    name=section.name,
                    question_type=section.question_type,
                    questions=[
                        QuestionDraft(
                            question_image=image(q.question_image, q.question_image_file),
                            solution_image=image(q.solution_image, q.solution_image_file),
                            correct_option=q.correct_option,
                            correct_integer=q.correct_integer,
                        )
                        for q in section.questions
                    ],
                )
                for section in body.sections
            ],
            editing_id=body.editing_id,
        )

    # ------------------------------------------------------------------
    # Editing
    # ------------------------------------------------------------------
    def add_section(self) -> SectionDraft:
        section = SectionDraft(f"Section {len(self.sections) + 1}")
        self.sections.append(section)
        return section

    def remove_section(self, index: int) -> None:
        if len(self.sections) <= 1:
            raise ValidationError(
                "Cannot delete the last section", "At least one section is required"
            )
        del self.sections[index]

    def add_question(self, section_index: int) -> QuestionDraft:
        question = QuestionDraft()
        self.sections[section_index].questions.append(question)
        return question

    def remove_question(self, section_index: int, question_index: int) -> None:
        del self.sections[section_index].questions[question_index]

    def set_image(
        self,
        section_index: int,
        question_index: int,
        field_name: str,
        image: Optional[ImageRef],
    ) -> None:
        if field_name not in IMAGE_FIELDS:
            raise ValidationError(f"Unknown image field {field_name!r}")
        question = self.sections[section_index].questions[question_index]
        setattr(question, field_name, image)

    def assign_bulk_images(
        self,
        section_index: int,
        paths: Sequence[Union[str, Path]],
        field_name: str = "question_image",
    ) -> None:
        """One file per question of the section, in order."""
        if field_name not in IMAGE_FIELDS:
            raise ValidationError(f"Unknown image field {field_name!r}")
        questions = self.sections[section_index].questions
        images = load_bulk_images(paths, len(questions))
        for question, image in zip(questions, images):
            setattr(question, field_name, image)

    # ------------------------------------------------------------------
    # Validation & encoding
    # ------------------------------------------------------------------
    def validate(self, draft: bool = False) -> None:
        """
        Raises:
            ValidationError: first problem found, with a dialog message
        """
        if not self.name.strip():
            raise ValidationError("Missing test name", "Please enter test name")
        if draft:
            return
        if any(not section.questions for section in self.sections):
            raise ValidationError(
                "Empty section", "Each section must have at least one question"
            )
        for section in self.sections:
            for number, question in enumerate(section.questions, start=1):
                where = f"{section.name} question {number}"
                if question.question_image is None:
                    raise ValidationError(
                        f"{where}: missing image",
                        f"Please add the question image for {where}",
                    )
                if section.question_type == QuestionType.MCQ:
                    if question.correct_option not in MCQ_OPTIONS:
                        raise ValidationError(
                            f"{where}: missing option",
                            f"Please choose the correct option for {where}",
                        )
                elif question.correct_integer is None:
                    raise ValidationError(
                        f"{where}: missing answer",
                        f"Please enter the correct answer for {where}",
                    )

    def to_form(
        self, draft: bool = False
    ) -> Tuple[Dict[str, str], List[Tuple[str, Tuple[str, bytes, str]]]]:
        """
        Multipart body: name, duration (minutes) and a sections JSON without
        local ids. New images go as files keyed by their position.
        """
        sections = []
        files = []
        for s_idx, section in enumerate(self.sections):
            questions = []
            for q_idx, question in enumerate(section.questions):
                entry = {
                    "correctOption": question.correct_option,
                    "correctInteger": question.correct_integer,
                }
                for field_name in IMAGE_FIELDS:
                    wire = _WIRE_NAMES[field_name]
                    image = getattr(question, field_name)
                    if isinstance(image, ImageFile):
                        entry[wire] = None
                        files.append(
                            (
                                f"sections[{s_idx}].questions[{q_idx}].{wire}",
                                image.as_upload(),
                            )
                        )
                    else:
                        entry[wire] = image
                questions.append(entry)
            sections.append(
                {
                    "name": section.name,
                    "questionType": section.question_type.value,
                    "questions": questions,
                }
            )

        data = {
            "name": self.name,
            "duration": str(self.duration_minutes),
            "sections": json.dumps(sections),
        }
        if draft:
            data["isDraft"] = "true"
        return data, files
