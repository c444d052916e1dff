"""
Candidate dashboard: available tests, past attempts, starting a test.
"""

from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from mocktest.api.client import ApiClient
from mocktest.identity import Candidate, CandidateStore
from mocktest.logger import setup_logger
from mocktest.models import Attempt, Test
from mocktest.utils.exceptions import (
    AttemptBlockedError,
    ResumeRequiredError,
    ValidationError,
)
from mocktest.utils.helpers import encode_image_base64, image_mime_type

logger = setup_logger(__name__)


def attempt_accuracy(attempt: Attempt) -> float:
    """Correct answers over attempted ones, as a percentage (1 decimal)."""
    correct = sum(1 for a in attempt.answers if a.is_correct is True)
    attempted = sum(1 for a in attempt.answers if a.is_correct is not None)
    if attempted == 0:
        return 0.0
    return round(correct / attempted * 100, 1)


class StudentDashboard:
    def __init__(self, api: ApiClient, store: Optional[CandidateStore] = None) -> None:
        self.api = api
        self.store = store or CandidateStore()

    @property
    def candidate(self) -> Optional[Candidate]:
        return self.store.load()

    def sign_in(self, name: str, image: Optional[Union[str, Path]] = None) -> Candidate:
        """`image` is a data URI, or the path of a photo file to embed as one."""
        if not name.strip():
            raise ValidationError("Missing candidate name", "Please enter your name first")
        image = image or None
        if isinstance(image, str) and not image.startswith("data:"):
            image = Path(image)
        if isinstance(image, Path):
            if not image_mime_type(image) or not image.is_file():
                raise ValidationError(
                    f"{image.name} is not an image",
                    "Please select a valid image file (JPEG, PNG, GIF)",
                )
            image = encode_image_base64(image)
        candidate = Candidate(name=name.strip(), image=image)
        self.store.save(candidate)
        return candidate

    def _require_candidate(self) -> Candidate:
        candidate = self.candidate
        if candidate is None:
            raise ValidationError("Missing candidate name", "Please enter your name first")
        return candidate

    async def overview(self) -> Dict[str, Any]:
        """Live tests not yet completed by the candidate, plus their attempts."""
        candidate = self._require_candidate()
        live_tests: List[Test] = await self.api.get_live_tests()
        attempts: List[Attempt] = await self.api.get_user_attempts(candidate.name)

        completed = {a.test_id for a in attempts if a.is_completed}
        available = [t for t in live_tests if t.id not in completed]
        return {
            "live_tests": available,
            "attempts": attempts,
            "accuracy": {a.id: attempt_accuracy(a) for a in attempts},
        }

    async def start_test(self, test_id: str, agreed: bool) -> Attempt:
        """
        Start an attempt after the instructions were accepted.

        Raises:
            ValidationError: instructions not accepted / no candidate
            ResumeRequiredError: a previous window was closed mid-test
            AttemptBlockedError: the server refused for another reason
        """
        if not agreed:
            raise ValidationError(
                "Instructions not accepted",
                "Please read and agree to all instructions before starting the test.",
            )
        candidate = self._require_candidate()
        try:
            attempt = await self.api.start_attempt(
                test_id, candidate.name, candidate.image
            )
        except ResumeRequiredError:
            logger.warning(f"⚠️ {candidate.name} needs resume approval for {test_id}")
            raise
        except AttemptBlockedError as e:
            logger.warning(f"⚠️ Cannot start test {test_id}: {e.user_message}")
            raise
        logger.info(f"🚀 Attempt {attempt.id} started for {candidate.name}")
        return attempt
