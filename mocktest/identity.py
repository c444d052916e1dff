"""
Locally stored candidate identity (name and photo).

Plain JSON on disk: not secured and not tied to a session.
"""

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from mocktest.config import settings
from mocktest.logger import setup_logger

logger = setup_logger(__name__)


@dataclass
class Candidate:
    name: str
    image: Optional[str] = None


class CandidateStore:
    def __init__(self, path: Optional[Path] = None) -> None:
        self.path = Path(path or settings.identity_file)

    def load(self) -> Optional[Candidate]:
        if not self.path.exists():
            return None
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            logger.warning(f"⚠️ Could not read candidate identity: {e}")
            return None
        name = data.get("candidateName")
        if not name:
            return None
        return Candidate(name=name, image=data.get("candidateImage"))

    def save(self, candidate: Candidate) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        payload = {"candidateName": candidate.name, "candidateImage": candidate.image}
        self.path.write_text(json.dumps(payload), encoding="utf-8")
        logger.debug(f"Saved candidate identity: {candidate.name}")

    def clear(self) -> None:
        if self.path.exists():
            self.path.unlink()
