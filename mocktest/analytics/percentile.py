"""
Score -> percentile/rank estimate from a published score table.

The table is configuration data (JSON); the bundled one is JEE Mains 2024.
"""

import json
from pathlib import Path
from typing import List, Optional, Union

from pydantic import BaseModel, Field

from mocktest.config import settings
from mocktest.logger import setup_logger

logger = setup_logger(__name__)

DEFAULT_TABLE = Path(__file__).parent / "data" / "jee_mains_2024.json"
NOT_AVAILABLE = "Not Available"
NO_DATA = "Data Not Available"


class Bucket(BaseModel):
    min_score: float = Field(alias="minScore")
    max_score: float = Field(alias="maxScore")
    percentile_range: str = Field(alias="percentileRange")
    rank_range: Optional[str] = Field(default=None, alias="rankRange")


class PercentileEstimate(BaseModel):
    percentile_range: str
    rank_range: str


class PercentileTable(BaseModel):
    name: str = ""
    max_score: float = Field(alias="maxScore")
    buckets: List[Bucket]

    @classmethod
    def load(cls, path: Optional[Union[str, Path]] = None) -> "PercentileTable":
        path = Path(path or settings.percentile_table or DEFAULT_TABLE)
        table = cls.model_validate(json.loads(path.read_text(encoding="utf-8")))
        logger.debug(f"📊 Loaded percentile table {table.name!r} ({len(table.buckets)} buckets)")
        return table

    def lookup(self, marks: float) -> PercentileEstimate:
        """First bucket containing `marks`, scanning top-down."""
        if marks < 0:
            return PercentileEstimate(percentile_range="0", rank_range=NOT_AVAILABLE)
        if marks > self.max_score:
            return PercentileEstimate(percentile_range="100", rank_range="1")

        for bucket in self.buckets:
            low, high = sorted((bucket.min_score, bucket.max_score))
            if low <= marks <= high:
                return PercentileEstimate(
                    percentile_range=bucket.percentile_range,
                    rank_range=bucket.rank_range or NOT_AVAILABLE,
                )
        return PercentileEstimate(percentile_range=NO_DATA, rank_range=NO_DATA)
