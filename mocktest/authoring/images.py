"""
Image inputs for question and solution images.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import List, Sequence, Union

from mocktest.logger import setup_logger
from mocktest.utils.exceptions import BulkSelectionError, ValidationError
from mocktest.utils.helpers import image_mime_type

logger = setup_logger(__name__)


@dataclass
class ImageFile:
    """An image picked, pasted or dropped by the test author."""

    filename: str
    content: bytes
    content_type: str

    @classmethod
    def from_path(cls, path: Union[str, Path]) -> "ImageFile":
        path = Path(path)
        content_type = image_mime_type(path)
        if not content_type or not path.is_file():
            raise ValidationError(
                f"{path.name} is not an image",
                "Please select a valid image file (JPEG, PNG, GIF)",
            )
        return cls(path.name, path.read_bytes(), content_type)

    @classmethod
    def from_bytes(cls, filename: str, content: bytes, content_type: str) -> "ImageFile":
        """Pasted clipboard data carries its own MIME type."""
        if not content_type.startswith("image/"):
            raise ValidationError(
                f"{filename} has type {content_type}",
                "Please select a valid image file (JPEG, PNG, GIF)",
            )
        return cls(filename, content, content_type)

    def as_upload(self):
        return (self.filename, self.content, self.content_type)


# Either a freshly picked file or the URL of an image already on the server
ImageRef = Union[ImageFile, str]


def load_bulk_images(
    paths: Sequence[Union[str, Path]], expected_count: int
) -> List[ImageFile]:
    """
    Load one image per question, in order.

    Raises:
        BulkSelectionError: wrong number of files and/or non-image files
    """
    paths = [Path(p) for p in paths]
    invalid = [p.name for p in paths if not image_mime_type(p)]
    wrong_count = len(paths) != expected_count

    if wrong_count and invalid:
        raise BulkSelectionError("mixedErrors", expected_count, len(paths), invalid)
    if wrong_count:
        raise BulkSelectionError("wrongCount", expected_count, len(paths))
    if invalid:
        raise BulkSelectionError("invalidFileType", expected_count, len(paths), invalid)

    logger.info(f"🖼️ Loaded {len(paths)} images for bulk assignment")
    return [ImageFile.from_path(p) for p in paths]
