"""
Common utility functions.
"""

import base64
from pathlib import Path

IMAGE_MIME_TYPES = {
    ".png": "image/png",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".gif": "image/gif",
    ".webp": "image/webp",
}


def format_clock(seconds: int) -> str:
    """Render a countdown as HH:MM:SS."""
    hours = seconds // 3600
    minutes = (seconds % 3600) // 60
    secs = seconds % 60
    return f"{hours:02d}:{minutes:02d}:{secs:02d}"


def format_duration(seconds: int) -> str:
    """
    Human readable time spent.

    Examples:
        45 -> "45s", 125 -> "2m 5s", 120 -> "2m", 3780 -> "1h 3m"
    """
    if seconds < 60:
        return f"{seconds}s"
    if seconds < 3600:
        minutes, rest = divmod(seconds, 60)
        return f"{minutes}m {rest}s" if rest > 0 else f"{minutes}m"
    hours = seconds // 3600
    minutes = (seconds % 3600) // 60
    return f"{hours}h {minutes}m"


def image_mime_type(path: Path) -> str:
    """MIME type for an image path, empty string if not a supported image."""
    return IMAGE_MIME_TYPES.get(path.suffix.lower(), "")


def encode_image_base64(image_path: Path) -> str:
    """
    Encode image file to base64 string.

    Args:
        image_path: Path to image file

    Returns:
        Base64 encoded string with data URI prefix
    """
    with open(image_path, "rb") as f:
        image_data = f.read()

    b64_data = base64.b64encode(image_data).decode("utf-8")
    mime_type = image_mime_type(image_path) or "image/png"

    return f"data:{mime_type};base64,{b64_data}"
