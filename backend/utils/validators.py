"""
Input validation utilities for the BookNest API.

Reusable validators for emails and uploaded cover images.
"""
import os
import re
import uuid

from domain.constants import ALLOWED_IMAGE_EXTENSIONS
from domain.errors import ValidationError

_SAFE_NAME_RE = re.compile(r"[^A-Za-z0-9._-]+")


def normalize_email(email: str) -> str:
    """Emails are stored trimmed and lowercased."""
    return (email or "").strip().lower()


def file_extension(filename: str | None) -> str:
    if not filename or "." not in filename:
        return ""
    return filename.rsplit(".", 1)[1].lower()


def validate_image_upload(filename: str | None, content_type: str | None, size: int, max_bytes: int) -> str:
    """
    Validate an uploaded cover image.

    Args:
        filename: Client-supplied file name
        content_type: Client-supplied MIME type
        size: Number of bytes received
        max_bytes: Upper bound from settings

    Returns:
        The lowercased file extension

    Raises:
        ValidationError(400) on a non-image type, a bad extension, an empty file,
        or a file above the size limit
    """
    if not content_type or not content_type.startswith("image/"):
        raise ValidationError("Only image files are allowed", field="itemImage")

    ext = file_extension(filename)
    if ext not in ALLOWED_IMAGE_EXTENSIONS:
        allowed = ", ".join(sorted(ALLOWED_IMAGE_EXTENSIONS))
        raise ValidationError(f"Unsupported image extension '{ext or '?'}' (allowed: {allowed})", field="itemImage")

    if size <= 0:
        raise ValidationError("Uploaded image is empty", field="itemImage")
    if size > max_bytes:
        raise ValidationError(
            f"Image too large: {size} bytes (max {max_bytes})",
            field="itemImage",
        )
    return ext


def safe_upload_name(filename: str | None) -> str:
    """
    Build a collision-free storage name that keeps a sanitised stem.

    Path components and unusual characters from the client name are dropped.
    """
    base = os.path.basename(filename or "")
    stem, _, _ = base.rpartition(".")
    stem = _SAFE_NAME_RE.sub("-", stem or base).strip("-.")[:40] or "cover"
    ext = file_extension(base) or "bin"
    return f"{uuid.uuid4().hex}-{stem}.{ext}"
