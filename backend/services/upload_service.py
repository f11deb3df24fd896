"""
Cover image storage on local disk.

Files land in `settings.upload_dir` under a random name and are served by the
`/uploads` static mount. Books store only the file name.
"""
import logging
import os

from fastapi import UploadFile

from config import settings
from services.async_executor import run_blocking
from utils.validators import safe_upload_name, validate_image_upload

logger = logging.getLogger(__name__)


def _write_file(path: str, data: bytes) -> None:
    os.makedirs(os.path.dirname(path), exist_ok=True)
    with open(path, "wb") as fh:
        fh.write(data)


def _remove_file(path: str) -> bool:
    try:
        os.remove(path)
        return True
    except FileNotFoundError:
        return False


def is_stored_upload(item_image: str | None) -> bool:
    """True for names we wrote ourselves (not external URLs)."""
    return bool(item_image) and not item_image.startswith(("http://", "https://", "/"))


async def save_cover(upload: UploadFile) -> str:
    """Validate and store an uploaded cover. Returns the stored file name."""
    # Read one byte past the limit so oversize files are detected without buffering them all
    data = await upload.read(settings.max_upload_bytes + 1)
    validate_image_upload(upload.filename, upload.content_type, len(data), settings.max_upload_bytes)

    name = safe_upload_name(upload.filename)
    await run_blocking(_write_file, os.path.join(settings.upload_dir, name), data)
    logger.info(f"Stored cover image {name} ({len(data)} bytes)")
    return name


async def remove_cover(item_image: str | None) -> bool:
    if not is_stored_upload(item_image):
        return False
    path = os.path.join(settings.upload_dir, os.path.basename(item_image))
    removed = await run_blocking(_remove_file, path)
    if removed:
        logger.info(f"Removed cover image {item_image}")
    return removed
