"""Image uploads stored on local disk and served under /uploads."""
import logging
import os
import secrets
import time
from typing import Iterable, List, Optional

from fastapi import UploadFile

import settings
from errors import UploadError

logger = logging.getLogger(__name__)


def ensure_upload_dir():
    os.makedirs(settings.UPLOAD_DIR, exist_ok=True)


def _unique_name(field: str, original: Optional[str]) -> str:
    ext = os.path.splitext(original or "")[1].lower()
    return f"{field}-{int(time.time() * 1000)}-{secrets.randbelow(10 ** 9)}{ext}"


def save_images(files: Optional[List[UploadFile]], field: str = "images",
                max_files: int = settings.MAX_PRODUCT_IMAGES) -> List[str]:
    """Validate and store uploaded images, returning their public URLs.

    Nothing is written unless every file passes validation.
    """
    files = [f for f in (files or []) if f is not None and f.filename]
    if not files:
        return []
    if len(files) > max_files:
        raise UploadError(f"Too many files. Maximum is {max_files}.")

    payloads = []
    for f in files:
        if not (f.content_type or "").startswith("image/"):
            raise UploadError("Only image files are allowed!")
        data = f.file.read(settings.MAX_UPLOAD_BYTES + 1)
        if len(data) > settings.MAX_UPLOAD_BYTES:
            raise UploadError(f"File too large. Maximum size is {settings.MAX_UPLOAD_BYTES // (1024 * 1024)}MB.")
        payloads.append((_unique_name(field, f.filename), data))

    ensure_upload_dir()
    urls = []
    for name, data in payloads:
        with open(os.path.join(settings.UPLOAD_DIR, name), "wb") as out:
            out.write(data)
        urls.append(f"{settings.UPLOAD_URL_PREFIX}/{name}")
    logger.info("Stored %d uploaded image(s)", len(urls))
    return urls


def delete_images(urls: Iterable[str]) -> int:
    removed = 0
    prefix = settings.UPLOAD_URL_PREFIX + "/"
    for url in urls or []:
        if not isinstance(url, str) or not url.startswith(prefix):
            continue
        name = os.path.basename(url[len(prefix):])
        path = os.path.join(settings.UPLOAD_DIR, name)
        try:
            os.remove(path)
            removed += 1
        except FileNotFoundError:
            logger.warning("Uploaded file already missing: %s", path)
    return removed
