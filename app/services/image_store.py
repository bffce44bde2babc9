import logging
import os
import re
import time
from typing import Optional

import aiofiles
import aiofiles.os
from fastapi import UploadFile

from app.config import settings
from app.exceptions import UploadRejected, StorageFailure

log = logging.getLogger("uvicorn")

IMAGE_EXTENSION = ".jpg"
FILENAME_PREFIX = "pokemon"

def _slugify(name: str) -> str:
    slug = re.sub(r"[^A-Za-z0-9_-]+", "-", name.strip()).strip("-")
    return slug or "unnamed"

def image_path(filename: str, upload_dir: Optional[str] = None) -> str:
    # basename keeps stored names inside the flat asset directory
    return os.path.join(upload_dir or settings.upload_dir, os.path.basename(filename))

def _too_large(size: int, max_size: int) -> UploadRejected:
    return UploadRejected(
        f"Image size {size} bytes exceeds the maximum of {max_size // 1024} KB",
        context={"size": size, "max_size": max_size},
    )

def validate_upload(content_type: Optional[str], content: bytes, max_size: Optional[int] = None) -> None:
    max_size = max_size or settings.max_image_size
    if not content_type or not content_type.startswith("image/"):
        raise UploadRejected(
            f"File type '{content_type}' is not allowed, an image is required",
            context={"content_type": content_type},
        )
    if not content:
        raise UploadRejected("Uploaded image is empty")
    if len(content) > max_size:
        raise _too_large(len(content), max_size)

async def read_upload(upload: UploadFile, max_size: Optional[int] = None) -> bytes:
    """
    Read and validate an uploaded image.

    The declared size is checked before reading, and at most one byte past the
    limit is ever read, so oversized uploads are never buffered whole.
    """
    max_size = max_size or settings.max_image_size
    try:
        if upload.size is not None and upload.size > max_size:
            raise _too_large(upload.size, max_size)
        content = await upload.read(max_size + 1)
    finally:
        await upload.close()
    validate_upload(upload.content_type, content, max_size)
    return content

def build_image_filename(name: str, user_id: int, now_ms: Optional[int] = None) -> str:
    if now_ms is None:
        now_ms = int(time.time() * 1000)
    return f"{now_ms}_{FILENAME_PREFIX}_{_slugify(name)}_{user_id}{IMAGE_EXTENSION}"

async def store_image(content: bytes, name: str, user_id: int, upload_dir: Optional[str] = None) -> str:
    filename = build_image_filename(name, user_id)
    path = image_path(filename, upload_dir)
    log.info(f"[ImageStore] Writing {len(content)} bytes to {path}")
    try:
        await aiofiles.os.makedirs(os.path.dirname(path) or ".", exist_ok=True)
        # "wb" overwrites an existing file with the same name
        async with aiofiles.open(path, "wb") as f:
            await f.write(content)
    except OSError as e:
        log.error(f"[ImageStore] Failed to store image {filename}: {e}", exc_info=True)
        raise StorageFailure("Failed to store uploaded image", context={"path": path}) from e
    return filename

async def delete_image(filename: Optional[str], upload_dir: Optional[str] = None) -> bool:
    """Remove a stored image. Failures are logged and never raised."""
    if not filename:
        return False
    path = image_path(filename, upload_dir)
    try:
        await aiofiles.os.remove(path)
        log.info(f"[ImageStore] Removed image {path}")
        return True
    except FileNotFoundError:
        log.warning(f"[ImageStore] Image {path} already missing, nothing to remove")
    except OSError as e:
        log.error(f"[ImageStore] Could not remove image {path}: {e}")
    return False

def schedule_image_removal(filename: Optional[str]) -> None:
    """Queue removal of a stale image on the worker; never blocks the request."""
    if not filename:
        return
    from app.worker.tasks import remove_image_task

    try:
        task = remove_image_task.delay(filename)
        log.info(f"[ImageStore] Removal of {filename} queued: {task.id}")
    except Exception as e:
        log.error(f"[ImageStore] Failed to queue removal of {filename}: {e}", exc_info=True)
