from __future__ import annotations

import logging
import re
import time
from pathlib import Path

from avatar_welcome.config import settings
from avatar_welcome.errors import ValidationError

logger = logging.getLogger(__name__)

AVATAR_ROUTE_PREFIX = "/api/files/avatars"

_EXTENSION_RE = re.compile(r"^[A-Za-z0-9]{1,8}$")
_CONTENT_TYPE_EXTENSIONS = {
    "image/png": "png",
    "image/jpeg": "jpg",
    "image/jpg": "jpg",
    "image/gif": "gif",
    "image/webp": "webp",
}
AVATAR_MEDIA_TYPES = {
    ".png": "image/png",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".gif": "image/gif",
    ".webp": "image/webp",
}


def validate_upload(
    *,
    content: bytes,
    content_type: str | None,
    expected_prefix: str,
    max_bytes: int,
    label: str,
) -> None:
    if not content:
        raise ValidationError(f"No {label} file uploaded")
    if not content_type or not content_type.startswith(expected_prefix):
        raise ValidationError(f"Only {expected_prefix}* files are allowed for {label} uploads")
    if len(content) > max_bytes:
        raise ValidationError(f"{label.capitalize()} file exceeds the {max_bytes // (1024 * 1024)} MB limit")


def avatar_extension(original_name: str | None, content_type: str | None) -> str:
    suffix = Path(original_name or "").suffix.lstrip(".").lower()
    if suffix and _EXTENSION_RE.match(suffix):
        return suffix
    return _CONTENT_TYPE_EXTENSIONS.get(content_type or "", "png")


def avatar_public_url(filename: str) -> str:
    return f"{settings.public_base_url}{AVATAR_ROUTE_PREFIX}/{filename}"


def save_avatar(
    *,
    creator_id: str,
    content: bytes,
    original_name: str | None,
    content_type: str | None,
    upload_dir: Path | None = None,
) -> str:
    """Write the avatar under the upload directory and return its public URL."""
    validate_upload(
        content=content,
        content_type=content_type,
        expected_prefix="image/",
        max_bytes=settings.MAX_AVATAR_BYTES,
        label="avatar",
    )
    target_dir = upload_dir or settings.upload_dir
    target_dir.mkdir(parents=True, exist_ok=True)
    filename = f"avatar-{creator_id}-{int(time.time() * 1000)}.{avatar_extension(original_name, content_type)}"
    (target_dir / filename).write_bytes(content)
    logger.info("Saved avatar", extra={"creator_id": creator_id, "avatar_file": filename, "bytes": len(content)})
    return avatar_public_url(filename)


def media_type_for(path: Path) -> str:
    return AVATAR_MEDIA_TYPES.get(path.suffix.lower(), "application/octet-stream")
