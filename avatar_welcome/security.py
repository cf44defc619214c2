from __future__ import annotations

import hashlib
import hmac
from pathlib import Path

from avatar_welcome.errors import AccessDeniedError


def _hex_hmac(secret: str, message: bytes) -> str:
    return hmac.new(secret.encode("utf-8"), message, hashlib.sha256).hexdigest()


def parse_whop_signature_header(header: str | None) -> tuple[str, str] | None:
    """Split ``t=<unix_ts>,v1=<hex_hmac>`` into ``(timestamp, signature)``."""
    if not header:
        return None
    parts: dict[str, str] = {}
    for item in header.split(","):
        key, sep, value = item.strip().partition("=")
        if sep and key and value:
            parts[key] = value
    timestamp = parts.get("t")
    signature = parts.get("v1")
    if not timestamp or not signature:
        return None
    return timestamp, signature


def verify_whop_signature(*, body: bytes, header: str | None, secret: str) -> bool:
    parsed = parse_whop_signature_header(header)
    if parsed is None:
        return False
    timestamp, supplied = parsed
    expected = _hex_hmac(secret, timestamp.encode("utf-8") + b"." + body)
    return hmac.compare_digest(expected.encode("utf-8"), supplied.lower().encode("utf-8"))


def verify_heygen_signature(*, body: bytes, supplied: str | None, secret: str) -> bool:
    if not supplied:
        return False
    expected = _hex_hmac(secret, body)
    return hmac.compare_digest(expected.encode("utf-8"), supplied.strip().lower().encode("utf-8"))


def resolve_upload_path(upload_dir: Path, filename: str) -> Path:
    """Resolve ``filename`` inside ``upload_dir``; anything escaping it is denied."""
    if not filename or "\x00" in filename:
        raise AccessDeniedError("Access denied")
    segments = filename.replace("\\", "/").split("/")
    if ".." in segments or Path(filename).is_absolute():
        raise AccessDeniedError("Access denied")
    root = upload_dir.resolve()
    candidate = (root / filename).resolve()
    try:
        candidate.relative_to(root)
    except ValueError as exc:
        raise AccessDeniedError("Access denied") from exc
    return candidate
