from __future__ import annotations

from fastapi import APIRouter
from fastapi.responses import FileResponse

from avatar_welcome.config import settings
from avatar_welcome.errors import NotFoundError
from avatar_welcome.security import resolve_upload_path
from avatar_welcome.services.uploads import media_type_for

router = APIRouter(prefix="/api/files", tags=["files"])

CACHE_CONTROL = "public, max-age=31536000"


@router.get("/avatars/{filename:path}")
def serve_avatar(filename: str) -> FileResponse:
    path = resolve_upload_path(settings.upload_dir, filename)
    if not path.is_file():
        raise NotFoundError("File not found")
    return FileResponse(path, media_type=media_type_for(path), headers={"Cache-Control": CACHE_CONTROL})
