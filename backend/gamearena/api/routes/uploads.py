import logging
import secrets
from pathlib import Path
from typing import Any

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile
from fastapi.responses import FileResponse
from sqlmodel import Session, select

from gamearena.api.deps import CurrentUser, get_db
from gamearena.core.config import settings
from gamearena.models import FileUploadPublic, StoredFile

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/uploads", tags=["uploads"])

# Raster formats only: SVG can carry script and is served from the API origin
IMAGE_EXTENSIONS = {
    "image/png": ".png",
    "image/jpeg": ".jpg",
    "image/gif": ".gif",
    "image/webp": ".webp",
}


def check_image(file: UploadFile, content: bytes) -> str:
    """Validates an uploaded image and returns the extension to store it under."""
    extension = IMAGE_EXTENSIONS.get(file.content_type or "")
    if extension is None:
        raise HTTPException(
            status_code=400, detail=f"Unsupported file type: {file.content_type}"
        )
    if not content:
        raise HTTPException(status_code=400, detail="Uploaded file is empty")
    if len(content) > settings.MAX_UPLOAD_BYTES:
        raise HTTPException(
            status_code=413,
            detail=f"File is larger than {settings.MAX_UPLOAD_BYTES} bytes",
        )
    return extension


def file_url(storage_name: str) -> str:
    return f"{settings.API_V1_STR}/uploads/{storage_name}"


@router.post("/", response_model=FileUploadPublic)
async def upload_file(
    *,
    session: Session = Depends(get_db),
    current_user: CurrentUser,
    file: UploadFile = File(...),
) -> Any:
    """
    Store an image (game logos, banners, tournament art) and return its URL.
    """
    content = await file.read()
    extension = check_image(file, content)

    storage_name = f"{secrets.token_hex(16)}{extension}"
    upload_dir = Path(settings.UPLOAD_DIR)
    upload_dir.mkdir(parents=True, exist_ok=True)
    (upload_dir / storage_name).write_bytes(content)

    stored = StoredFile(
        filename=file.filename or "upload",
        content_type=file.content_type or "application/octet-stream",
        size_bytes=len(content),
        storage_name=storage_name,
        owner_id=current_user.id,
    )
    session.add(stored)
    session.commit()
    session.refresh(stored)
    logger.info("Stored upload %s (%d bytes) for %s", storage_name, len(content), current_user.id)

    return FileUploadPublic(
        file_url=file_url(storage_name),
        filename=stored.filename,
        content_type=stored.content_type,
        size_bytes=stored.size_bytes,
    )


@router.get("/{storage_name}")
def read_file(storage_name: str, session: Session = Depends(get_db)) -> FileResponse:
    """
    Serve a stored upload. Public so image URLs work in plain <img> tags.
    """
    stored = session.exec(
        select(StoredFile).where(StoredFile.storage_name == storage_name)
    ).first()
    path = Path(settings.UPLOAD_DIR) / storage_name
    if not stored or not path.is_file():
        raise HTTPException(status_code=404, detail="File not found")
    return FileResponse(
        path,
        media_type=stored.content_type,
        filename=stored.filename,
        content_disposition_type="inline",
        headers={"X-Content-Type-Options": "nosniff"},
    )
