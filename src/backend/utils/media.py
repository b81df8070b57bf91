# src/backend/utils/media.py
import os
import logging
import secrets
from pathlib import Path
from typing import Iterable, Optional

from fastapi import UploadFile, HTTPException

from src.backend.config import settings

logger = logging.getLogger(__name__)

MEDIA_URL = "/uploads"  # Public URL prefix

POD_COPY_EXTS = {".pdf": {"application/pdf"}, ".jpg": {"image/jpeg"}, ".jpeg": {"image/jpeg"}, ".png": {"image/png"}}
PROFILE_IMAGE_EXTS = {".jpg": {"image/jpeg"}, ".jpeg": {"image/jpeg"}, ".png": {"image/png"}, ".webp": {"image/webp"}}
WORD_EXTS = {
    ".docx": {"application/vnd.openxmlformats-officedocument.wordprocessingml.document"},
    ".doc": {"application/msword"},
}
CSV_EXTS = {".csv": {"text/csv", "application/vnd.ms-excel", "text/plain"}}


# ---------------------------------------------------------
# Helpers
# ---------------------------------------------------------
def get_media_root() -> Path:
    """
    Ensure the root directory exists and return it.
    """
    root = Path(settings.UPLOAD_DIR).resolve()
    root.mkdir(parents=True, exist_ok=True)
    return root


def normalize_subdir(subdir: str) -> str:
    """
    Clean input directory (strip slashes).
    """
    return subdir.strip().strip("/")


def ensure_subdir(subdir: str) -> Path:
    folder = get_media_root() / normalize_subdir(subdir)
    folder.mkdir(parents=True, exist_ok=True)
    return folder


async def read_upload(
    upload: Optional[UploadFile],
    *,
    allowed: dict,
    max_size_mb: int,
    label: str = "File",
) -> tuple[bytes, str]:
    """
    Validate extension, declared MIME type and size. Returns (bytes, ext).
    Browsers send octet-stream for some types, so the extension is authoritative.
    """
    if upload is None or not upload.filename:
        raise HTTPException(status_code=400, detail=f"{label} is required")

    ext = os.path.splitext(upload.filename)[1].lower()
    if ext not in allowed:
        raise HTTPException(
            status_code=400,
            detail=f"{label} must be one of: {', '.join(sorted(allowed))}",
        )
    ctype = (upload.content_type or "").lower()
    if ctype and ctype != "application/octet-stream" and ctype not in allowed[ext]:
        raise HTTPException(status_code=400, detail=f"Invalid file type for {label.lower()}")

    data: bytes = await upload.read()
    if not data:
        raise HTTPException(status_code=400, detail="Empty file")
    if len(data) > max_size_mb * 1024 * 1024:
        raise HTTPException(status_code=400, detail=f"{label} exceeds max size {max_size_mb} MB")
    return data, ext


# ---------------------------------------------------------
#    SAVE FILE UNDER A RANDOM NAME
# ---------------------------------------------------------
def save_media(subdir: str, data: bytes, ext: str) -> str:
    """
    Write bytes to <UPLOAD_DIR>/<subdir>/<random hex><ext>.
    Random names keep concurrent uploads from overwriting each other.
    Returns the public URL, e.g. /uploads/pod-copies/3f2a...c1.pdf
    """
    subdir_clean = normalize_subdir(subdir)
    folder: Path = ensure_subdir(subdir_clean)
    filename = f"{secrets.token_hex(16)}{ext}"
    file_path: Path = folder / filename

    try:
        # "xb" refuses to clobber an existing file
        with open(file_path, "xb") as fh:
            fh.write(data)
    except OSError as e:
        logger.exception(f"Failed to write media file {file_path}: {e}")
        raise HTTPException(status_code=500, detail="Could not save the file")

    logger.info(f"Saved media file: {file_path}")
    return f"{MEDIA_URL}/{subdir_clean}/{filename}"


def media_path(url: Optional[str]) -> Optional[Path]:
    """Filesystem path of a /uploads/... URL, or None when outside the root."""
    if not url or not url.startswith(MEDIA_URL + "/"):
        return None
    root = get_media_root()
    full = (root / url[len(MEDIA_URL):].lstrip("/")).resolve()
    if root not in full.parents:
        return None
    return full


def read_media(url: Optional[str]) -> bytes:
    path = media_path(url)
    if path is None or not path.is_file():
        raise HTTPException(status_code=404, detail="Stored file not found")
    return path.read_bytes()


def delete_media_file(url: Optional[str]) -> None:
    path = media_path(url)
    if path is None or not path.exists():
        return
    try:
        path.unlink()
        logger.info(f"Deleted media file: {path}")
    except OSError as e:
        logger.error(f"Error deleting media file {path}: {e}")
