import os
import random
import time
from typing import Any, Dict, List

import structlog
from fastapi import APIRouter, Depends, File, HTTPException, Request, UploadFile

import config
from auth import require_admin
from helpers import ok

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api/upload", tags=["upload"])

MAX_IMAGES = 10
CHUNK = 1024 * 1024


def _unique_name(field: str, original: str) -> str:
    ext = os.path.splitext(original or "")[1].lower()
    return f"{field}-{int(time.time() * 1000)}-{random.randint(0, 10**9)}{ext}"


def save_upload(request: Request, upload: UploadFile, field: str, allowed: List[str], max_size: int) -> Dict[str, Any]:
    if upload.content_type not in allowed:
        raise HTTPException(
            status_code=400,
            detail=f"File type {upload.content_type} not allowed. Allowed types: {', '.join(allowed)}",
        )

    os.makedirs(config.UPLOAD_DIR, exist_ok=True)
    filename = _unique_name(field, upload.filename)
    path = os.path.join(config.UPLOAD_DIR, filename)
    size = 0
    with open(path, "wb") as out:
        while True:
            chunk = upload.file.read(CHUNK)
            if not chunk:
                break
            size += len(chunk)
            if size > max_size:
                out.close()
                os.remove(path)
                raise HTTPException(status_code=413, detail=f"File too large (max {max_size} bytes)")
            out.write(chunk)

    logger.info("file_uploaded", filename=filename, size=size, mimetype=upload.content_type)
    return {
        "url": f"{str(request.base_url).rstrip('/')}/uploads/{filename}",
        "filename": filename,
        "size": size,
        "mimetype": upload.content_type,
    }


@router.post("/image")
def upload_image(request: Request, image: UploadFile = File(...), user=Depends(require_admin)):
    saved = save_upload(request, image, "image", config.ALLOWED_FILE_TYPES, config.MAX_FILE_SIZE)
    return ok(saved, "File uploaded successfully")


@router.post("/images")
def upload_images(request: Request, images: List[UploadFile] = File(...), user=Depends(require_admin)):
    if len(images) > MAX_IMAGES:
        raise HTTPException(status_code=400, detail=f"At most {MAX_IMAGES} files per upload")
    files: List[Dict[str, Any]] = []
    try:
        for image in images:
            files.append(save_upload(request, image, "images", config.ALLOWED_FILE_TYPES, config.MAX_FILE_SIZE))
    except HTTPException:
        # all or nothing: drop what this request already wrote
        for saved in files:
            path = os.path.join(config.UPLOAD_DIR, saved["filename"])
            if os.path.isfile(path):
                os.remove(path)
        logger.warning("upload_batch_rolled_back", removed=len(files))
        raise
    return ok({"files": files}, f"{len(files)} files uploaded successfully")


@router.post("/video")
def upload_video(request: Request, video: UploadFile = File(...), user=Depends(require_admin)):
    saved = save_upload(request, video, "video", config.ALLOWED_VIDEO_TYPES, config.MAX_VIDEO_FILE_SIZE)
    return ok(saved, "Video uploaded successfully")


@router.delete("/{filename}")
def delete_upload(filename: str, user=Depends(require_admin)):
    name = filename.strip()
    # bare names only, no path components
    if not name or os.path.basename(name) != name or name in (".", ".."):
        raise HTTPException(status_code=400, detail="Invalid filename")
    path = os.path.join(config.UPLOAD_DIR, name)
    if not os.path.isfile(path):
        raise HTTPException(status_code=404, detail="File not found")
    os.remove(path)
    logger.info("file_deleted", filename=name)
    return ok(message="File deleted successfully")
