"""Serves objects from local storage at the URLs handed out by ObjectStorage.public_url."""
import mimetypes
from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import FileResponse

from app.core.exceptions import StorageError
from app.services.storage import ObjectStorage, get_storage

router = APIRouter()


@router.get("/{bucket}/{key:path}")
def get_file(bucket: str, key: str, storage: ObjectStorage = Depends(get_storage)):
    try:
        path = storage.local_path(bucket, key)
    except StorageError:
        raise HTTPException(status_code=404, detail="File not found")
    if not path.is_file():
        raise HTTPException(status_code=404, detail="File not found")

    media_type = mimetypes.guess_type(path.name)[0] or "application/octet-stream"
    return FileResponse(
        path,
        media_type=media_type,
        headers={"Cache-Control": "public, max-age=86400"},
    )
