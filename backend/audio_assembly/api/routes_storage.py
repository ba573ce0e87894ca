from fastapi import APIRouter, Depends, HTTPException, Query, status
from fastapi.responses import FileResponse
import logging

from ..exceptions import StorageError
from ..utils.storage import LocalBlobStorage
from .dependencies import get_blob_storage

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("/{object_path:path}")
async def get_signed_object(
    object_path: str,
    expires: int = Query(...),
    signature: str = Query(...),
    storage: LocalBlobStorage = Depends(get_blob_storage),
):
    """Serve a stored object to the holder of a valid signed URL."""
    if not storage.verify_signature(object_path, expires, signature):
        logger.warning(f"Rejected signed URL for '{object_path}' (expired or bad signature).")
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Invalid or expired signature.")

    try:
        file_path = storage.resolve(object_path)
    except StorageError:
        logger.warning(f"Potentially malicious object path '{object_path}' requested.")
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid object path.")

    if not file_path.is_file():
        logger.warning(f"Object '{object_path}' not found at path '{file_path}'.")
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Object not found.")

    media_type = "audio/mpeg" if file_path.suffix.lower() == ".mp3" else "application/octet-stream"
    logger.info(f"Serving object '{object_path}' with media type '{media_type}'.")
    return FileResponse(path=file_path, media_type=media_type, filename=file_path.name)
