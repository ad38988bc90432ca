import logging

from fastapi import APIRouter, Depends, File, UploadFile
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse

from ...schemas import UploadResult
from ...services.photo_storage import InvalidImageError, PhotoStorage
from ..deps import get_storage

logger = logging.getLogger("ava_coach.api.upload")

router = APIRouter(prefix="/api", tags=["upload"])


@router.post("/upload")
async def upload_image(
    file: UploadFile = File(...),
    storage: PhotoStorage = Depends(get_storage),
):
    payload = await file.read()
    if not payload:
        return JSONResponse(status_code=400, content={"error": "No image provided"})

    try:
        filename, size = await run_in_threadpool(storage.save, payload)
    except InvalidImageError as e:
        logger.warning("Rejected upload %s: %s", file.filename, e)
        return JSONResponse(status_code=400, content={"error": str(e)})

    logger.info("Stored upload %s as %s (%d bytes)", file.filename, filename, size)
    return UploadResult(url=storage.url_for(filename), filename=filename, size=size).model_dump()
