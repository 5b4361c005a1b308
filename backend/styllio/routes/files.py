"""
File routes - upload, view and delete user photos before checkout
"""
import asyncio
import io
import uuid

from fastapi import APIRouter, Depends, File, UploadFile
from fastapi.responses import StreamingResponse
from sqlalchemy.ext.asyncio import AsyncSession

from ..auth import get_current_user_id
from ..db import get_db
from ..logger import logger
from ..schemas import DeleteFileResponse, UploadResponse
from ..services import storage, uploads

router = APIRouter(prefix="/files", tags=["Files"])

@router.post("", response_model=UploadResponse, status_code=201)
async def upload_file(
    file: UploadFile = File(...),
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    """Upload a photo and record the caller as its owner"""
    content_type = file.content_type or ""
    data = await file.read(uploads.MAX_FILE_SIZE + 1)
    uploads.validate_image(data, content_type)

    file_id = uuid.uuid4().hex
    await asyncio.to_thread(storage.put_file, io.BytesIO(data), file_id, content_type)
    await uploads.record_upload(
        db,
        file_id=file_id,
        owner_id=user_id,
        filename=file.filename,
        content_type=content_type,
        size=len(data),
    )

    logger.info(
        "Upload stored",
        extra={"file_id": file_id, "user_id": user_id, "size": len(data), "content_type": content_type},
    )
    return UploadResponse(
        fileId=file_id,
        fileUrl=storage.file_url(file_id),
        name=file.filename,
        size=len(data),
        type=content_type,
    )

@router.get("/{file_id}")
async def view_file(
    file_id: str,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    """Stream an uploaded photo back to its owner"""
    await uploads.require_owner(db, file_id, user_id)
    chunks, content_type, length = await asyncio.to_thread(storage.open_file, file_id)

    headers = {"Cache-Control": "private, max-age=0, must-revalidate"}
    if length is not None:
        headers["Content-Length"] = str(length)
    return StreamingResponse(chunks, media_type=content_type, headers=headers)

@router.delete("/{file_id}", response_model=DeleteFileResponse)
async def delete_file(
    file_id: str,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    """Delete an uploaded photo"""
    record = await uploads.require_owner(db, file_id, user_id)
    await asyncio.to_thread(storage.delete_file, file_id)
    await uploads.delete_record(db, record)

    logger.info("Upload deleted", extra={"file_id": file_id, "user_id": user_id})
    return DeleteFileResponse(success=True, message="File deleted successfully")
