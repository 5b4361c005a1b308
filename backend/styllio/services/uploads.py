from __future__ import annotations

import io
from typing import Iterable, List

from PIL import Image, UnidentifiedImageError
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..exceptions import FileAccessDeniedError, InvalidUploadError, UploadNotFoundError
from ..models import UploadOwnership

MAX_FILE_SIZE = 10 * 1024 * 1024
VALID_IMAGE_TYPES = ("image/jpeg", "image/png", "image/webp")


def validate_image(data: bytes, content_type: str) -> None:
    if content_type not in VALID_IMAGE_TYPES:
        raise InvalidUploadError(f"Unsupported image type: {content_type}")
    if not data:
        raise InvalidUploadError("Empty file")
    if len(data) > MAX_FILE_SIZE:
        raise InvalidUploadError("Image file size exceeds 10MB limit")
    try:
        with Image.open(io.BytesIO(data)) as img:
            img.verify()
    except (UnidentifiedImageError, OSError, SyntaxError, ValueError):
        raise InvalidUploadError("File is not a valid image")


async def record_upload(
    db: AsyncSession,
    *,
    file_id: str,
    owner_id: str,
    filename: str | None,
    content_type: str,
    size: int,
) -> UploadOwnership:
    record = UploadOwnership(
        file_id=file_id,
        owner_id=owner_id,
        filename=filename,
        content_type=content_type,
        size=size,
    )
    db.add(record)
    await db.commit()
    await db.refresh(record)
    return record


async def require_owner(db: AsyncSession, file_id: str, user_id: str) -> UploadOwnership:
    res = await db.execute(select(UploadOwnership).filter(UploadOwnership.file_id == file_id))
    record = res.scalar_one_or_none()
    if not record:
        raise UploadNotFoundError(file_id)
    if record.owner_id != user_id:
        raise FileAccessDeniedError(file_id)
    return record


async def require_owner_of_all(db: AsyncSession, file_ids: Iterable[str], user_id: str) -> List[UploadOwnership]:
    return [await require_owner(db, file_id, user_id) for file_id in file_ids]


async def delete_record(db: AsyncSession, record: UploadOwnership) -> None:
    await db.delete(record)
    await db.commit()
