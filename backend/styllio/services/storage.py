from __future__ import annotations

from typing import BinaryIO, Iterator

import boto3
from botocore.exceptions import ClientError

from ..config import settings
from ..exceptions import StorageError, UploadNotFoundError
from ..logger import logger


s3 = boto3.client(
    "s3",
    aws_access_key_id=settings.AWS_ACCESS_KEY_ID,
    aws_secret_access_key=settings.AWS_SECRET_ACCESS_KEY,
    region_name=settings.AWS_REGION_NAME,
    endpoint_url=settings.AWS_ENDPOINT_URL,
)

UPLOAD_PREFIX = "uploads/"


def upload_key(file_id: str) -> str:
    return f"{UPLOAD_PREFIX}{file_id}"


def file_url(file_id: str) -> str:
    """
    Stable, publicly fetchable URL of an uploaded file.

    The style transfer worker downloads inputs from these URLs, so they must not
    expire the way presigned URLs do.
    """
    base = (settings.S3_PUBLIC_BASE_URL or f"{settings.AWS_ENDPOINT_URL.rstrip('/')}/{settings.S3_BUCKET_NAME}")
    return f"{base.rstrip('/')}/{upload_key(file_id)}"


def put_file(fileobj: BinaryIO, file_id: str, content_type: str) -> str:
    key = upload_key(file_id)
    try:
        s3.upload_fileobj(fileobj, settings.S3_BUCKET_NAME, key, ExtraArgs={"ContentType": content_type})
    except Exception as e:
        logger.error(f"Failed to upload file to S3: {e}", extra={"file_id": file_id})
        raise StorageError(f"Failed to upload file: {str(e)}")
    logger.info(f"Uploaded file to S3: {key}")
    return key


def open_file(file_id: str, chunk_size: int = 64 * 1024) -> tuple[Iterator[bytes], str, int | None]:
    """Return a chunk iterator for the stored object together with its content type and length."""
    key = upload_key(file_id)
    try:
        obj = s3.get_object(Bucket=settings.S3_BUCKET_NAME, Key=key)
    except ClientError as e:
        code = e.response.get("Error", {}).get("Code")
        if code in ("404", "NoSuchKey"):
            raise UploadNotFoundError(file_id)
        logger.error(f"Failed to read file from S3: {key}, error: {e}")
        raise StorageError("Failed to read file")
    body = obj["Body"]
    return (
        body.iter_chunks(chunk_size),
        obj.get("ContentType") or "application/octet-stream",
        obj.get("ContentLength"),
    )


def delete_file(file_id: str) -> None:
    key = upload_key(file_id)
    try:
        s3.delete_object(Bucket=settings.S3_BUCKET_NAME, Key=key)
    except Exception as e:
        logger.error(f"Failed to delete file from S3: {key}, error: {e}")
        raise StorageError("Failed to delete file")
    logger.info(f"Deleted file from S3: {key}")
