from fastapi import HTTPException, Request
from fastapi.responses import JSONResponse
import traceback
from .logger import logger


class StyllioBaseException(Exception):
    """Base exception for the Styllio backend"""
    def __init__(self, message: str, code: str = "INTERNAL_ERROR", status_code: int = 500):
        self.message = message
        self.code = code
        self.status_code = status_code
        super().__init__(self.message)


class WebhookSignatureError(StyllioBaseException):
    """Raised when a payment notification fails signature verification"""
    def __init__(self, message: str = "Invalid webhook signature"):
        super().__init__(message, "INVALID_SIGNATURE", 400)


class WebhookPayloadError(StyllioBaseException):
    """Raised when a verified notification lacks required fields"""
    def __init__(self, message: str = "Malformed webhook payload"):
        super().__init__(message, "INVALID_PAYLOAD", 400)


class PaymentVerificationError(StyllioBaseException):
    """Raised when the payment gateway cannot be queried"""
    def __init__(self, message: str = "Failed to verify payment"):
        super().__init__(message, "PAYMENT_VERIFICATION_ERROR", 502)


class StorageError(StyllioBaseException):
    """Raised when object store operations fail"""
    def __init__(self, message: str = "Storage operation failed"):
        super().__init__(message, "STORAGE_ERROR", 502)


class FunctionNotConfiguredError(StyllioBaseException):
    """Raised when no style transfer function is configured"""
    def __init__(self, message: str = "Style transfer function is not configured"):
        super().__init__(message, "FUNCTION_NOT_CONFIGURED", 500)


class ProcessingTriggerError(StyllioBaseException):
    """Raised when the execution platform rejects a submission"""
    def __init__(self, message: str = "Failed to start processing"):
        super().__init__(message, "PROCESSING_TRIGGER_ERROR", 502)


class JobCreationError(StyllioBaseException):
    """Raised when a job row cannot be inserted for a paid session"""
    def __init__(self, message: str = "Failed to create job"):
        super().__init__(message, "JOB_CREATION_ERROR", 500)


class JobNotFoundError(StyllioBaseException):
    """Raised when job is not found"""
    def __init__(self, job_id: str):
        super().__init__(f"Job {job_id} not found", "JOB_NOT_FOUND", 404)


class InvalidJobTransitionError(StyllioBaseException):
    """Raised when a status update would break the job state machine"""
    def __init__(self, job_id: str, current_state: str, requested_state: str, reason: str = ""):
        message = f"Job {job_id} cannot move from '{current_state}' to '{requested_state}'"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message, "INVALID_JOB_TRANSITION", 409)


class ClaimTokenError(StyllioBaseException):
    def __init__(self, message: str = "Invalid or used token"):
        super().__init__(message, "INVALID_CLAIM_TOKEN", 400)


class AuthenticationError(StyllioBaseException):
    def __init__(self, message: str = "Missing or invalid session"):
        super().__init__(message, "UNAUTHENTICATED", 401)


class FileAccessDeniedError(StyllioBaseException):
    def __init__(self, file_id: str):
        super().__init__(f"Access to file {file_id} denied", "FILE_ACCESS_DENIED", 403)


class UploadNotFoundError(StyllioBaseException):
    def __init__(self, file_id: str):
        super().__init__(f"File {file_id} not found", "FILE_NOT_FOUND", 404)


class InvalidUploadError(StyllioBaseException):
    def __init__(self, message: str):
        super().__init__(message, "INVALID_UPLOAD", 400)


class InvalidCheckoutError(StyllioBaseException):
    def __init__(self, message: str):
        super().__init__(message, "INVALID_CHECKOUT", 400)


async def styllio_exception_handler(request: Request, exc: StyllioBaseException):
    """Handle custom application exceptions"""
    log = logger.warning if exc.status_code < 500 else logger.error
    log(
        f"Application exception: {exc.code} - {exc.message}",
        extra={
            "error_code": exc.code,
            "error_message": exc.message,
            "request_path": request.url.path,
        }
    )
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error": exc.code,
            "message": exc.message,
            "status_code": exc.status_code,
        }
    )


async def http_exception_handler(request: Request, exc: HTTPException):
    """Handle HTTP exceptions"""
    logger.warning(
        f"HTTP {exc.status_code}: {exc.detail}",
        extra={
            "http_status_code": exc.status_code,
            "http_detail": exc.detail,
            "request_path": request.url.path,
        }
    )
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error": "HTTP_ERROR",
            "message": exc.detail,
            "status_code": exc.status_code,
        }
    )


async def generic_exception_handler(request: Request, exc: Exception):
    """Handle all other exceptions"""
    logger.error(
        f"Unhandled exception: {type(exc).__name__} - {str(exc)}",
        extra={
            "exc_type": type(exc).__name__,
            "exc_message": str(exc),
            "request_path": request.url.path,
            "exc_traceback": traceback.format_exc(),
        }
    )
    return JSONResponse(
        status_code=500,
        content={
            "error": "INTERNAL_SERVER_ERROR",
            "message": "An internal error occurred. Please try again later.",
        }
    )
