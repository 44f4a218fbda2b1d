from fastapi import HTTPException, Request
from fastapi.responses import JSONResponse
from typing import Any, Dict, Optional
import traceback
from .logger import logger


class BestOfGoaBaseException(Exception):
    """Base exception for the Best of Goa admin backend"""
    def __init__(self, message: str, code: str = "INTERNAL_ERROR", status_code: int = 500):
        self.message = message
        self.code = code
        self.status_code = status_code
        super().__init__(self.message)


class UnknownEntityTypeError(BestOfGoaBaseException):
    """Raised when a route or lookup names an entity type that is not registered"""
    def __init__(self, entity: str):
        super().__init__(f"Unknown entity type '{entity}'", "UNKNOWN_ENTITY_TYPE", 404)


class EntityNotFoundError(BestOfGoaBaseException):
    """Raised when a business record is not found"""
    def __init__(self, entity_type: str, entity_id: str):
        super().__init__(f"{entity_type} {entity_id} not found", "ENTITY_NOT_FOUND", 404)


class SubmissionNotFoundError(BestOfGoaBaseException):
    def __init__(self, submission_id: str):
        super().__init__(f"Submission {submission_id} not found", "SUBMISSION_NOT_FOUND", 404)


class ImageNotFoundError(BestOfGoaBaseException):
    def __init__(self, image_id: str):
        super().__init__(f"Image {image_id} not found", "IMAGE_NOT_FOUND", 404)


class DuplicateEntityError(BestOfGoaBaseException):
    """Raised when extraction is started for a place that already has a record"""
    def __init__(self, entity_type: str, existing_id: str, in_progress: bool = False):
        if in_progress:
            message = f"Import already in progress for this {entity_type}"
        else:
            message = f"{entity_type.capitalize()} already exists"
        self.existing_id = existing_id
        super().__init__(message, "DUPLICATE_ENTITY", 409)


class InvalidPublishStateError(BestOfGoaBaseException):
    """Raised when publish/unpublish is requested from the wrong state"""
    def __init__(self, entity_id: str, current_state: str, expected_state: str):
        super().__init__(
            f"Record {entity_id} is '{current_state}', expected '{expected_state}'",
            "INVALID_PUBLISH_STATE",
            409,
        )


class ExtractionInProgressError(BestOfGoaBaseException):
    def __init__(self, entity_id: str, status: str):
        super().__init__(
            f"Extraction for {entity_id} is still '{status}'",
            "EXTRACTION_IN_PROGRESS",
            409,
        )


class InvalidRequestError(BestOfGoaBaseException):
    def __init__(self, message: str):
        super().__init__(message, "INVALID_REQUEST", 400)


class StorageError(BestOfGoaBaseException):
    """Raised when S3 operations fail"""
    def __init__(self, message: str = "Storage operation failed"):
        super().__init__(message, "STORAGE_ERROR", 502)


class ExtractionDispatchError(BestOfGoaBaseException):
    """Raised when the external extraction runner refuses or cannot take a job"""
    def __init__(self, message: str = "Failed to hand extraction job to runner"):
        super().__init__(message, "EXTRACTION_DISPATCH_ERROR", 502)


# ===== Admin client errors =====

class AdminApiError(BestOfGoaBaseException):
    """Non-2xx response from the admin API, as seen by the client library"""
    def __init__(self, status_code: int, message: str, code: str = "HTTP_ERROR", body: Optional[Dict[str, Any]] = None):
        self.body = body or {}
        super().__init__(message, code, status_code)


class ExtractionTimeoutError(BestOfGoaBaseException):
    def __init__(self, entity_id: str, timeout: float):
        self.entity_id = entity_id
        minutes = timeout / 60
        super().__init__(
            f"Extraction monitoring timed out after {minutes:g} minutes",
            "EXTRACTION_TIMEOUT",
            504,
        )


class InvalidTransitionError(BestOfGoaBaseException):
    def __init__(self, action: str, state: str):
        self.action = action
        self.state = state
        super().__init__(f"Cannot {action} a record in state '{state}'", "INVALID_TRANSITION", 409)


class ConfirmationRequiredError(BestOfGoaBaseException):
    def __init__(self, action: str):
        self.action = action
        super().__init__(f"{action} requires explicit confirmation", "CONFIRMATION_REQUIRED", 400)


async def bestofgoa_exception_handler(request: Request, exc: BestOfGoaBaseException):
    """Handle custom application exceptions"""
    logger.error(
        f"Application exception: {exc.code} - {exc.message}",
        extra={
            "error_code": exc.code,
            "error_message": exc.message,
            "request_path": request.url.path,
        }
    )
    content = {
        "error": exc.code,
        "message": exc.message,
        "status_code": exc.status_code,
    }
    if isinstance(exc, DuplicateEntityError):
        content["existing_id"] = exc.existing_id
    return JSONResponse(status_code=exc.status_code, content=content)


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
