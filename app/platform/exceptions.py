from typing import Any, Optional

from fastapi import Request, status
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.platform.logger import get_logger
from app.platform.response import api_response

logger = get_logger(__name__)


class WaitroomError(Exception):
    """Base for every domain error. Carries the HTTP status the request layer maps it to."""

    status_code: int = status.HTTP_400_BAD_REQUEST
    code: str = "WAITROOM_ERROR"
    default_message: str = "Request could not be processed"

    def __init__(self, message: Optional[str] = None, **details: Any):
        self.message = message or self.default_message
        self.details = details
        super().__init__(self.message)


# ── Taxonomy ────────────────────────────────────


class ValidationError(WaitroomError):
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    code = "VALIDATION_ERROR"
    default_message = "Invalid input"


class ConflictError(WaitroomError):
    status_code = status.HTTP_409_CONFLICT
    code = "CONFLICT"
    default_message = "Resource already exists"


class NotFoundError(WaitroomError):
    status_code = status.HTTP_404_NOT_FOUND
    code = "NOT_FOUND"
    default_message = "Resource not found"


class InvalidTransitionError(WaitroomError):
    status_code = status.HTTP_409_CONFLICT
    code = "INVALID_TRANSITION"
    default_message = "Transition not allowed"


class ExhaustionError(WaitroomError):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    code = "EXHAUSTED"
    default_message = "Retry budget exhausted"


class AuthenticationError(WaitroomError):
    status_code = status.HTTP_401_UNAUTHORIZED
    code = "UNAUTHORIZED"
    default_message = "Authentication required"


class InvariantViolation(WaitroomError):
    """Stored data broke an invariant. Fatal for the current operation."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    code = "INVARIANT_VIOLATION"
    default_message = "Stored waitlist data is inconsistent"


# ── Concrete errors ─────────────────────────────


class UndeliverableEmail(ValidationError):
    code = "UNDELIVERABLE_EMAIL"
    default_message = "This email address is not considered deliverable. Please use a different one."


class DuplicateAccount(ConflictError):
    code = "DUPLICATE_ACCOUNT"
    default_message = "An account with this email already exists."


class DuplicateEntry(ConflictError):
    code = "DUPLICATE_ENTRY"
    default_message = "This username or email is already on the waitlist"


class DuplicateReferral(ConflictError):
    code = "DUPLICATE_REFERRAL"
    default_message = "This user has already been referred"


class SelfReferral(ConflictError):
    code = "SELF_REFERRAL"
    default_message = "Users cannot refer themselves"


class DuplicateClaim(ConflictError):
    code = "DUPLICATE_CLAIM"
    default_message = "A pending share claim already exists for this platform"


class AlreadyVerified(ConflictError):
    code = "ALREADY_VERIFIED"
    default_message = "Already verified"


class ProjectNotFound(NotFoundError):
    code = "PROJECT_NOT_FOUND"
    default_message = "Project not found"


class EntryNotFound(NotFoundError):
    code = "ENTRY_NOT_FOUND"
    default_message = "Waitlist entry not found"


class UnknownReferrer(NotFoundError):
    code = "UNKNOWN_REFERRER"
    default_message = "Referrer is not on this waitlist"


class ReferralNotFound(NotFoundError):
    code = "REFERRAL_NOT_FOUND"
    default_message = "Referral not found"


class ClaimNotFound(NotFoundError):
    code = "CLAIM_NOT_FOUND"
    default_message = "Share claim not found"


class InvalidStatusTransition(InvalidTransitionError):
    code = "INVALID_STATUS_TRANSITION"
    default_message = "Status transition not allowed"


class CodeGenerationExhausted(ExhaustionError):
    code = "CODE_GENERATION_EXHAUSTED"
    default_message = "Could not generate a unique code, please retry"


def add_exception_handlers(app):
    @app.exception_handler(WaitroomError)
    async def waitroom_exception_handler(request: Request, exc: WaitroomError):
        if isinstance(exc, InvariantViolation):
            logger.error(f"Invariant violation on {request.url.path}: {exc.message} {exc.details}")
        return api_response(
            message=exc.message,
            status_code=exc.status_code,
            data={"code": exc.code, **exc.details},
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        response = api_response(message=str(exc.detail) or "Error", status_code=exc.status_code)
        if exc.headers:
            response.headers.update(exc.headers)
        return response

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        return api_response(
            message="Validation failed",
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            data={"errors": exc.errors()},
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception):
        logger.exception(f"Unhandled exception: {exc}")
        return api_response(
            message="Internal server error",
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        )
