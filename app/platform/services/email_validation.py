import re
from typing import Literal, Optional

import httpx
from pydantic import BaseModel

from app.platform.config import settings
from app.platform.exceptions import UndeliverableEmail
from app.platform.logger import get_logger

logger = get_logger("email_validation")

EMAIL_REGEX = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")

EmailValidationReason = Literal["invalid_email", "invalid_domain", "rejected_email", "unknown"]

# Emailable states that are acceptable for a signup
ACCEPTED_STATES = {"deliverable", "risky"}


class EmailValidationResult(BaseModel):
    is_valid: bool
    is_deliverable: bool
    reason: Optional[EmailValidationReason] = None
    error: Optional[str] = None


def _format_check(email: str) -> EmailValidationResult:
    if EMAIL_REGEX.match(email):
        return EmailValidationResult(is_valid=True, is_deliverable=True)
    return EmailValidationResult(
        is_valid=False,
        is_deliverable=False,
        reason="invalid_email",
        error="The email format is invalid.",
    )


def _normalize_reason(reason: Optional[str]) -> EmailValidationReason:
    if reason in ("invalid_email", "invalid_domain", "rejected_email"):
        return reason
    return "unknown"


async def validate_email_deliverability(
    email: str,
    api_key: Optional[str] = None,
    is_development: Optional[bool] = None,
) -> EmailValidationResult:
    """
    Check an address with the Emailable API.

    Falls back to a format-only check when no API key is configured or in development,
    so local runs don't spend API credits. Never raises: transport failures come back
    as an invalid result with reason "unknown".
    """
    api_key = api_key if api_key is not None else settings.EMAILABLE_API_KEY
    if is_development is None:
        is_development = settings.is_development

    if not api_key or is_development:
        return _format_check(email)

    try:
        async with httpx.AsyncClient(timeout=settings.EMAIL_VALIDATION_TIMEOUT) as client:
            response = await client.get(
                settings.EMAILABLE_API_URL,
                params={"email": email, "api_key": api_key},
            )
    except httpx.HTTPError as e:
        logger.error(f"Email validation request failed for {email}: {e}")
        return EmailValidationResult(
            is_valid=False,
            is_deliverable=False,
            reason="unknown",
            error="A timeout or network error occurred while validating the email.",
        )

    if response.status_code != 200:
        logger.error(f"Emailable API request failed - email: {email}, status: {response.status_code}")
        return EmailValidationResult(
            is_valid=False,
            is_deliverable=False,
            reason="unknown",
            error="An issue occurred while validating the email address.",
        )

    try:
        data = response.json()
    except ValueError as e:
        data = None
        logger.error(f"Emailable API returned a malformed body - email: {email}, error: {e}")

    if not isinstance(data, dict):
        return EmailValidationResult(
            is_valid=False,
            is_deliverable=False,
            reason="unknown",
            error="An issue occurred while validating the email address.",
        )

    state = data.get("state")
    if state in ACCEPTED_STATES:
        return EmailValidationResult(is_valid=True, is_deliverable=state == "deliverable")

    logger.warning(f"Rejected email as undeliverable - email: {email}, reason: {data.get('reason')}")
    return EmailValidationResult(
        is_valid=False,
        is_deliverable=False,
        reason=_normalize_reason(data.get("reason")),
        error="This email address is not considered deliverable. Please use a different one.",
    )


async def ensure_deliverable(email: str) -> EmailValidationResult:
    """Run the deliverability check and raise UndeliverableEmail when it fails."""
    result = await validate_email_deliverability(email)
    if not result.is_valid:
        raise UndeliverableEmail(result.error, reason=result.reason)
    return result
