import secrets
import string
from typing import Awaitable, Callable, Optional

from app.platform.config import settings
from app.platform.exceptions import CodeGenerationExhausted
from app.platform.logger import get_logger

logger = get_logger(__name__)

# no look-alikes (0/O, 1/I)
CODE_ALPHABET = "".join(c for c in string.ascii_uppercase + string.digits if c not in "0O1I")


def generate_code(length: int = 8, alphabet: str = CODE_ALPHABET) -> str:
    return "".join(secrets.choice(alphabet) for _ in range(length))


async def generate_unique_code(
    is_taken: Callable[[str], Awaitable[bool]],
    *,
    prefix: str = "",
    length: Optional[int] = None,
    max_attempts: Optional[int] = None,
) -> str:
    """
    Draw random codes until is_taken() says one is free.

    The retry budget is bounded; running out raises CodeGenerationExhausted instead of
    looping forever. The storage layer's unique constraint stays the final backstop.
    """
    length = length or settings.INVITE_CODE_LENGTH
    max_attempts = max_attempts or settings.INVITE_CODE_MAX_ATTEMPTS

    for attempt in range(1, max_attempts + 1):
        code = prefix + generate_code(length)
        if not await is_taken(code):
            return code
        logger.warning(f"Code collision on attempt {attempt}/{max_attempts} (prefix={prefix!r})")

    logger.error(f"Exhausted {max_attempts} attempts generating a unique code (prefix={prefix!r})")
    raise CodeGenerationExhausted(attempts=max_attempts)
