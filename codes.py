import logging
import secrets
import string

from sqlmodel import select
from sqlalchemy.ext.asyncio import AsyncSession

from errors import CodeGenerationExhausted
from models import Booking

logger = logging.getLogger(__name__)

CODE_LENGTH = 6
ALPHABETS = {
    "numeric": string.digits,
    "alphanumeric": string.digits + string.ascii_uppercase,
}
MAX_ATTEMPTS = 5


def generate_code(style: str = "alphanumeric") -> str:
    alphabet = ALPHABETS[style]
    return "".join(secrets.choice(alphabet) for _ in range(CODE_LENGTH))


async def code_in_use(session: AsyncSession, code: str) -> bool:
    statement = select(Booking.id).where(Booking.visitor_booking_code == code).limit(1)
    result = await session.execute(statement)
    return result.first() is not None


async def issue_unique_code(
    session: AsyncSession, style: str = "alphanumeric", max_attempts: int = MAX_ATTEMPTS
) -> str:
    for attempt in range(1, max_attempts + 1):
        candidate = generate_code(style)
        if not await code_in_use(session, candidate):
            return candidate
        logger.warning("Generated code %s collision (attempt %d), retrying", candidate, attempt)

    raise CodeGenerationExhausted(
        "Failed to generate unique visitor code. Please try again."
    )


async def resolve_visitor_code(
    session: AsyncSession,
    friend_code: str,
    style: str = "alphanumeric",
    max_attempts: int = MAX_ATTEMPTS,
) -> str:
    """Return the friend code's existing booking code, or mint a new one."""
    statement = (
        select(Booking.visitor_booking_code)
        .where(Booking.visitor_friend_code == friend_code)
        .limit(1)
    )
    result = await session.execute(statement)
    existing = result.scalar_one_or_none()
    if existing is not None:
        logger.info("Found existing visitor code for %s: %s", friend_code, existing)
        return existing

    code = await issue_unique_code(session, style, max_attempts)
    logger.info("Generated new visitor code for %s: %s", friend_code, code)
    return code
