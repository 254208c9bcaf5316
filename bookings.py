import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, List, Optional, Sequence, Tuple

from sqlmodel import col, select
from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from codes import MAX_ATTEMPTS, resolve_visitor_code
from database import Database
from errors import Conflict, InvalidInput, NotFound, RangeUnavailable, StorageError
from models import AvailabilitySlot, Booking
from slots import SLOT_DURATION, parse_interval, partition

logger = logging.getLogger(__name__)


@dataclass
class BookingResult:
    visitor_booking_code: str
    booking_id: int


def parse_slot_id(value: Any) -> int:
    # bool is an int subclass; True must not book slot 1
    if value is None or isinstance(value, bool):
        raise InvalidInput("Invalid Slot ID provided (must be a positive number).")
    try:
        slot_id = int(value)
    except (TypeError, ValueError):
        raise InvalidInput("Invalid Slot ID provided (must be a positive number).")
    if isinstance(value, float) and value != slot_id:
        raise InvalidInput("Invalid Slot ID provided (must be a positive number).")
    if slot_id <= 0:
        raise InvalidInput("Invalid Slot ID provided (must be a positive number).")
    return slot_id


def expected_slot_count(start: datetime, end: datetime) -> int:
    span = end - start
    if span % SLOT_DURATION:
        raise InvalidInput("Booking range must be a whole number of 30-minute slots.")
    return span // SLOT_DURATION


def covering_slots(start: datetime, end: datetime):
    """Slots whose start lies in [start, end)."""
    return select(AvailabilitySlot).where(
        AvailabilitySlot.start_time >= start,
        AvailabilitySlot.start_time < end,
    )


async def mark_slots_booked(session: AsyncSession, slot_ids: Sequence[int]) -> int:
    """Flip unbooked slots to booked; returns the number of rows actually changed."""
    statement = (
        update(AvailabilitySlot)
        .where(col(AvailabilitySlot.id).in_(slot_ids))
        .where(AvailabilitySlot.is_booked == False)  # noqa: E712
        .values(is_booked=True)
        .execution_options(synchronize_session=False)
    )
    result = await session.execute(statement)
    return result.rowcount


async def _insert_booking(
    session: AsyncSession,
    code: str,
    friend_code: str,
    message: Optional[str],
    start: datetime,
    end: datetime,
) -> Booking:
    booking = Booking(
        visitor_booking_code=code,
        visitor_friend_code=friend_code,
        visitor_message=message or None,
        booking_start_time=start,
        booking_end_time=end,
    )
    session.add(booking)
    await session.flush()
    return booking


async def book_range(
    db: Database,
    booking_start_time: Optional[str],
    booking_end_time: Optional[str],
    friend_code: Optional[str],
    message: Optional[str] = None,
    code_style: str = "alphanumeric",
    max_attempts: int = MAX_ATTEMPTS,
) -> BookingResult:
    if not booking_start_time or not booking_end_time or not friend_code:
        raise InvalidInput("Booking start time, end time, and friend code are required.")
    start, end = parse_interval(booking_start_time, booking_end_time)
    expected = expected_slot_count(start, end)
    logger.info("Booking request: %s for %s to %s", friend_code, start.isoformat(), end.isoformat())

    try:
        async with db.transaction() as session:
            result = await session.execute(
                covering_slots(start, end)
                .where(AvailabilitySlot.is_booked == True)  # noqa: E712
                .limit(1)
            )
            booked = result.scalars().first()
            if booked is not None:
                logger.warning(
                    "Booking conflict for %s: slot starting at %s is booked",
                    friend_code, booked.start_time.isoformat(),
                )
                raise Conflict(
                    "Time slot conflict. At least part of the requested time "
                    f"({start.isoformat()} to {end.isoformat()}) is already booked."
                )

            result = await session.execute(
                covering_slots(start, end)
                .where(AvailabilitySlot.is_booked == False)  # noqa: E712
                .order_by(AvailabilitySlot.start_time)
            )
            free = result.scalars().all()
            slot_ids = [slot.id for slot in free]
            # Same count is not enough: a range shifted off the grid still spans whole slots
            if [slot.start_time for slot in free] != [unit[0] for unit in partition(start, end)]:
                logger.warning(
                    "Availability mismatch for %s: expected %d slots, found %d",
                    friend_code, expected, len(slot_ids),
                )
                raise RangeUnavailable(
                    f"The requested time range ({start.isoformat()} to {end.isoformat()}) "
                    "is not fully available or doesn't align with existing 30-min slots."
                )

            code = await resolve_visitor_code(session, friend_code, code_style, max_attempts)

            changed = await mark_slots_booked(session, slot_ids)
            if changed != expected:
                logger.warning(
                    "Expected to update %d slots but updated %d, rolling back", expected, changed
                )
                raise Conflict("Booking conflict detected during update. Please try again.")

            booking = await _insert_booking(session, code, friend_code, message, start, end)
    except SQLAlchemyError:
        logger.exception("Database error booking %s - %s", start.isoformat(), end.isoformat())
        raise StorageError("Database error creating booking.")

    logger.info("Booking %d successful for %s (%s)", booking.id, friend_code, code)
    return BookingResult(visitor_booking_code=code, booking_id=booking.id)


async def book_slot(
    db: Database,
    slot_id: Any,
    friend_code: Optional[str],
    message: Optional[str] = None,
    code_style: str = "alphanumeric",
    max_attempts: int = MAX_ATTEMPTS,
) -> BookingResult:
    slot_id = parse_slot_id(slot_id)
    if not friend_code:
        raise InvalidInput("Friend code is required.")
    logger.info("Booking request: %s for slot %d", friend_code, slot_id)

    try:
        async with db.transaction() as session:
            slot = await session.get(AvailabilitySlot, slot_id)
            if slot is None:
                logger.warning("Slot %d not found", slot_id)
                raise NotFound(f"Availability slot with ID {slot_id} not found.")
            if slot.is_booked:
                logger.warning("Slot %d is already booked", slot_id)
                raise Conflict(f"Sorry, the time slot (ID {slot_id}) is no longer available.")

            code = await resolve_visitor_code(session, friend_code, code_style, max_attempts)

            if await mark_slots_booked(session, [slot_id]) != 1:
                logger.warning("Slot %d was booked concurrently, rolling back", slot_id)
                raise Conflict(
                    "Booking conflict detected during update. The slot may have just "
                    "been booked by someone else. Please try again."
                )

            booking = await _insert_booking(
                session, code, friend_code, message, slot.start_time, slot.end_time
            )
    except SQLAlchemyError:
        logger.exception("Database error booking slot %d", slot_id)
        raise StorageError("Database error creating booking.")

    logger.info("Booking %d successful for %s (%s), slot %d", booking.id, friend_code, code, slot_id)
    return BookingResult(visitor_booking_code=code, booking_id=booking.id)


async def get_booking(db: Database, booking_id: int) -> Tuple[Booking, List[AvailabilitySlot]]:
    """Fetch a booking together with the slots its time range covers."""
    try:
        async with db.session() as session:
            booking = await session.get(Booking, booking_id)
            if booking is None:
                raise NotFound(f"Booking with ID {booking_id} not found.")
            result = await session.execute(
                covering_slots(booking.booking_start_time, booking.booking_end_time)
                .order_by(AvailabilitySlot.start_time)
            )
            slots = list(result.scalars().all())
    except SQLAlchemyError:
        logger.exception("Database error fetching booking %d", booking_id)
        raise StorageError("Database error fetching booking.")
    return booking, slots
