import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import List, Optional, Tuple

from sqlmodel import select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import SQLAlchemyError

from database import Database
from errors import InvalidInput, StorageError
from models import AvailabilitySlot

logger = logging.getLogger(__name__)

SLOT_DURATION = timedelta(minutes=30)

INSERT_BY_DIALECT = {
    "sqlite": sqlite.insert,
    "postgresql": postgresql.insert,
}


@dataclass
class PublishResult:
    processed: int
    created: int

    @property
    def ignored(self) -> int:
        return self.processed - self.created


def parse_timestamp(value: str) -> datetime:
    """Parse an ISO-8601 string into a timezone-aware UTC datetime.

    A value without an offset is taken literally as UTC wall-clock,
    e.g. ``2024-07-29T10:00`` is 10:00 UTC.
    """
    try:
        parsed = datetime.fromisoformat(value.strip())
    except (TypeError, ValueError, AttributeError):
        raise InvalidInput("Invalid date format provided.")
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def parse_interval(start_raw: Optional[str], end_raw: Optional[str]) -> Tuple[datetime, datetime]:
    if not start_raw or not end_raw:
        raise InvalidInput("Start and end times required.")
    start = parse_timestamp(start_raw)
    end = parse_timestamp(end_raw)
    if end <= start:
        raise InvalidInput("End time must be after start time.")
    return start, end


def partition(start: datetime, end: datetime) -> List[Tuple[datetime, datetime]]:
    """Split [start, end) into whole slots; a trailing partial slot is dropped."""
    units = []
    current = start
    while current + SLOT_DURATION <= end:
        units.append((current, current + SLOT_DURATION))
        current += SLOT_DURATION
    return units


async def publish_availability(
    db: Database, start_time: Optional[str], end_time: Optional[str]
) -> PublishResult:
    start, end = parse_interval(start_time, end_time)
    units = partition(start, end)
    if not units:
        raise InvalidInput(
            "No full 30-minute slots could be generated for the provided time range."
        )

    insert = INSERT_BY_DIALECT.get(db.dialect_name)
    if insert is None:
        raise StorageError(f"Unsupported database dialect: {db.dialect_name}")

    # Existing start times are skipped, booked or not
    statement = (
        insert(AvailabilitySlot)
        .values([
            {"start_time": slot_start, "end_time": slot_end, "is_booked": False}
            for slot_start, slot_end in units
        ])
        .on_conflict_do_nothing(index_elements=["start_time"])
    )

    try:
        async with db.transaction() as session:
            result = await session.execute(statement)
            created = result.rowcount
    except SQLAlchemyError:
        logger.exception("Error inserting slots %s - %s", start.isoformat(), end.isoformat())
        raise StorageError("Failed to insert availability slots. Check server logs.")

    publish = PublishResult(processed=len(units), created=created)
    logger.info(
        "Published availability %s - %s: %d processed, %d created, %d ignored",
        start.isoformat(), end.isoformat(), publish.processed, publish.created, publish.ignored,
    )
    return publish


async def list_available_slots(db: Database) -> List[AvailabilitySlot]:
    statement = (
        select(AvailabilitySlot)
        .where(AvailabilitySlot.is_booked == False)  # noqa: E712
        .order_by(AvailabilitySlot.start_time)
    )
    try:
        async with db.session() as session:
            result = await session.execute(statement)
            slots = result.scalars().all()
    except SQLAlchemyError:
        logger.exception("Error fetching available slots")
        raise StorageError("Failed to fetch availability slots.")

    logger.info("Found %d available slots", len(slots))
    return list(slots)
