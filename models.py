from typing import Optional
from datetime import datetime, timezone
from sqlmodel import SQLModel, Field


def utcnow() -> datetime:
    # Every datetime column holds timezone-aware UTC
    return datetime.now(timezone.utc)


class AvailabilitySlot(SQLModel, table=True):
    __tablename__ = "availability_slots"

    id: Optional[int] = Field(default=None, primary_key=True)
    # No two slots share a start: republishing relies on this constraint
    start_time: datetime = Field(index=True, unique=True)
    end_time: datetime
    is_booked: bool = Field(default=False)


class Booking(SQLModel, table=True):
    __tablename__ = "bookings"

    id: Optional[int] = Field(default=None, primary_key=True)
    visitor_booking_code: str = Field(index=True)
    visitor_friend_code: str = Field(index=True)
    visitor_message: Optional[str] = None
    # Covered slots are those with start_time in [booking_start_time, booking_end_time)
    booking_start_time: datetime
    booking_end_time: datetime
    booking_timestamp: datetime = Field(default_factory=utcnow)
