from datetime import datetime, timezone
from typing import List, Optional, Union

from pydantic import BaseModel, ConfigDict, field_serializer


def to_utc_iso(value: datetime) -> str:
    # Sent as e.g. 2024-07-29T10:00:00Z; a naive value is taken as UTC
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


# Request bodies use the client's camelCase names. Every field is optional
# here so missing values get a domain error message instead of a 422.

class AvailabilityCreate(BaseModel):
    startTime: Optional[str] = None
    endTime: Optional[str] = None


class SlotBookingCreate(BaseModel):
    slotId: Optional[Union[int, str]] = None
    friendCode: Optional[str] = None
    message: Optional[str] = None


class RangeBookingCreate(BaseModel):
    bookingStartTime: Optional[str] = None
    bookingEndTime: Optional[str] = None
    friendCode: Optional[str] = None
    message: Optional[str] = None


class SlotRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    start_time: datetime
    end_time: datetime

    @field_serializer("start_time", "end_time")
    def serialize_time(self, value: datetime) -> str:
        return to_utc_iso(value)


class PublishResponse(BaseModel):
    message: str
    slotsProcessed: int
    slotsCreated: int
    slotsIgnored: int


class BookingResponse(BaseModel):
    message: str
    visitorBookingCode: str
    bookingId: int


class BookingDetail(BaseModel):
    id: int
    visitorBookingCode: str
    friendCode: str
    message: Optional[str]
    bookingStartTime: datetime
    bookingEndTime: datetime
    bookingTimestamp: datetime
    slots: List[SlotRead]

    @field_serializer("bookingStartTime", "bookingEndTime", "bookingTimestamp")
    def serialize_time(self, value: datetime) -> str:
        return to_utc_iso(value)


class ErrorResponse(BaseModel):
    error: str
