import logging
from typing import List, Optional

from fastapi import FastAPI, Depends, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from bookings import book_range, book_slot, get_booking
from config import Settings
from database import Database
from errors import BookingServiceError
from schemas import (
    AvailabilityCreate,
    BookingDetail,
    BookingResponse,
    ErrorResponse,
    PublishResponse,
    RangeBookingCreate,
    SlotBookingCreate,
    SlotRead,
)
from slots import list_available_slots, publish_availability

logger = logging.getLogger(__name__)

ERROR_RESPONSES = {
    400: {"model": ErrorResponse},
    404: {"model": ErrorResponse},
    409: {"model": ErrorResponse},
    500: {"model": ErrorResponse},
}


def get_database(request: Request) -> Database:
    return request.app.state.database


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or Settings.from_env()
    logging.basicConfig(level=settings.log_level)

    app = FastAPI(title="Slot Booking Service")
    app.state.settings = settings
    app.state.database = Database(settings.database_url, echo=settings.sql_echo)

    @app.on_event("startup")
    async def on_startup():
        await app.state.database.open(reset=settings.reset_db_on_startup)

    @app.on_event("shutdown")
    async def on_shutdown():
        await app.state.database.close()

    # Error handlers
    @app.exception_handler(BookingServiceError)
    async def booking_error(request: Request, exc: BookingServiceError):
        return JSONResponse(status_code=exc.status_code, content={"error": exc.message})

    @app.exception_handler(RequestValidationError)
    async def validation_error(request: Request, exc: RequestValidationError):
        return JSONResponse(status_code=400, content={"error": "Invalid input"})

    @app.exception_handler(Exception)
    async def general_error(request: Request, exc: Exception):
        logger.exception("500 error on %s %s", request.method, request.url.path, exc_info=exc)
        return JSONResponse(status_code=500, content={"error": "Internal server error, try again"})

    # --- POST /api/availability: host publishes a block of free time ---
    @app.post(
        "/api/availability",
        response_model=PublishResponse,
        status_code=status.HTTP_201_CREATED,
        responses=ERROR_RESPONSES,
    )
    async def create_availability(
        data: AvailabilityCreate, db: Database = Depends(get_database)
    ):
        result = await publish_availability(db, data.startTime, data.endTime)
        return PublishResponse(
            message=(
                "Successfully processed availability block. "
                f"{result.processed} potential 30-minute slots processed."
            ),
            slotsProcessed=result.processed,
            slotsCreated=result.created,
            slotsIgnored=result.ignored,
        )

    # --- GET /api/availability: every unbooked slot, earliest first ---
    @app.get("/api/availability", response_model=List[SlotRead], responses=ERROR_RESPONSES)
    async def get_availability(db: Database = Depends(get_database)):
        slots = await list_available_slots(db)
        return [SlotRead.model_validate(slot) for slot in slots]

    # --- POST /api/bookings: book a contiguous time range ---
    @app.post(
        "/api/bookings",
        response_model=BookingResponse,
        status_code=status.HTTP_201_CREATED,
        responses=ERROR_RESPONSES,
    )
    async def create_range_booking(
        data: RangeBookingCreate,
        db: Database = Depends(get_database),
        settings: Settings = Depends(get_settings),
    ):
        result = await book_range(
            db,
            data.bookingStartTime,
            data.bookingEndTime,
            data.friendCode,
            data.message,
            code_style=settings.booking_code_style,
            max_attempts=settings.booking_code_max_attempts,
        )
        return BookingResponse(
            message="Booking successful!",
            visitorBookingCode=result.visitor_booking_code,
            bookingId=result.booking_id,
        )

    # --- POST /api/bookings/by-slot: book one slot by id ---
    @app.post(
        "/api/bookings/by-slot",
        response_model=BookingResponse,
        status_code=status.HTTP_201_CREATED,
        responses=ERROR_RESPONSES,
    )
    async def create_slot_booking(
        data: SlotBookingCreate,
        db: Database = Depends(get_database),
        settings: Settings = Depends(get_settings),
    ):
        result = await book_slot(
            db,
            data.slotId,
            data.friendCode,
            data.message,
            code_style=settings.booking_code_style,
            max_attempts=settings.booking_code_max_attempts,
        )
        return BookingResponse(
            message="Booking successful!",
            visitorBookingCode=result.visitor_booking_code,
            bookingId=result.booking_id,
        )

    # --- GET /api/bookings/{booking_id}: booking plus the slots it covers ---
    @app.get(
        "/api/bookings/{booking_id}",
        response_model=BookingDetail,
        responses=ERROR_RESPONSES,
    )
    async def read_booking(booking_id: int, db: Database = Depends(get_database)):
        booking, slots = await get_booking(db, booking_id)
        return BookingDetail(
            id=booking.id,
            visitorBookingCode=booking.visitor_booking_code,
            friendCode=booking.visitor_friend_code,
            message=booking.visitor_message,
            bookingStartTime=booking.booking_start_time,
            bookingEndTime=booking.booking_end_time,
            bookingTimestamp=booking.booking_timestamp,
            slots=[SlotRead.model_validate(slot) for slot in slots],
        )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    return app
