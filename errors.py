from fastapi import status


class BookingServiceError(Exception):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class InvalidInput(BookingServiceError):
    status_code = status.HTTP_400_BAD_REQUEST


class NotFound(BookingServiceError):
    status_code = status.HTTP_404_NOT_FOUND


class RangeUnavailable(NotFound):
    """Requested range has missing or misaligned slots."""


class Conflict(BookingServiceError):
    status_code = status.HTTP_409_CONFLICT


class StorageError(BookingServiceError):
    pass


class CodeGenerationExhausted(BookingServiceError):
    pass
