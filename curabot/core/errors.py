"""Domain errors raised by services and translated to HTTP responses by the routes."""

from fastapi import HTTPException


class CuraBotError(Exception):
    status_code = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def to_http(self) -> HTTPException:
        return HTTPException(status_code=self.status_code, detail=self.message)


class NotFoundError(CuraBotError):
    status_code = 404


class SlotNotFound(NotFoundError):
    """No slot matches the requested doctor, date and time.

    ``reason`` is ``'date'`` when the doctor has nothing on that day and
    ``'time'`` when the day exists but the time label does not.
    """

    def __init__(self, reason: str) -> None:
        message = 'Invalid date' if reason == 'date' else 'Time slot not found on this date'
        super().__init__(message)
        self.reason = reason


class ConflictError(CuraBotError):
    status_code = 409


class SlotAlreadyBooked(ConflictError):
    def __init__(self) -> None:
        super().__init__('Time slot is not available')


class UnauthorizedError(CuraBotError):
    status_code = 401


class ForbiddenError(CuraBotError):
    status_code = 403


class ValidationError(CuraBotError):
    status_code = 400


class UpstreamError(CuraBotError):
    status_code = 502


DATABASE_UNAVAILABLE_DETAIL = 'Database unavailable. Verify DATABASE_URL and database credentials.'
