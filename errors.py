"""Typed failures surfaced to API callers."""

from typing import Optional

from fastapi import status
from fastapi.responses import JSONResponse


class BatteryError(Exception):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code

    def to_response(self):
        return JSONResponse(
            status_code=self.status_code,
            content={"error": self.message}
        )


class SourceUnavailable(BatteryError):
    """The telemetry source could not produce a reading or log."""

    status_code = status.HTTP_503_SERVICE_UNAVAILABLE


class PersistenceFailure(BatteryError):
    """Durable state could not be read or written."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR


class MalformedSample(BatteryError):
    """A raw log line that does not parse into an event sample."""

    status_code = 422
