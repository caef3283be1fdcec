"""Error types for the device binding guard and its admin API.

Each error carries a stable machine-readable ``code`` and the HTTP status
it maps to. A single FastAPI handler renders them as
``{"error": code, "message": message}``.
"""

from fastapi import Request
from fastapi.responses import JSONResponse


class StoreError(Exception):
    """Raised by binding store backends when persistence fails."""


class DeviceBindingError(Exception):
    """Base for errors surfaced to API callers."""

    status_code = 400
    code = "bad_request"

    def __init__(self, message: str, code: str | None = None):
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code


class NotFoundError(DeviceBindingError):
    status_code = 404
    code = "not_found"


class NotBannedError(DeviceBindingError):
    status_code = 400
    code = "not_banned"


class MissingParameterError(DeviceBindingError):
    status_code = 400
    code = "missing_parameter"


class StoreFailureError(DeviceBindingError):
    status_code = 500
    code = "internal_error"


class DeviceBindingRejected(DeviceBindingError):
    """Request rejected by the guard (banned key or concurrent usage)."""

    status_code = 403
    code = "forbidden"


async def device_binding_error_handler(request: Request, exc: DeviceBindingError) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.code, "message": exc.message},
    )
