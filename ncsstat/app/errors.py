from fastapi import Request
from fastapi.responses import JSONResponse


class ApiError(Exception):
    """An error returned to JSON API callers as `{"error": message}`."""

    def __init__(self, status_code: int, message: str):
        super().__init__(message)
        self.status_code = status_code
        self.message = message


async def api_error_handler(request: Request, exc: Exception) -> JSONResponse:
    assert isinstance(exc, ApiError)
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message})
