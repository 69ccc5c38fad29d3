# backend/pixelwall/exception_handlers.py
from typing import Any, Callable, Coroutine

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from loguru import logger
from starlette.responses import Response

from pixelwall.exceptions import WallError

ExceptionHandler = Callable[[Request, Exception], Coroutine[Any, Any, Response]]


async def wall_error_handler(request: Request, exc: Exception) -> JSONResponse:
    error = exc if isinstance(exc, WallError) else WallError(str(exc))
    return JSONResponse(
        status_code=error.status_code,
        content={"detail": error.message, "code": error.code},
    )


async def validation_error_handler(request: Request, exc: Exception) -> JSONResponse:
    errors = exc.errors() if isinstance(exc, RequestValidationError) else []
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"detail": jsonable_errors(errors), "code": "invalid_request"},
    )


async def general_500_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(f"Unhandled error on {request.method} {request.url.path}")
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": "Internal server error", "code": "internal_error"},
    )


def jsonable_errors(errors: list) -> list[dict]:
    """Drops the raw exception objects pydantic puts into `ctx`."""
    return [
        {key: value for key, value in error.items() if key in ("type", "loc", "msg")}
        for error in errors
    ]


EXCEPTION_HANDLERS: dict[type[Exception], ExceptionHandler] = {
    WallError: wall_error_handler,
    RequestValidationError: validation_error_handler,
    Exception: general_500_exception_handler,
}


def register_exception_handlers(app: FastAPI) -> None:
    for exception_class, handler in EXCEPTION_HANDLERS.items():
        app.add_exception_handler(exception_class, handler)
