"""Response envelope shared by every endpoint: {status, message, data}."""

from __future__ import annotations

from typing import Any

from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse

from ticketzetu.models.enums import ResponseStatus


def envelope(
    status: ResponseStatus,
    message: str,
    data: Any = None,
    status_code: int = 200,
) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=jsonable_encoder({"status": status.value, "message": message, "data": data}),
    )


def success(message: str, data: Any = None, status_code: int = 200) -> JSONResponse:
    return envelope(ResponseStatus.SUCCESS, message, data, status_code)


def failed(message: str, status_code: int, data: Any = None) -> JSONResponse:
    return envelope(ResponseStatus.FAILED, message, data, status_code)


def warning(message: str, data: Any = None, status_code: int = 200) -> JSONResponse:
    return envelope(ResponseStatus.WARNING, message, data, status_code)
