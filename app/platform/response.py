from typing import Any, Dict, Optional

from fastapi import status
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse


def api_response(
    *,
    data: Optional[Any] = None,
    message: str = "Operation successful",
    status_code: int = status.HTTP_200_OK,
    headers: Optional[Dict[str, str]] = None,
) -> JSONResponse:
    """
    Envelope for every API response: {status_code, status, message, data}.
    status is "success" below 400 and "error" otherwise.
    """
    content = {
        "status_code": status_code,
        "status": "success" if status_code < 400 else "error",
        "message": message,
        "data": jsonable_encoder(data) if data is not None else {},
    }
    return JSONResponse(status_code=status_code, content=content, headers=headers)


def error_response(
    *,
    kind: str,
    message: str,
    status_code: int,
    headers: Optional[Dict[str, str]] = None,
    **extra: Any,
) -> JSONResponse:
    """
    Error envelope for a failed scan; data carries {error: {kind, message}, cached: false}
    plus any extra fields.
    """
    data = {"error": {"kind": kind, "message": message}, "cached": False, **extra}
    return api_response(data=data, message=message, status_code=status_code, headers=headers)
