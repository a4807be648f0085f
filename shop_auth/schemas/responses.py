"""Response envelopes.

``APIResponse`` wraps every route result and handled error. ``unauthorized_body``
is the fixed shape of a 401 produced by the authentication gate.
"""
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field


def _now() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S")


class ErrorDetail(BaseModel):
    field: Optional[str] = None
    message: str
    code: Optional[str] = None


class APIResponse(BaseModel):
    success: bool
    status: int
    message: str
    data: Optional[Any] = None
    errors: Optional[List[ErrorDetail]] = None
    path: Optional[str] = None
    timestamp: str = Field(default_factory=_now)

    @classmethod
    def ok(cls, message: str, data: Any = None, status: int = 200) -> "APIResponse":
        return cls(success=True, status=status, message=message, data=data)

    @classmethod
    def error(
        cls,
        status: int,
        message: str,
        path: Optional[str] = None,
        errors: Optional[List[ErrorDetail]] = None,
    ) -> "APIResponse":
        return cls(success=False, status=status, message=message, path=path, errors=errors)


def error_response(
    status: int,
    message: str,
    path: Optional[str] = None,
    errors: Optional[List[ErrorDetail]] = None,
    headers: Optional[Dict[str, str]] = None,
) -> JSONResponse:
    """JSONResponse carrying an error envelope; null fields are omitted."""
    body = APIResponse.error(status, message, path, errors).model_dump(exclude_none=True)
    return JSONResponse(status_code=status, content=body, headers=headers)


def unauthorized_body(message: str, path: str) -> Dict[str, Any]:
    return {
        "timestamp": _now(),
        "status": 401,
        "error": "Unauthorized",
        "message": message,
        "path": path,
    }


def unauthorized_response(message: str, path: str) -> JSONResponse:
    return JSONResponse(
        status_code=401,
        content=unauthorized_body(message, path),
        headers={"WWW-Authenticate": "Bearer"},
    )
