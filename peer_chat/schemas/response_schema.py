"""Unified API response schemas."""

from typing import Generic, TypeVar

from pydantic import BaseModel

T = TypeVar("T")


class ErrorResponse(BaseModel):
    """Failure envelope: success flag plus an error string and code."""

    success: bool = False
    status: int
    message: str
    code: str


class ApiResponse(BaseModel, Generic[T]):
    """Success envelope with status, message, and data payload."""

    success: bool = True
    status: int = 200
    message: str = "Success"
    data: T | None = None


def success_response(data: T, status: int = 200, message: str = "Success") -> dict:
    """Build a success response dict for returning from endpoints."""
    return {"success": True, "status": status, "message": message, "data": data}
