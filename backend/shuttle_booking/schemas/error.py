"""
Error envelope returned for every rejected request.
"""

from typing import Any
from pydantic import BaseModel, Field

from shuttle_booking.core.errors import ErrorKind


class ErrorResponse(BaseModel):
    error_kind: ErrorKind
    message: str
    details: dict[str, Any] = Field(default_factory=dict)
