"""Response envelope shared by every endpoint."""

from typing import Any, Optional

from pydantic import BaseModel


class ApiResponse(BaseModel):
    """``{success, message, data?, errors?}``; the same shape errors use."""
    success: bool = True
    message: str
    data: Optional[Any] = None
    errors: Optional[Any] = None


def ok(message: str, data: Any = None) -> ApiResponse:
    """Build a success envelope, dumping pydantic payloads by alias."""
    if isinstance(data, BaseModel):
        data = data.model_dump(mode="json", by_alias=True)
    return ApiResponse(success=True, message=message, data=data)
