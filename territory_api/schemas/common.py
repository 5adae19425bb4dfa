from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Base schema exchanged in camelCase on the wire and snake_case in Python."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


class OkResponse(BaseModel):
    """Acknowledgement returned by account operations."""
    ok: bool = Field(True)


class SuccessResponse(BaseModel):
    """Acknowledgement returned by territory operations."""
    success: bool = Field(True)
    message: Optional[str] = Field(default=None, description="Human readable message")


class MessageResponse(BaseModel):
    """Plain message body, used by the health probe."""
    message: str = Field(..., description="Message key or human readable message")
    details: Optional[dict] = Field(default=None, description="Extra data, if any")


class ErrorInfo(BaseModel):
    """What went wrong; `message` is an i18n key the frontend translates."""
    type: str = Field(..., description="http_error, validation_error or internal_error")
    message: str = Field(..., description="Message key, e.g. api.error.auth.unauthorized")
    details: Optional[Any] = Field(default=None, description="Validator output for validation errors")


# PUBLIC_INTERFACE
class ErrorResponse(BaseModel):
    """Body of every error response, built by the global exception handlers."""
    status: int = Field(..., description="HTTP status code")
    error: ErrorInfo = Field(..., description="Error details")
    correlation_id: Optional[str] = Field(default=None, description="X-Correlation-ID of the request")
    path: Optional[str] = Field(default=None, description="Request path")
    method: Optional[str] = Field(default=None, description="HTTP method")
    timestamp: datetime = Field(..., description="When the error was produced (UTC)")
