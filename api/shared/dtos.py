"""Shared DTOs for the interview bot API."""
from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field

from api.shared.utils import utc_now


class BaseDTO(BaseModel):
    """Base DTO with common configuration."""

    model_config = ConfigDict(from_attributes=True)


class HealthCheckResponse(BaseDTO):
    """Health check response DTO."""
    status: str = Field(description="Service status")
    timestamp: datetime = Field(default_factory=utc_now)
    version: str = Field(default="0.1.0")
    dependencies: Dict[str, str] = Field(default_factory=dict)


class ErrorResponse(BaseDTO):
    """Error response DTO."""
    error_code: str = Field(description="Error code")
    message: str = Field(description="Error message")
    details: Optional[Dict[str, Any]] = Field(default=None, description="Additional error details")
    timestamp: datetime = Field(default_factory=utc_now)
