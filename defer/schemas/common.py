"""
Shared schema primitives used across the API.
"""
from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

from defer.models.enums import DelayProtocolType
from defer.services.delay_protocol import DelayProtocol


class ErrorDetail(BaseModel):
    """A single field-level validation error."""
    field: str
    message: str
    type: str


class ErrorResponse(BaseModel):
    """Standard error envelope returned for all 4xx/5xx responses."""
    model_config = ConfigDict(from_attributes=True)

    code: str
    message: str
    details: Optional[dict[str, Any]] = None


class DelayProtocolIn(BaseModel):
    type: DelayProtocolType = Field(
        default=DelayProtocolType.twenty_four_hours,
        description='"ten_minutes" | "twenty_four_hours" | "seventy_two_hours" | "until_payday" | "custom_date"',
    )
    custom_date: Optional[datetime] = Field(
        default=None,
        description="Only read for custom_date. Clamped to at least 10 minutes after the start.",
        examples=["2026-11-01T09:00:00Z"],
    )

    def to_protocol(self) -> DelayProtocol:
        return DelayProtocol(type=self.type, custom_date=self.custom_date)
