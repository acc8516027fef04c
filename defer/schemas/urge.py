from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class UrgeCreateRequest(BaseModel):
    intensity: int = Field(description="Clamped to 1..5.", examples=[3])
    note: Optional[str] = None
    used_fallback_action: bool = False
    logged_at: Optional[datetime] = Field(default=None, description="Defaults to now.")


class UrgeEventResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    intent_id: str
    logged_at: datetime
    intensity: int
    note: Optional[str]
    used_fallback_action: bool


class UrgeListResponse(BaseModel):
    total: int
    items: list[UrgeEventResponse]
