from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


class RefreshRequest(BaseModel):
    reference: Optional[datetime] = Field(
        default=None, description="Sweep as of this instant. Defaults to now."
    )


class RefreshResponse(BaseModel):
    transitioned: int = Field(description="Intents moved from active_wait to checkpoint_due.")
    reference: datetime
