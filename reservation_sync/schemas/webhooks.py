from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


class InboundEvent(BaseModel):
    """Body posted by the channel manager to the webhook endpoint."""

    model_config = ConfigDict(populate_by_name=True)

    event_type: str = Field(..., alias="eventType", min_length=1, description="Provider event name")
    accommodation_id: str = Field(
        ..., alias="accommodationId", min_length=1, description="External accommodation ID"
    )
    payload: dict[str, Any] = Field(default_factory=dict, description="Event-specific data")


class InboundEventResponse(BaseModel):
    success: bool = True
    event_id: Optional[str] = None
    action: str
    reservation_id: Optional[str] = None
    status: Optional[str] = None
