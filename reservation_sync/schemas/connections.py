from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from reservation_sync.models.enums import ChannelSystem


class ConnectionCreatePayload(BaseModel):
    """
    Schema for linking a property to a channel manager.
    Tokens come from the provider's OAuth flow, which runs outside this service.
    """

    property_id: str = Field(..., min_length=1, description="Internal property ID")
    system_type: ChannelSystem = Field(ChannelSystem.OCTORATE, description="Channel manager")
    external_accommodation_id: str = Field(..., min_length=1, description="Provider accommodation ID")
    access_token: Optional[str] = Field(None, description="OAuth access token")
    refresh_token: Optional[str] = Field(None, description="OAuth refresh token")
    token_expires_at: Optional[datetime] = Field(None, description="Access token expiry")


class ConnectionUpdatePayload(BaseModel):
    """All fields optional; only those sent are written."""

    external_accommodation_id: Optional[str] = Field(None, min_length=1)
    access_token: Optional[str] = None
    refresh_token: Optional[str] = None
    token_expires_at: Optional[datetime] = None
    is_active: Optional[bool] = None
    is_connected: Optional[bool] = None


class RoomMappingPayload(BaseModel):
    room_id: str = Field(..., min_length=1, description="Internal room ID")
    external_room_id: str = Field(..., min_length=1, description="Provider room type ID")
