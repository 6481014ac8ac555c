from datetime import date, datetime
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from reservation_sync.models.enums import (
    EmailStatus,
    EmailType,
    ExternalSyncStatus,
    PaymentStatus,
    ReservationStatus,
)


class _StayDates(BaseModel):
    check_in: date = Field(..., description="Arrival date")
    check_out: date = Field(..., description="Departure date, after check_in")

    @model_validator(mode="after")
    def check_out_after_check_in(self) -> "_StayDates":
        if self.check_out <= self.check_in:
            raise ValueError("check_out must be after check_in")
        return self


class ReservationCreatePayload(_StayDates):
    """
    Schema for creating a reservation. Money is in minor currency units.
    """

    confirmation_number: str = Field(..., min_length=1, max_length=64, description="Unique per property")
    property_id: str = Field(..., min_length=1, description="Internal property ID")
    property_name: Optional[str] = Field(None, description="Shown in guest emails")
    room_id: str = Field(..., min_length=1, description="Internal room ID")
    guest_id: str = Field(..., min_length=1, description="Internal guest profile ID")
    guest_name: Optional[str] = Field(None, description="Guest full name")
    guest_email: Optional[str] = Field(None, description="Recipient of the follow-up sequence")
    channel_id: Optional[str] = Field(None, description="Sales channel")
    timezone: Optional[str] = Field(None, description="IANA zone of the property")
    adults: int = Field(1, ge=0)
    children: int = Field(0, ge=0)
    infants: int = Field(0, ge=0)
    special_requests: Optional[str] = None
    base_rate: int = Field(0, ge=0, description="Minor units")
    taxes: int = Field(0, ge=0, description="Minor units")
    fees: int = Field(0, ge=0, description="Minor units")
    currency: str = Field("EUR", min_length=3, max_length=3)
    payment_status: PaymentStatus = PaymentStatus.PENDING

    @field_validator("timezone")
    @classmethod
    def known_timezone(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return value
        try:
            ZoneInfo(value)
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise ValueError(f"Unknown timezone: {value}") from e
        return value


class TransitionPayload(BaseModel):
    """Internal status change requested by staff or the platform."""

    target_status: ReservationStatus = Field(..., description="Requested status")


class DateChangePayload(_StayDates):
    expected_version: Optional[int] = Field(
        None, ge=1, description="Reject with 409 when the reservation moved past this version"
    )


class ScheduledEmailOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    email_type: EmailType
    scheduled_at: datetime
    status: EmailStatus
    error_message: Optional[str] = None
    sent_at: Optional[datetime] = None
    provider_message_id: Optional[str] = None


class ReservationOut(BaseModel):
    id: str
    confirmation_number: str
    property_id: str
    room_id: str
    guest_id: str
    check_in: date
    check_out: date
    status: ReservationStatus
    payment_status: PaymentStatus
    external_sync_status: ExternalSyncStatus
    external_booking_id: Optional[str] = None
    confirmation_sent: bool = False
    version: int
    created_at: datetime
    updated_at: datetime
    scheduled_emails: list[ScheduledEmailOut] = Field(default_factory=list)
