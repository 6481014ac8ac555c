"""String enums for every status-like column. Stored as plain strings."""

from enum import Enum


class ReservationStatus(str, Enum):
    TENTATIVE = "tentative"
    CONFIRMED = "confirmed"
    CHECKED_IN = "checked_in"
    CHECKED_OUT = "checked_out"
    CANCELLED = "cancelled"
    NO_SHOW = "no_show"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    PAID = "paid"
    REFUNDED = "refunded"


class ExternalSyncStatus(str, Enum):
    NOT_SYNCED = "not_synced"
    PUSHED = "pushed"
    CONFIRMED = "confirmed"
    FAILED = "failed"


class TransitionOrigin(str, Enum):
    INTERNAL = "internal"
    EXTERNAL_WEBHOOK = "external_webhook"


class EmailType(str, Enum):
    POST_BOOKING_FOLLOWUP = "post_booking_followup"
    POST_CHECKIN = "post_checkin"
    POST_CHECKOUT = "post_checkout"


class EmailStatus(str, Enum):
    SCHEDULED = "scheduled"
    SENT = "sent"
    SKIPPED = "skipped"
    FAILED = "failed"


class IssueStatus(str, Enum):
    OPEN = "open"
    RESOLVED = "resolved"
    CLOSED = "closed"


class ChannelSystem(str, Enum):
    OCTORATE = "octorate"
