"""Jinja2 rendering of the booking confirmation and follow-up sequence emails."""

import hashlib
import hmac
from pathlib import Path
from typing import Any

from jinja2 import Environment, FileSystemLoader, StrictUndefined, select_autoescape

from reservation_sync.config import EMAIL_TOKEN_SECRET, SITE_URL
from reservation_sync.models.enums import EmailType
from reservation_sync.services.notifications import EmailMessage

TEMPLATES_DIR = Path(__file__).resolve().parent.parent / "templates"

SUBJECTS: dict[EmailType, str] = {
    EmailType.POST_BOOKING_FOLLOWUP: "How was your booking experience?",
    EmailType.POST_CHECKIN: "Welcome to {property_name}!",
    EmailType.POST_CHECKOUT: "We hope you enjoyed your stay at {property_name}!",
}

_env = Environment(
    loader=FileSystemLoader(str(TEMPLATES_DIR)),
    autoescape=select_autoescape(enabled_extensions=("html",), default_for_string=False),
    undefined=StrictUndefined,
    trim_blocks=True,
    lstrip_blocks=True,
)


def feedback_token(reservation_id: str, email: str) -> str:
    """HMAC-SHA256 over the reservation and guest email, hex encoded."""
    data = f"{reservation_id}:{email.strip().lower()}".encode()
    return hmac.new(EMAIL_TOKEN_SECRET.encode(), data, hashlib.sha256).hexdigest()


def build_context(reservation: dict[str, Any]) -> dict[str, Any]:
    reservation_id = reservation["id"]
    guest_email = reservation.get("guest_email") or ""
    token = feedback_token(reservation_id, guest_email)
    return {
        "guest_name": reservation.get("guest_name") or "Guest",
        "property_name": reservation.get("property_name") or "your accommodation",
        "confirmation_number": reservation["confirmation_number"],
        "check_in": reservation["check_in"].strftime("%d %B %Y"),
        "check_out": reservation["check_out"].strftime("%d %B %Y"),
        "rating_url": (
            f"{SITE_URL}/feedback/reservation-staff-rating"
            f"?reservationId={reservation_id}&token={token}"
        ),
        "issue_url": f"{SITE_URL}/feedback/booking-issue?reservationId={reservation_id}&token={token}",
        "contact_url": f"{SITE_URL}/contact",
        "site_url": SITE_URL,
    }


def render_email(email_type: EmailType, reservation: dict[str, Any]) -> EmailMessage:
    """
    Render subject, HTML and plain-text bodies for one sequence email.

    Raises:
        jinja2.TemplateError: If a template is missing or references an unknown variable.
    """
    context = build_context(reservation)
    return EmailMessage(
        to_email=reservation["guest_email"],
        to_name=context["guest_name"],
        subject=SUBJECTS[email_type].format(**context),
        html=_env.get_template(f"{email_type.value}.html").render(**context),
        text=_env.get_template(f"{email_type.value}.txt").render(**context),
        tags=["email-sequence", email_type.value],
    )


def render_booking_confirmation(reservation: dict[str, Any]) -> EmailMessage:
    """Render the one-off confirmation sent when a booking becomes confirmed."""
    context = build_context(reservation)
    total = reservation.get("base_rate", 0) + reservation.get("taxes", 0) + reservation.get("fees", 0)
    context.update(
        nights=(reservation["check_out"] - reservation["check_in"]).days,
        guests=(
            reservation.get("adults", 1)
            + reservation.get("children", 0)
            + reservation.get("infants", 0)
        ),
        total_due=f"{total / 100:.2f} {reservation.get('currency') or 'EUR'}",
        special_requests=reservation.get("special_requests"),
    )
    return EmailMessage(
        to_email=reservation["guest_email"],
        to_name=context["guest_name"],
        subject=f"Booking Confirmation - {context['property_name']}",
        html=_env.get_template("booking_confirmation.html").render(**context),
        text=_env.get_template("booking_confirmation.txt").render(**context),
        tags=["booking-confirmation"],
    )
