"""
Prometheus metrics for the reservation lifecycle core.

Metrics are exposed via the /metrics endpoint for scraping by Prometheus.

Metric Types:
    - Counter: Cumulative metrics that only increase (e.g., transitions applied)
    - Histogram: Observations bucketed by value (e.g., runner tick duration)

Example:
    >>> from reservation_sync.metrics import runner_duration, emails_processed
    >>> with runner_duration.time():
    ...     summary = run_due_emails(engine, sender)
    ...     emails_processed.labels(email_type="post_checkin", outcome="sent").inc()
"""

from __future__ import annotations

from prometheus_client import Counter, Histogram

# =============================================================================
# State machine
# =============================================================================

transitions_total = Counter(
    "reservation_sync_transitions_total",
    "Reservation status transition attempts",
    ["from_status", "to_status", "origin", "outcome"],
)
"""
Counter for transition attempts.

Labels:
    from_status: Status read before the attempt
    to_status: Requested status
    origin: internal or external_webhook
    outcome: applied, noop, invalid or conflict
"""

# =============================================================================
# Email sequence
# =============================================================================

emails_scheduled = Counter(
    "reservation_sync_emails_scheduled_total",
    "Scheduled email rows created",
    ["email_type"],
)

emails_processed = Counter(
    "reservation_sync_emails_processed_total",
    "Scheduled email executions by final row status",
    ["email_type", "outcome"],
)
"""
Counter for executed scheduled emails.

Labels:
    email_type: post_booking_followup, post_checkin or post_checkout
    outcome: sent, skipped, failed or already_processed
"""

runner_batch_size = Histogram(
    "reservation_sync_runner_batch_size",
    "Due rows picked up per runner tick",
    buckets=(0, 1, 5, 10, 25, 50, 100, float("inf")),
)

runner_duration = Histogram(
    "reservation_sync_runner_duration_seconds",
    "Duration of one runner tick in seconds",
    buckets=(0.1, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0, float("inf")),
)

mail_latency = Histogram(
    "reservation_sync_mail_api_latency_seconds",
    "MailerSend API request latency in seconds",
    buckets=(0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, float("inf")),
)

# =============================================================================
# Channel manager
# =============================================================================

pushes_total = Counter(
    "reservation_sync_pushes_total",
    "Outbound booking pushes by outcome",
    ["outcome"],
)
"""
Counter for pushBooking calls.

Labels:
    outcome: pushed, failed, internal, already_synced or in_flight
"""

webhook_events_total = Counter(
    "reservation_sync_webhook_events_total",
    "Inbound channel-manager events by type and outcome",
    ["event_type", "outcome"],
)

api_requests = Counter(
    "reservation_sync_channel_api_requests_total",
    "Channel-manager API requests made",
    ["endpoint", "status_code"],
)
"""
Counter for API requests to the channel manager.

Labels:
    endpoint: API path template (e.g., "bookings", "oauth/token")
    status_code: HTTP status code, or "error" when no response arrived
"""

api_latency = Histogram(
    "reservation_sync_channel_api_latency_seconds",
    "Channel-manager API request latency in seconds",
    ["endpoint"],
    buckets=(0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, float("inf")),
)

token_refreshes = Counter(
    "reservation_sync_token_refreshes_total",
    "Channel-manager OAuth token refreshes",
    ["outcome"],
)
