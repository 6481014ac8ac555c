"""
Outbound email delivery through the MailerSend HTTP API.

The sender is constructed once per process and injected wherever mail goes
out; tests substitute any object with a compatible ``send`` method.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any, Optional, Protocol

import requests
import structlog

from reservation_sync.config import (
    MAILER_SEND_API_KEY,
    MAILER_SEND_API_URL,
    MAILER_SEND_SENDER_EMAIL,
    MAILER_SEND_SENDER_NAME,
    MAILER_SEND_TIMEOUT_SECONDS,
    MAILER_SEND_TRIAL_EMAIL,
    MAILER_SEND_TRIAL_MODE,
)
from reservation_sync.exceptions import SendFailure
from reservation_sync.metrics import mail_latency

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class EmailMessage:
    to_email: str
    to_name: str
    subject: str
    html: str
    text: str
    tags: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class SendReceipt:
    message_id: Optional[str]
    recipient: str
    trial_mode: bool = False


class NotificationSender(Protocol):
    def send(self, message: EmailMessage) -> SendReceipt: ...


class MailerSendSender:
    """
    MailerSend client.

    In trial mode every message is redirected to the configured trial address,
    since trial accounts may only deliver to verified recipients.

    Args:
        session: HTTP session, injectable for tests.
        api_key: MailerSend API token. Sending without one raises SendFailure.
    """

    def __init__(
        self,
        session: Optional[requests.Session] = None,
        api_key: Optional[str] = MAILER_SEND_API_KEY,
        api_url: str = MAILER_SEND_API_URL,
        sender_email: str = MAILER_SEND_SENDER_EMAIL,
        sender_name: str = MAILER_SEND_SENDER_NAME,
        trial_mode: bool = MAILER_SEND_TRIAL_MODE,
        trial_email: Optional[str] = MAILER_SEND_TRIAL_EMAIL,
        timeout: float = MAILER_SEND_TIMEOUT_SECONDS,
    ) -> None:
        self.session = session or requests.Session()
        self.api_key = api_key
        self.api_url = api_url
        self.sender_email = sender_email
        self.sender_name = sender_name
        self.trial_mode = trial_mode
        self.trial_email = trial_email
        self.timeout = timeout

    def _recipient(self, message: EmailMessage) -> dict[str, str]:
        if self.trial_mode:
            if not self.trial_email:
                raise SendFailure("Trial mode is enabled but MAILER_SEND_TRIAL_EMAIL is not set")
            return {"email": self.trial_email, "name": "Test Recipient"}
        return {"email": message.to_email, "name": message.to_name}

    def build_payload(self, message: EmailMessage) -> dict[str, Any]:
        sender = {"email": self.sender_email, "name": self.sender_name}
        payload: dict[str, Any] = {
            "from": sender,
            "to": [self._recipient(message)],
            "reply_to": sender,
            "subject": message.subject,
            "html": message.html,
            "text": message.text,
        }
        if message.tags:
            payload["tags"] = message.tags
        return payload

    def send(self, message: EmailMessage) -> SendReceipt:
        """
        Deliver one message.

        Returns:
            SendReceipt: Provider message ID from the ``X-Message-Id`` header.

        Raises:
            SendFailure: On missing configuration, transport errors, timeouts or
            a non-2xx answer. Never retried here.
        """
        if not self.api_key:
            raise SendFailure("MAILER_SEND_API_KEY is not configured")

        payload = self.build_payload(message)
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
            "X-Requested-With": "XMLHttpRequest",
        }

        start_time = time.time()
        try:
            res = self.session.post(
                self.api_url, json=payload, headers=headers, timeout=self.timeout
            )
        except requests.RequestException as err:
            raise SendFailure(f"MailerSend request failed: {err}") from err
        finally:
            mail_latency.observe(time.time() - start_time)

        if not res.ok:
            logger.error(
                "mail_send_rejected",
                status_code=res.status_code,
                response_text=res.text[:500],
            )
            raise SendFailure(f"MailerSend returned {res.status_code}: {res.text[:200]}")

        recipient = payload["to"][0]["email"]
        receipt = SendReceipt(
            message_id=res.headers.get("X-Message-Id"),
            recipient=recipient,
            trial_mode=self.trial_mode,
        )
        logger.info(
            "mail_sent",
            message_id=receipt.message_id,
            recipient=recipient,
            trial_mode=self.trial_mode,
        )
        return receipt
