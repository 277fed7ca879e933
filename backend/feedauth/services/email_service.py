"""Outbound email collaborator.

Delivery itself lives outside this service. Callers treat every send as
fire-and-forget: a failure is logged and never fails the surrounding
operation.
"""

from __future__ import annotations

import logging
from typing import Protocol

from feedauth.config import settings

logger = logging.getLogger(__name__)


class EmailNotifier(Protocol):
    def send_welcome_email(self, email: str, name: str) -> None: ...

    def send_password_reset_email(self, email: str, reset_token: str, name: str) -> None: ...


def redact_email(email: str) -> str:
    """Redact an email address for logging to avoid PII leakage."""
    if "@" not in email:
        return "redacted"
    local, domain = email.split("@", 1)
    return f"{local[:2]}***@{domain}"


class LoggingEmailNotifier:
    """Development notifier: logs instead of sending."""

    def __init__(self, frontend_url: str = settings.FRONTEND_URL) -> None:
        self.frontend_url = frontend_url.rstrip("/")

    def send_welcome_email(self, email: str, name: str) -> None:
        logger.info(f"Welcome email queued for {redact_email(email)}")

    def send_password_reset_email(self, email: str, reset_token: str, name: str) -> None:
        # The link carries the token; never log it
        logger.info(
            f"Password reset email queued for {redact_email(email)} "
            f"(link base {self.frontend_url}/reset-password)"
        )


def notify_safely(action: str, send, *args) -> bool:
    """Run a notifier call, logging instead of raising on failure."""
    try:
        send(*args)
        return True
    except Exception as exc:  # noqa: BLE001
        logger.error(f"Failed to send {action} email: {exc}")
        return False


email_notifier: EmailNotifier = LoggingEmailNotifier()
