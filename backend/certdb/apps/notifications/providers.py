from __future__ import annotations

import logging
import os
from typing import Tuple

logger = logging.getLogger(__name__)


class ReminderProvider:
    """Delivers one expiry reminder. Raise to report a failed delivery."""

    def send(
        self,
        *,
        recipient: str,
        subject: str,
        context: dict,
        correlation_id: str | None,
    ) -> None:
        raise NotImplementedError


class NoopProvider(ReminderProvider):
    def send(
        self,
        *,
        recipient: str,
        subject: str,
        context: dict,
        correlation_id: str | None,
    ) -> None:
        return None


class LoggingProvider(ReminderProvider):
    """Writes reminders to the application log instead of delivering them."""

    def send(
        self,
        *,
        recipient: str,
        subject: str,
        context: dict,
        correlation_id: str | None,
    ) -> None:
        logger.info(
            subject,
            extra={
                "recipient": recipient,
                "correlation_id": correlation_id,
                "priority": context.get("priority"),
                "days_left": context.get("days_left"),
            },
        )


def get_reminder_provider() -> Tuple[ReminderProvider, bool]:
    provider_name = (os.getenv("CERTDB_REMINDER_PROVIDER") or "").strip().lower()
    if not provider_name or provider_name in {"none", "noop", "disabled"}:
        return NoopProvider(), False
    if provider_name == "log":
        return LoggingProvider(), True
    raise ValueError(f"Unsupported reminder provider: {provider_name}")
