#!/usr/bin/env python3
"""Webhook notifier for showtime changes"""

import logging
from datetime import datetime
from typing import List
from zoneinfo import ZoneInfo

import requests

from .errors import ConfigError, NotificationError
from .schema import NotificationPayload, Schedule, ShowtimeDiff

ADDED_HEADER = "SESSIONS ADDED:"
REMOVED_HEADER = "SESSIONS REMOVED:"
NO_ADDED_PLACEHOLDER = "No sessions added"
NO_REMOVED_PLACEHOLDER = "No sessions removed"
LINE_BREAK = "<br>\n"

SEND_TIMEOUT_SECONDS = 20


def _clock(local: datetime) -> str:
    """12-hour clock without a leading zero, e.g. 6:10 pm"""
    hour = local.hour % 12 or 12
    period = "am" if local.hour < 12 else "pm"
    return f"{hour}:{local.minute:02d} {period}"


def format_showtime(instant: datetime, timezone: str) -> str:
    """Render a showtime like 'December 23 6:10 pm' in the given zone"""
    local = instant.astimezone(ZoneInfo(timezone))
    return f"{local.strftime('%B')} {local.day} {_clock(local)}"


def format_timestamp(instant: datetime, timezone: str) -> str:
    """Render the check time like 'Monday, 19 October 2026 at 5:44 pm AEDT'"""
    local = instant.astimezone(ZoneInfo(timezone))
    return (
        f"{local.strftime('%A')}, {local.day} {local.strftime('%B')} {local.year} "
        f"at {_clock(local)} {local.tzname()}"
    )


def _format_block(header: str, changes: Schedule, timezone: str) -> str:
    if not changes:
        return ""
    lines: List[str] = [header + LINE_BREAK]
    for title in sorted(changes):
        times = ", ".join(format_showtime(instant, timezone) for instant in sorted(changes[title]))
        lines.append(f"{title}: {times}{LINE_BREAK}")
    return "".join(lines)


def format_payload(diff: ShowtimeDiff, now: datetime, timezone: str) -> NotificationPayload:
    """
    Build the webhook payload for a diff

    Args:
        diff: Result of compute_diff
        now: Time of the check
        timezone: Zone used for every human-readable time

    Returns:
        NotificationPayload with the added block, removed block and timestamp
    """
    timestamp = format_timestamp(now, timezone)

    if diff.is_initial:
        return NotificationPayload(value1=diff.message, value2="", value3=timestamp)

    return NotificationPayload(
        value1=_format_block(ADDED_HEADER, diff.added, timezone) or NO_ADDED_PLACEHOLDER,
        value2=_format_block(REMOVED_HEADER, diff.removed, timezone) or NO_REMOVED_PLACEHOLDER,
        value3=timestamp,
    )


class WebhookNotifier:
    """Posts notification payloads to a webhook URL"""

    def __init__(self, webhook_url: str, timeout: float = SEND_TIMEOUT_SECONDS) -> None:
        if not webhook_url:
            raise ConfigError("Webhook URL not set (IFTTT_WEBHOOK_URL or notification.webhook_url)")
        self.webhook_url = webhook_url
        self.timeout = timeout
        self.logger = logging.getLogger(__name__)

    def send(self, payload: NotificationPayload) -> None:
        """
        Send one payload

        Raises:
            NotificationError: If the request fails or is rejected
        """
        try:
            response = requests.post(self.webhook_url, json=payload.to_dict(), timeout=self.timeout)
            response.raise_for_status()
        except requests.exceptions.RequestException as e:
            self.logger.error(f"Error sending notification: {e}")
            raise NotificationError(f"Webhook delivery failed: {e}") from e

        self.logger.info("Notification sent successfully")
