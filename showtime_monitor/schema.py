#!/usr/bin/env python3
"""
Schema Definitions
Centralized dataclasses and type aliases used across the Showtime Monitor.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional


# A normalized schedule: title -> unique, ascending, timezone-aware instants
Schedule = Dict[str, List[datetime]]


# Session-related dataclasses
@dataclass(frozen=True)
class BrowsingSession:
    """Cookie and token state collected while priming the site"""

    cookies: Dict[str, str] = field(default_factory=dict)
    csrf_token: Optional[str] = None

    def cookie_header(self) -> str:
        """Render cookies as a Cookie request header value"""
        return "; ".join(f"{name}={value}" for name, value in self.cookies.items())


# Fetcher-related dataclasses
@dataclass
class ShowingRecord:
    """A single raw session as returned by the data source"""

    title: str
    start: str
    source_id: str = ""


# Diff-related dataclasses
@dataclass
class ShowtimeDiff:
    """Represents changes between the previous and current schedules"""

    changed: bool
    is_initial: bool = False
    added: Schedule = field(default_factory=dict)
    removed: Schedule = field(default_factory=dict)
    title_count: int = 0
    showtime_count: int = 0
    message: str = ""


# Notification-related dataclasses
@dataclass
class NotificationPayload:
    """Three-field payload expected by the webhook"""

    value1: str
    value2: str
    value3: str

    def to_dict(self) -> Dict[str, str]:
        return {"value1": self.value1, "value2": self.value2, "value3": self.value3}
