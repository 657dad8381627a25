#!/usr/bin/env python3
"""
Normalizer
Turns raw showing records into a Schedule: title -> sorted, unique UTC instants.
"""

import logging
from datetime import datetime, timezone, tzinfo
from typing import Dict, Iterable, List, Optional, Set, Tuple

from .schema import Schedule, ShowingRecord

logger = logging.getLogger(__name__)


def parse_instant(value: str, default_tz: Optional[tzinfo] = None) -> Optional[datetime]:
    """
    Parse an ISO-8601 timestamp into an aware UTC datetime

    Args:
        value: Timestamp string, e.g. "2025-01-10T10:00:00Z"
        default_tz: Zone applied to timestamps without an offset (UTC if None)

    Returns:
        Aware datetime in UTC, or None if the string is not a timestamp
    """
    text = value.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=default_tz or timezone.utc)
    return parsed.astimezone(timezone.utc)


def format_instant(instant: datetime) -> str:
    """Serialize an instant as an ISO-8601 UTC string ending in Z"""
    return instant.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def normalize_records(records: Iterable[ShowingRecord], default_tz: Optional[tzinfo] = None) -> Schedule:
    """Group records by title, dropping blanks and duplicate instants"""
    grouped: Dict[str, Set[datetime]] = {}
    skipped = 0

    for record in records:
        title = (record.title or "").strip()
        start = (record.start or "").strip()
        if not title or not start:
            skipped += 1
            continue

        instant = parse_instant(start, default_tz)
        if instant is None:
            logger.warning(f"Skipping {title!r}: unparseable start time {start!r}")
            skipped += 1
            continue

        grouped.setdefault(title, set()).add(instant)

    if skipped:
        logger.debug(f"Skipped {skipped} incomplete record(s)")

    return {title: sorted(instants) for title, instants in grouped.items()}


def normalize_schedule(schedule: Schedule) -> Schedule:
    """Re-normalize an existing schedule (trim titles, dedupe, sort)"""
    records = [
        ShowingRecord(title=title, start=format_instant(instant))
        for title, instants in schedule.items()
        for instant in instants
    ]
    return normalize_records(records)


def schedule_counts(schedule: Schedule) -> Tuple[int, int]:
    """Return (number of titles, number of showtimes)"""
    return len(schedule), sum(len(instants) for instants in schedule.values())


def serialize_schedule(schedule: Schedule) -> Dict[str, List[str]]:
    return {title: [format_instant(i) for i in instants] for title, instants in schedule.items()}
