#!/usr/bin/env python3
"""
Diff Engine
Compares the previous snapshot with the freshly fetched schedule.

Both sides are cut down to showtimes at or after "now" before comparing, so
sessions that simply elapsed never show up as removals.
"""

import logging
from datetime import datetime
from typing import Optional

from .normalizer import schedule_counts
from .schema import Schedule, ShowtimeDiff

logger = logging.getLogger(__name__)


def future_only(schedule: Schedule, now: datetime) -> Schedule:
    """Keep instants at or after now, dropping titles left empty"""
    filtered: Schedule = {}
    for title, instants in schedule.items():
        upcoming = [instant for instant in instants if instant >= now]
        if upcoming:
            filtered[title] = upcoming
    return filtered


def compute_diff(previous: Optional[Schedule], current: Schedule, now: datetime) -> ShowtimeDiff:
    """
    Work out which showtimes were added or removed

    Args:
        previous: Last saved schedule, or None if there is no snapshot yet
        current: Schedule from this run
        now: Aware reference instant for the future-only filter

    Returns:
        ShowtimeDiff. With no previous snapshot this is an initial diff that
        only carries summary counts.
    """
    if previous is None:
        titles, showtimes = schedule_counts(current)
        return ShowtimeDiff(
            changed=True,
            is_initial=True,
            title_count=titles,
            showtime_count=showtimes,
            message=f"Initial check: {titles} movies with {showtimes} showtimes found",
        )

    old = future_only(previous, now)
    new = future_only(current, now)

    added: Schedule = {}
    removed: Schedule = {}

    for title, instants in new.items():
        before = set(old.get(title, ()))
        gained = [instant for instant in instants if instant not in before]
        if gained:
            added[title] = gained

    for title, instants in old.items():
        after = set(new.get(title, ()))
        lost = [instant for instant in instants if instant not in after]
        if lost:
            removed[title] = lost

    titles, showtimes = schedule_counts(new)
    diff = ShowtimeDiff(
        changed=bool(added or removed),
        added=added,
        removed=removed,
        title_count=titles,
        showtime_count=showtimes,
    )

    logger.info(
        f"Diff: +{sum(len(v) for v in added.values())} "
        f"-{sum(len(v) for v in removed.values())} across "
        f"{len(set(added) | set(removed))} title(s)"
    )
    return diff
