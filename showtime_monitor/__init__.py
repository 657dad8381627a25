"""
Showtime Monitor Package

Watches a cinema's session listings and posts a webhook notification when
showtimes are added or removed.

Modules:
- session_primer: collects the cookies the showings API requires
- window_fetcher: queries the API day by day over a rolling window
- normalizer: groups raw showings into a per-title schedule
- snapshot_store: persists the last known schedule
- diff_engine: compares schedules, ignoring showtimes already past
- notifier: formats and sends the webhook payload
"""

__version__ = "1.0.0"
__author__ = "Showtime Monitor"
