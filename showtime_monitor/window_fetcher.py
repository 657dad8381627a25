#!/usr/bin/env python3
"""
Window Fetcher
Queries the cinema's GraphQL API once per calendar day across a rolling
window and collects the raw showings. A single failed day aborts the run:
a partial window would look like a wave of removed sessions.
"""

import json
import logging
import time
from abc import ABC, abstractmethod
from datetime import datetime, timedelta
from typing import Callable, Dict, List, Optional, Sequence
from zoneinfo import ZoneInfo

import requests

from .errors import (
    BlockedError,
    MalformedResponseError,
    TransportError,
    UpstreamStatusError,
)
from .schema import BrowsingSession, ShowingRecord
from .session_primer import browser_headers

BLOCKED_STATUS_CODE = 403
BODY_SNIPPET_LENGTH = 400

SHOWINGS_QUERY = """
query ($date: String, $ids: [ID], $movieId: ID, $movieIds: [ID], $titleClassId: ID, $titleClassIds: [ID], $siteIds: [ID], $everyShowingBadgeIds: [ID], $anyShowingBadgeIds: [ID], $resultVersion: String) {
  showingsForDate(
    date: $date
    ids: $ids
    movieId: $movieId
    movieIds: $movieIds
    titleClassId: $titleClassId
    titleClassIds: $titleClassIds
    siteIds: $siteIds
    everyShowingBadgeIds: $everyShowingBadgeIds
    anyShowingBadgeIds: $anyShowingBadgeIds
    resultVersion: $resultVersion
  ) {
    data {
      id
      time
      movie { name }
    }
  }
}
"""


def window_dates(timezone: str, days_ahead: int, now: Optional[datetime] = None) -> List[str]:
    """
    Calendar dates covering today plus days_ahead days

    Args:
        timezone: IANA timezone that defines "today"
        days_ahead: Number of days after today to include
        now: Reference instant (defaults to the current time)

    Returns:
        List of days_ahead + 1 dates in YYYY-MM-DD format
    """
    tz = ZoneInfo(timezone)
    today = (now or datetime.now(tz)).astimezone(tz).date()
    return [(today + timedelta(days=i)).isoformat() for i in range(days_ahead + 1)]


class ShowingsSource(ABC):
    """A way of producing raw showings for a window of dates"""

    @abstractmethod
    def fetch_window(self, session: BrowsingSession, dates: Sequence[str]) -> List[ShowingRecord]:
        """Return every showing in dates, or raise FetchError if any date fails"""


class GraphQLShowingsSource(ShowingsSource):
    """Fetches showings day by day from the site's showingsForDate query"""

    def __init__(
        self,
        graphql_url: str,
        site_ids: Sequence,
        origin: str,
        referer: str,
        timeout: float = 20,
        delay: float = 0.15,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.graphql_url = graphql_url
        self.site_ids = list(site_ids)
        self.origin = origin
        self.referer = referer
        self.timeout = timeout
        self.delay = delay
        self._sleep = sleep
        self.logger = logging.getLogger(__name__)
        self.stats = {
            "total_requests": 0,
            "successful_requests": 0,
            "failed_requests": 0,
            "records_found": 0,
        }

    def build_variables(self, date: str) -> Dict:
        """Query variables for one calendar date"""
        return {
            "siteIds": self.site_ids,
            "date": date,
            "ids": None,
            "movieId": None,
            "movieIds": None,
            "titleClassId": None,
            "titleClassIds": None,
            "everyShowingBadgeIds": None,
            "anyShowingBadgeIds": None,
            "resultVersion": None,
        }

    def build_headers(self, session: BrowsingSession) -> Dict[str, str]:
        """Browser headers plus the primed session state"""
        headers = browser_headers(
            self.origin,
            self.referer,
            **{
                "Content-Type": "application/json",
                "X-Requested-With": "XMLHttpRequest",
            },
        )
        cookie_header = session.cookie_header()
        if cookie_header:
            headers["Cookie"] = cookie_header
        if session.csrf_token:
            headers["X-CSRF-Token"] = session.csrf_token
        return headers

    def fetch_date(self, session: BrowsingSession, date: str) -> List[ShowingRecord]:
        """
        Fetch the showings for a single date

        Raises:
            TransportError: On timeout or connection failure
            BlockedError: If the endpoint answers 403
            UpstreamStatusError: On any other non-2xx status
            MalformedResponseError: If the body is not a usable showings payload
        """
        self.stats["total_requests"] += 1
        try:
            response = requests.post(
                self.graphql_url,
                json={"query": SHOWINGS_QUERY, "variables": self.build_variables(date)},
                headers=self.build_headers(session),
                timeout=self.timeout,
            )
        except requests.exceptions.RequestException as e:
            self.stats["failed_requests"] += 1
            raise TransportError(f"Request for date={date} failed: {e}") from e

        try:
            records = self._parse_response(response, date)
        except Exception:
            self.stats["failed_requests"] += 1
            raise

        self.stats["successful_requests"] += 1
        self.stats["records_found"] += len(records)
        return records

    def _parse_response(self, response: requests.Response, date: str) -> List[ShowingRecord]:
        """Classify the response and extract its showings"""
        snippet = (response.text or "")[:BODY_SNIPPET_LENGTH]
        status = response.status_code

        if status == BLOCKED_STATUS_CODE:
            raise BlockedError(
                f"GraphQL 403 for date={date}. Body snippet: {snippet}",
                date=date,
                status_code=status,
                body_snippet=snippet,
            )
        if status < 200 or status >= 300:
            raise UpstreamStatusError(
                f"GraphQL HTTP {status} for date={date}. Body snippet: {snippet}",
                date=date,
                status_code=status,
                body_snippet=snippet,
            )

        try:
            payload = response.json()
        except ValueError:
            raise MalformedResponseError(
                f"GraphQL response for date={date} is not JSON. Body snippet: {snippet}",
                date=date,
                status_code=status,
                body_snippet=snippet,
            )

        if not isinstance(payload, dict):
            raise MalformedResponseError(
                f"GraphQL response for date={date} is not an object",
                date=date,
                status_code=status,
                body_snippet=snippet,
            )

        # Some setups return {"data": {}, "error": {...}} on auth failures
        error = payload.get("error")
        if isinstance(error, dict) and error.get("message"):
            raise MalformedResponseError(
                f"GraphQL error for date={date}: {error['message']}",
                date=date,
                status_code=status,
                body_snippet=snippet,
            )
        if payload.get("errors"):
            raise MalformedResponseError(
                f"GraphQL errors for date={date}: {json.dumps(payload['errors'])[:600]}",
                date=date,
                status_code=status,
                body_snippet=snippet,
            )

        try:
            showings = payload["data"]["showingsForDate"]["data"]
        except (KeyError, TypeError):
            showings = None
        if not isinstance(showings, list):
            raise MalformedResponseError(
                f"GraphQL response for date={date} has no showingsForDate list",
                date=date,
                status_code=status,
                body_snippet=snippet,
            )

        records = []
        for showing in showings:
            if not isinstance(showing, dict):
                continue
            movie = showing.get("movie") or {}
            records.append(
                ShowingRecord(
                    title=str(movie.get("name") or "") if isinstance(movie, dict) else "",
                    start=str(showing.get("time") or ""),
                    source_id=str(showing.get("id") or ""),
                )
            )
        return records

    def fetch_window(self, session: BrowsingSession, dates: Sequence[str]) -> List[ShowingRecord]:
        """
        Fetch every date in order, pausing between requests

        Returns:
            All records for the window. Nothing is returned if any day fails.
        """
        self.logger.info(f"Fetching showings for {len(dates)} days starting {dates[0] if dates else '-'}")
        start_time = time.time()

        all_records: List[ShowingRecord] = []
        for index, date in enumerate(dates):
            try:
                records = self.fetch_date(session, date)
            except Exception as e:
                self.logger.error(f"Aborting fetch on day {index + 1}/{len(dates)} ({date}): {e}")
                raise

            self.logger.debug(f"{date}: {len(records)} showings")
            all_records.extend(records)

            if self.delay > 0 and index < len(dates) - 1:
                self._sleep(self.delay)

        elapsed = time.time() - start_time
        self.logger.info(
            f"Fetched {len(all_records)} showings in {elapsed:.1f}s "
            f"({self.stats['successful_requests']}/{self.stats['total_requests']} requests ok)"
        )
        return all_records
