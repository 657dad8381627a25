"""Error hierarchy for the showtime monitor.

Fetch-stage errors abort the whole run before any state is written.
Notification errors surface after the snapshot has been saved.
"""

from typing import Optional


class MonitorError(Exception):
    """Base exception for all monitor errors."""

    pass


class ConfigError(MonitorError):
    """Missing or invalid configuration. Fatal before any request is made."""

    pass


class FetchError(MonitorError):
    """Any failure while acquiring showtimes. The run produces no schedule."""

    pass


class BootstrapError(FetchError):
    """Network-level failure while priming the browsing session."""

    pass


class TransportError(FetchError):
    """Timeout or connection failure on a data query."""

    pass


class ResponseError(FetchError):
    """The data endpoint answered, but not with usable showings.

    Carries the date being queried and a snippet of the body for the logs.
    """

    def __init__(
        self,
        message: str,
        date: Optional[str] = None,
        status_code: Optional[int] = None,
        body_snippet: str = "",
    ) -> None:
        super().__init__(message)
        self.date = date
        self.status_code = status_code
        self.body_snippet = body_snippet


class BlockedError(ResponseError):
    """Explicit forbidden response from the data endpoint."""

    pass


class UpstreamStatusError(ResponseError):
    """Any other non-2xx response from the data endpoint."""

    pass


class MalformedResponseError(ResponseError):
    """Unexpected payload shape or an embedded error indicator."""

    pass


class NotificationError(MonitorError):
    """Webhook delivery failed. No retry is attempted."""

    pass
