#!/usr/bin/env python3
"""
Session Primer
Visits the cinema's public pages to collect the cookies (and CSRF token, when
the site publishes one) that the showings API requires.
"""

import logging
import re
from typing import Dict, List, Optional

import requests
from bs4 import BeautifulSoup

from .errors import BootstrapError
from .schema import BrowsingSession

USER_AGENT = (
    "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/124.0.0.0 Safari/537.36"
)
ACCEPT_LANGUAGE = "en-AU,en;q=0.9"
HTML_ACCEPT = "text/html,application/xhtml+xml"
JSON_ACCEPT = "application/json, text/plain, */*"

# Inline script assignment, e.g. window.csrfToken = "..."
CSRF_SCRIPT_PATTERN = re.compile(r"""csrfToken["']?\s*[:=]\s*["']([^"']+)["']""", re.IGNORECASE)


def browser_headers(origin: str, referer: str, **extra: str) -> Dict[str, str]:
    """Headers shared by every request made against the cinema site"""
    headers = {
        "User-Agent": USER_AGENT,
        "Accept": JSON_ACCEPT,
        "Accept-Language": ACCEPT_LANGUAGE,
        "Origin": origin,
        "Referer": referer,
    }
    headers.update(extra)
    return headers


def extract_csrf_token(html: str) -> Optional[str]:
    """Find a CSRF token in a meta tag or an inline script"""
    if not html:
        return None

    soup = BeautifulSoup(html, "html.parser")
    meta = soup.find("meta", attrs={"name": re.compile(r"^csrf-token$", re.IGNORECASE)})
    if meta and meta.get("content"):
        return meta["content"]

    match = CSRF_SCRIPT_PATTERN.search(html)
    if match:
        return match.group(1)
    return None


class SessionPrimer:
    """Builds a BrowsingSession by walking the bootstrap pages in order"""

    def __init__(self, bootstrap_urls: List[str], origin: str, timeout: float = 20):
        """
        Args:
            bootstrap_urls: Pages to visit, in order (home page first)
            origin: Site origin sent with every request
            timeout: Per-request timeout in seconds
        """
        if not bootstrap_urls:
            raise ValueError("At least one bootstrap URL is required")
        self.bootstrap_urls = list(bootstrap_urls)
        self.origin = origin
        self.timeout = timeout
        self.logger = logging.getLogger(__name__)

    @property
    def referer(self) -> str:
        """The last bootstrap page, used as Referer for API calls"""
        return self.bootstrap_urls[-1]

    def prime(self) -> BrowsingSession:
        """
        Visit every bootstrap page and accumulate session state

        Responses are inspected whatever their status code, since error
        pages can still set the cookies needed later.

        Returns:
            BrowsingSession with merged cookies and the first CSRF token found

        Raises:
            BootstrapError: If a page could not be fetched at all
        """
        cookies: Dict[str, str] = {}
        csrf_token: Optional[str] = None

        for url in self.bootstrap_urls:
            headers = browser_headers(self.origin, self.referer, Accept=HTML_ACCEPT)
            if cookies:
                headers["Cookie"] = BrowsingSession(cookies).cookie_header()

            try:
                response = requests.get(url, headers=headers, timeout=self.timeout)
            except requests.exceptions.RequestException as e:
                self.logger.error(f"Network error priming session at {url}: {e}")
                raise BootstrapError(f"Could not reach {url}: {e}") from e

            if not response.ok:
                self.logger.warning(
                    f"Bootstrap page {url} returned HTTP {response.status_code}, "
                    "keeping any cookies it set"
                )

            # Redirect hops can set cookies the final page never repeats
            new_cookies: Dict[str, str] = {}
            for hop in list(response.history) + [response]:
                new_cookies.update(hop.cookies.items())
            cookies.update(new_cookies)
            self.logger.debug(f"Collected {len(new_cookies)} cookie(s) from {url}")

            if csrf_token is None:
                csrf_token = extract_csrf_token(response.text or "")
                if csrf_token:
                    self.logger.debug(f"Found CSRF token on {url}")

        self.logger.info(
            f"Session primed: {len(cookies)} cookie(s), "
            f"CSRF token {'present' if csrf_token else 'absent'}"
        )
        return BrowsingSession(cookies=cookies, csrf_token=csrf_token)
