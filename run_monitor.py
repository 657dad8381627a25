#!/usr/bin/env python3
"""
Showtime Monitor Pipeline
Runs one check: Prime session → Fetch window → Normalize → Diff → Save → Notify
Designed to be run frequently; only real changes produce a notification.
"""

import argparse
import logging
import signal
import sys
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Dict, Optional
from urllib.parse import urljoin
from zoneinfo import ZoneInfo

import schedule

from showtime_monitor.config import (
    DEFAULT_CONFIG_PATH,
    load_config,
    load_env_file,
    resolve_webhook_url,
)
from showtime_monitor.diff_engine import compute_diff
from showtime_monitor.errors import FetchError, MonitorError, NotificationError
from showtime_monitor.normalizer import normalize_records, schedule_counts
from showtime_monitor.notifier import WebhookNotifier, format_payload
from showtime_monitor.schema import Schedule
from showtime_monitor.session_primer import SessionPrimer
from showtime_monitor.snapshot_store import SnapshotStore
from showtime_monitor.window_fetcher import GraphQLShowingsSource, window_dates

# Display constants
LOG_SEPARATOR_WIDTH = 60
LOGGER_NAME = "showtime_monitor"


class MonitorPipeline:
    """Orchestrates a showtime check and its notification"""

    def __init__(
        self,
        config_path: Optional[str] = DEFAULT_CONFIG_PATH,
        cache_path: Optional[str] = None,
        config: Optional[Dict] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        """
        Initialize the monitor pipeline

        Args:
            config_path: Path to configuration file
            cache_path: Snapshot file, overriding snapshot.cache_file
            config: Already loaded configuration (skips config_path)
            clock: Returns the current aware time (for tests)
        """
        self.config = config if config is not None else load_config(config_path)
        self._clock = clock or (lambda: datetime.now(timezone.utc))

        self._setup_logging()

        self.store = SnapshotStore(cache_path or self.config["snapshot"]["cache_file"])
        self.timezone = self.config["scraping"]["timezone"]

    def _setup_logging(self):
        """Setup logging configuration"""
        package_logger = logging.getLogger(LOGGER_NAME)
        package_logger.setLevel(logging.DEBUG)
        package_logger.propagate = False

        # Remove existing handlers
        package_logger.handlers = []

        console_handler = logging.StreamHandler()
        console_level = getattr(logging, self.config["logging"]["console_level"])
        console_handler.setLevel(console_level)
        console_format = logging.Formatter(
            "%(asctime)s - %(levelname)s - %(message)s", datefmt="%Y-%m-%d %H:%M:%S"
        )
        console_handler.setFormatter(console_format)
        package_logger.addHandler(console_handler)

        self.logger = logging.getLogger(f"{LOGGER_NAME}.pipeline")

        if self.config["logging"].get("enable_file_logging", False):
            log_dir = Path(self.config["output"]["logs_dir"])
            log_dir.mkdir(parents=True, exist_ok=True)
            timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
            log_file = log_dir / f"monitor_{timestamp}.log"

            file_handler = logging.FileHandler(log_file)
            file_level = getattr(logging, self.config["logging"]["file_level"])
            file_handler.setLevel(file_level)
            file_format = logging.Formatter(
                "%(asctime)s - %(name)s - %(levelname)s - "
                "%(funcName)s:%(lineno)d - %(message)s"
            )
            file_handler.setFormatter(file_format)
            package_logger.addHandler(file_handler)
            self.logger.info(f"Monitor logging to: {log_file}")

    def _write_status_log(self, status: str, duration: float, metrics: Dict, error_msg: str = "-"):
        """
        Append one status line to the weekly status file

        Args:
            status: SUCCESS or FAILED
            duration: Elapsed time in seconds
            metrics: Dictionary with run metrics
            error_msg: Error message if failed, otherwise "-"
        """
        now = datetime.now()
        year, week, _ = now.isocalendar()

        log_dir = Path(self.config["output"]["logs_dir"])
        log_dir.mkdir(parents=True, exist_ok=True)
        status_file = log_dir / f"status_{year}-{week:02d}.log"

        metrics_str = (
            f"Movies:{metrics.get('movies', 0)} "
            f"Showtimes:{metrics.get('showtimes', 0)} "
            f"Changed:{'yes' if metrics.get('changed') else 'no'} "
            f"Notified:{'yes' if metrics.get('notified') else 'no'}"
        )
        timestamp_str = now.strftime("%Y-%m-%d %H:%M:%S")
        log_line = f"{timestamp_str} | {status:7s} | {duration:5.1f}s | {metrics_str} | {error_msg}\n"

        with open(status_file, "a", encoding="utf-8") as f:
            f.write(log_line)

    def build_notifier(self) -> WebhookNotifier:
        """Create the webhook notifier, failing if no URL is configured"""
        load_env_file()
        return WebhookNotifier(
            resolve_webhook_url(self.config),
            timeout=self.config["notification"]["request_timeout"],
        )

    def fetch_schedule(self) -> Schedule:
        """
        Prime a session and fetch the whole window

        Raises:
            FetchError: If priming or any day's query fails
        """
        site = self.config["site"]
        scraping = self.config["scraping"]
        base_url = site["base_url"]

        bootstrap_urls = [urljoin(base_url, path) for path in site["bootstrap_paths"]]
        primer = SessionPrimer(bootstrap_urls, origin=base_url, timeout=scraping["request_timeout"])
        source = GraphQLShowingsSource(
            graphql_url=urljoin(base_url, site["graphql_path"]),
            site_ids=site["site_ids"],
            origin=base_url,
            referer=primer.referer,
            timeout=scraping["request_timeout"],
            delay=scraping["delay_between_requests"],
        )

        session = primer.prime()
        dates = window_dates(self.timezone, scraping["days_ahead"], now=self._clock())
        records = source.fetch_window(session, dates)
        return normalize_records(records, default_tz=ZoneInfo(self.timezone))

    def run(self, write_status_log: bool = False, dry_run: bool = False) -> bool:
        """
        Run one check

        Args:
            write_status_log: If True, append a line to the weekly status file
            dry_run: Compute and log the diff without saving or notifying

        Returns:
            True if the check (and any notification) succeeded
        """
        start_time = time.time()
        metrics = {"movies": 0, "showtimes": 0, "changed": False, "notified": False}
        status, error_msg = "SUCCESS", "-"

        self.logger.info("=" * LOG_SEPARATOR_WIDTH)
        self.logger.info(f"Checking {self.config['site']['name']}...")
        self.logger.info("=" * LOG_SEPARATOR_WIDTH)

        try:
            notifier = None if dry_run else self.build_notifier()
            previous = self.store.load()

            try:
                current = self.fetch_schedule()
            except FetchError as e:
                # Never notify or overwrite the snapshot after a failed fetch
                self.logger.error(f"Error fetching showtimes: {e}")
                status, error_msg = "FAILED", f"Fetch failed: {type(e).__name__}"
                return False

            movies, showtimes = schedule_counts(current)
            metrics.update(movies=movies, showtimes=showtimes)
            self.logger.info(f"Found {movies} movies with {showtimes} total showtimes")

            now = self._clock()
            changes = compute_diff(previous, current, now)
            metrics["changed"] = changes.changed

            if dry_run:
                payload = format_payload(changes, now, self.timezone)
                self.logger.info(f"Dry run, changed={changes.changed}: {payload.to_dict()}")
                return True

            self.store.save(current)

            if not changes.changed:
                self.logger.info("No changes detected")
                return True

            self.logger.info("Changes detected!")
            payload = format_payload(changes, now, self.timezone)
            self.logger.info(f"Payload: {payload.to_dict()}")
            notifier.send(payload)
            metrics["notified"] = True
            return True

        except NotificationError as e:
            self.logger.error(f"Notification failed (snapshot already saved): {e}")
            status, error_msg = "FAILED", "Notification failed"
            return False
        except MonitorError as e:
            self.logger.error(f"Check failed: {e}")
            status, error_msg = "FAILED", str(e)[:50]
            return False
        except KeyboardInterrupt:
            self.logger.info("Check interrupted by user")
            status, error_msg = "FAILED", "Interrupted by user"
            return False
        except Exception as e:
            self.logger.error(f"Check failed: {e}", exc_info=True)
            status, error_msg = "FAILED", str(e)[:50]
            return False
        finally:
            elapsed = time.time() - start_time
            self.logger.info(f"Check finished: {status} in {elapsed:.1f}s")
            if write_status_log:
                self._write_status_log(status, elapsed, metrics, error_msg)

    def run_server_mode(self):
        """
        Run checks at the configured interval until SIGINT/SIGTERM
        """
        interval_minutes = self.config["server"].get("interval_minutes", 60)
        write_status = self.config["logging"].get("enable_status_file_logging", True)

        run_count = 0
        shutdown_requested = False

        def signal_handler(signum, frame):
            """Handle graceful shutdown on SIGINT/SIGTERM"""
            nonlocal shutdown_requested
            self.logger.info("Shutdown signal received, stopping after current run...")
            shutdown_requested = True

        signal.signal(signal.SIGINT, signal_handler)
        signal.signal(signal.SIGTERM, signal_handler)

        def run_job():
            nonlocal run_count
            run_count += 1
            self.logger.info(f"Starting scheduled run #{run_count}")
            self.run(write_status_log=write_status)

        schedule.every(interval_minutes).minutes.do(run_job)

        self.logger.info("=" * LOG_SEPARATOR_WIDTH)
        self.logger.info("SHOWTIME MONITOR - SERVER MODE")
        self.logger.info(f"Interval: every {interval_minutes} minutes")
        self.logger.info("=" * LOG_SEPARATOR_WIDTH)

        # Run immediately on startup
        run_job()

        while not shutdown_requested:
            schedule.run_pending()
            time.sleep(1)

        schedule.clear()
        self.logger.info(f"Server shutting down gracefully after {run_count} run(s)")


def main():
    """Main entry point"""
    parser = argparse.ArgumentParser(description="Check cinema showtimes and notify on changes")
    parser.add_argument(
        "--config",
        default=DEFAULT_CONFIG_PATH,
        help=f"Path to config file (default: {DEFAULT_CONFIG_PATH})",
    )
    parser.add_argument(
        "--cache",
        default=None,
        help="Path to snapshot file (default: snapshot.cache_file from config)",
    )
    parser.add_argument(
        "--server",
        action="store_true",
        help="Run continuously, checking at the configured interval",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Fetch and diff without saving the snapshot or notifying",
    )

    args = parser.parse_args()

    pipeline = MonitorPipeline(config_path=args.config, cache_path=args.cache)

    if args.server:
        pipeline.run_server_mode()
        sys.exit(0)
    else:
        write_status = pipeline.config["logging"].get("enable_status_file_logging", False)
        success = pipeline.run(write_status_log=write_status, dry_run=args.dry_run)
        sys.exit(0 if success else 1)


if __name__ == "__main__":
    main()
