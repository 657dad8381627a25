#!/usr/bin/env python3
"""
Snapshot Store
Persists the last successfully fetched Schedule as a JSON blob so the next
run has something to diff against.
"""

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Optional

from .normalizer import parse_instant, serialize_schedule
from .schema import Schedule

DEFAULT_CACHE_FILE = "cache.json"


class SnapshotStore:
    """Reads and writes the schedule snapshot file"""

    def __init__(self, cache_path: str = DEFAULT_CACHE_FILE):
        """
        Args:
            cache_path: Path to the JSON snapshot file
        """
        self.cache_path = Path(cache_path)
        self.logger = logging.getLogger(__name__)

    def load(self) -> Optional[Schedule]:
        """
        Load the previous schedule

        Returns:
            The stored Schedule, or None when there is no usable snapshot
        """
        if not self.cache_path.exists():
            self.logger.info(f"No snapshot at {self.cache_path}, treating as first run")
            return None

        try:
            with open(self.cache_path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            self.logger.warning(f"Unreadable snapshot {self.cache_path}: {e}")
            return None

        if not isinstance(data, dict):
            self.logger.warning(f"Snapshot {self.cache_path} is not an object, ignoring it")
            return None

        schedule: Schedule = {}
        dropped = 0
        for title, values in data.items():
            if not isinstance(values, list):
                dropped += 1
                continue
            instants = set()
            for value in values:
                instant = parse_instant(value) if isinstance(value, str) else None
                if instant is None:
                    dropped += 1
                    continue
                instants.add(instant)
            if instants:
                schedule[title] = sorted(instants)

        if dropped:
            self.logger.warning(f"Dropped {dropped} unparseable entries from {self.cache_path}")

        self.logger.debug(f"Loaded snapshot with {len(schedule)} titles")
        return schedule

    def save(self, schedule: Schedule) -> None:
        """Atomically replace the snapshot with the given schedule"""
        self.cache_path.parent.mkdir(parents=True, exist_ok=True)
        payload = json.dumps(serialize_schedule(schedule), indent=2, sort_keys=True, ensure_ascii=False)

        fd, tmp_name = tempfile.mkstemp(dir=self.cache_path.parent, prefix=".snapshot-", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(payload)
            os.replace(tmp_name, self.cache_path)
        except OSError as e:
            self.logger.error(f"Failed to save snapshot {self.cache_path}: {e}")
            Path(tmp_name).unlink(missing_ok=True)
            raise

        self.logger.info(f"Snapshot saved to {self.cache_path}")
