#!/usr/bin/env python3
"""
Configuration loading for the Showtime Monitor.

Settings come from a JSON file merged over DEFAULT_CONFIG. Secrets such as the
webhook URL are read from the environment, optionally populated from a .env file.
"""

import copy
import json
import os
from pathlib import Path
from typing import Any, Dict, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from .errors import ConfigError

DEFAULT_CONFIG_PATH = "config.json"
DEFAULT_ENV_PATH = ".env"
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")

DEFAULT_CONFIG: Dict[str, Any] = {
    "site": {
        "name": "Thornbury Picture House",
        "base_url": "https://www.thornburypicturehouse.com.au",
        "bootstrap_paths": ["/", "/now-showing/"],
        "graphql_path": "/graphql",
        "site_ids": [12],
    },
    "scraping": {
        "timezone": "Australia/Melbourne",
        "days_ahead": 30,
        "delay_between_requests": 0.15,
        "request_timeout": 20,
    },
    "snapshot": {
        "cache_file": "cache.json",
    },
    "notification": {
        "webhook_url": "",
        "webhook_url_env": "IFTTT_WEBHOOK_URL",
        "request_timeout": 20,
    },
    "logging": {
        "console_level": "INFO",
        "file_level": "DEBUG",
        "enable_file_logging": False,
        "enable_status_file_logging": False,
    },
    "output": {
        "logs_dir": "logs",
    },
    "server": {
        "interval_minutes": 60,
    },
}


def _merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """Recursively merge override into a copy of base"""
    merged = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def load_config(config_path: Optional[str] = DEFAULT_CONFIG_PATH) -> Dict[str, Any]:
    """
    Load configuration from a JSON file and merge it over the defaults

    Args:
        config_path: Path to the JSON config file, or None for defaults only

    Returns:
        Validated configuration dictionary

    Raises:
        FileNotFoundError: If the config file does not exist
        ValueError: If the config file is not valid JSON
        ConfigError: If a setting is missing or invalid
    """
    overrides: Dict[str, Any] = {}
    if config_path is not None:
        try:
            with open(config_path, "r", encoding="utf-8") as f:
                overrides = json.load(f)
        except FileNotFoundError:
            raise FileNotFoundError(f"Configuration file not found: {config_path}")
        except json.JSONDecodeError as e:
            raise ValueError(f"Invalid JSON in config file: {e}")

        if not isinstance(overrides, dict):
            raise ConfigError(f"Configuration root must be an object: {config_path}")

    config = _merge(DEFAULT_CONFIG, overrides)
    validate_config(config)
    return config


def validate_config(config: Dict[str, Any]) -> None:
    """Raise ConfigError if any required setting is unusable"""
    site = config["site"]
    scraping = config["scraping"]

    if not site.get("base_url"):
        raise ConfigError("site.base_url is required")
    if not site.get("bootstrap_paths"):
        raise ConfigError("site.bootstrap_paths must list at least one page")
    if not site.get("site_ids"):
        raise ConfigError("site.site_ids must list at least one site identifier")

    try:
        ZoneInfo(scraping["timezone"])
    except (ZoneInfoNotFoundError, ValueError):
        raise ConfigError(f"Unknown timezone: {scraping['timezone']}")

    days_ahead = scraping["days_ahead"]
    if not isinstance(days_ahead, int) or days_ahead < 0:
        raise ConfigError(f"scraping.days_ahead must be a non-negative integer, got {days_ahead!r}")

    for key in ("delay_between_requests", "request_timeout"):
        value = scraping[key]
        if not isinstance(value, (int, float)) or value < 0:
            raise ConfigError(f"scraping.{key} must be a non-negative number, got {value!r}")

    timeout = config["notification"]["request_timeout"]
    if isinstance(timeout, bool) or not isinstance(timeout, (int, float)) or timeout <= 0:
        raise ConfigError(f"notification.request_timeout must be a positive number, got {timeout!r}")

    interval = config["server"]["interval_minutes"]
    if isinstance(interval, bool) or not isinstance(interval, int) or interval <= 0:
        raise ConfigError(f"server.interval_minutes must be a positive integer, got {interval!r}")

    # Level names are stored upper-cased so getattr(logging, ...) finds the constant
    for key in ("console_level", "file_level"):
        level = config["logging"][key]
        if not isinstance(level, str) or level.upper() not in LOG_LEVELS:
            allowed = ", ".join(LOG_LEVELS)
            raise ConfigError(f"logging.{key} must be one of {allowed}, got {level!r}")
        config["logging"][key] = level.upper()


def load_env_file(env_path: str = DEFAULT_ENV_PATH) -> None:
    """Load KEY=VALUE lines from a .env file into os.environ"""
    env_file = Path(env_path)
    if not env_file.exists():
        return

    with open(env_file, "r", encoding="utf-8") as f:
        for line in f:
            line = line.strip()
            if line and not line.startswith("#") and "=" in line:
                key, value = line.split("=", 1)
                os.environ.setdefault(key.strip(), value.strip().strip("\"'"))


def resolve_webhook_url(config: Dict[str, Any]) -> str:
    """Webhook URL from the environment, falling back to the config file"""
    notification = config["notification"]
    env_name = notification.get("webhook_url_env") or ""
    return (os.getenv(env_name) if env_name else None) or notification.get("webhook_url") or ""
