"""Logging setup for the CLI and the admin API."""

import logging
import os
from datetime import date
from typing import Optional

LOG_FORMAT = "%(asctime)s %(name)s %(levelname)s %(message)s"


def log_file_path(log_dir: str, name: str = "portal-sync", day: Optional[date] = None) -> str:
    """Return the date-stamped log file path, e.g. ``logs/portal-sync-2025-09-01.log``."""
    day = day or date.today()
    return os.path.join(log_dir, f"{name}-{day.isoformat()}.log")


def setup_logging(app_settings=None, level: Optional[str] = None) -> None:
    """Configure the root logger.

    Console output is always on. A date-stamped file under ``log_dir`` is
    added when ``log_enabled`` is set.

    Args:
        app_settings: Settings to read from (defaults to global settings).
        level: Overrides ``log_level``.
    """
    if app_settings is None:
        from portal_sync.config import settings as app_settings

    handlers = [logging.StreamHandler()]
    if app_settings.log_enabled:
        os.makedirs(app_settings.log_dir, exist_ok=True)
        handlers.append(logging.FileHandler(log_file_path(app_settings.log_dir), encoding="utf-8"))

    logging.basicConfig(
        level=(level or app_settings.log_level).upper(),
        format=LOG_FORMAT,
        handlers=handlers,
        force=True,
    )
    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)
