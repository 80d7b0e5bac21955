"""Runtime configuration, read from the environment (and a local .env file)."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from dotenv import load_dotenv

from vice_bank.errors import InvalidInputError

load_dotenv()

# --- Defaults ---
DEFAULT_TIMEZONE = "America/Chicago"
DEFAULT_PAGINATION = 10
DEFAULT_LOG_LEVEL = "INFO"
LOG_FORMAT = "%(asctime)s %(levelname)s: %(message)s"

# --- File store ---
DATA_FILE_BASE_NAME = "vice_bank_data"
DATA_FILE_EXTENSION = "json"
DATA_FILE_NAME = f"{DATA_FILE_BASE_NAME}.{DATA_FILE_EXTENSION}"

STORE_TYPES = ("memory", "file")


@dataclass(frozen=True)
class Settings:
    store_type: str = "memory"
    file_path: Path | None = None
    timezone: str = DEFAULT_TIMEZONE
    log_level: str = DEFAULT_LOG_LEVEL
    pagination: int = DEFAULT_PAGINATION


def load_settings() -> Settings:
    """Build settings from ``VICE_BANK_*`` environment variables.

    A ``file`` store without ``VICE_BANK_FILE_PATH`` falls back to memory.
    """

    store_type = (os.getenv("VICE_BANK_SERVER_TYPE") or "memory").strip().lower()
    raw_path = os.getenv("VICE_BANK_FILE_PATH")
    file_path = Path(raw_path) if raw_path else None

    if store_type not in STORE_TYPES or (store_type == "file" and file_path is None):
        store_type = "memory"

    raw_pagination = os.getenv("VICE_BANK_PAGINATION")
    try:
        pagination = int(raw_pagination) if raw_pagination else DEFAULT_PAGINATION
    except ValueError as exc:
        raise InvalidInputError(f"Invalid VICE_BANK_PAGINATION: {raw_pagination!r}") from exc

    return Settings(
        store_type=store_type,
        file_path=file_path,
        timezone=os.getenv("VICE_BANK_TIMEZONE") or DEFAULT_TIMEZONE,
        log_level=(os.getenv("VICE_BANK_LOG_LEVEL") or DEFAULT_LOG_LEVEL).upper(),
        pagination=max(1, pagination),
    )


def get_zone(name: str | None = None) -> ZoneInfo:
    """Resolve a zone name, defaulting to ``VICE_BANK_TIMEZONE`` as currently set."""

    zone_name = name or os.getenv("VICE_BANK_TIMEZONE") or DEFAULT_TIMEZONE
    try:
        return ZoneInfo(zone_name)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise InvalidInputError(f"Unknown timezone: {zone_name!r}") from exc


def configure_logging(level: str | None = None) -> None:
    logging.basicConfig(
        level=getattr(logging, (level or DEFAULT_LOG_LEVEL).upper(), logging.INFO),
        format=LOG_FORMAT,
    )
