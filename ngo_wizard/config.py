"""Service configuration."""
import os
from pathlib import Path

from dotenv import load_dotenv

load_dotenv(Path(__file__).with_name(".env"))
load_dotenv()


def _optional_float(name: str) -> float | None:
    raw = (os.getenv(name) or "").strip()
    if not raw:
        return None
    try:
        value = float(raw)
    except ValueError:
        return None
    return value if value > 0 else None


def _flag(name: str, default: str) -> bool:
    return os.getenv(name, default) not in {"0", "false", "False", ""}


class Config:
    """Service configuration, read once from the environment."""

    APP_NAME: str = os.getenv("APP_NAME", "NGO Membership Wizard")
    APP_VERSION: str = os.getenv("APP_VERSION", "1.0.0")

    # Uploads
    MAX_FILE_BYTES: int = int(os.getenv("MAX_FILE_BYTES", str(1 * 1024 * 1024)))

    # Submission; None waits for the backend indefinitely
    SUBMIT_TIMEOUT_SEC: float | None = _optional_float("SUBMIT_TIMEOUT_SEC")

    # Storage
    REDIS_URL: str = os.getenv("REDIS_URL", "")
    SESSION_TTL_SEC: int = int(os.getenv("SESSION_TTL_SEC", "86400"))

    # Membership numbers: <prefix>-YYYYMMDD-XXXX
    MEMBERSHIP_PREFIX: str = os.getenv("MEMBERSHIP_PREFIX", "JK")

    # Logging
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")
    LOG_FILE: str = os.getenv("LOG_FILE", "")
    LOG_TO_CONSOLE: bool = _flag("LOG_TO_CONSOLE", "1")


config = Config()
