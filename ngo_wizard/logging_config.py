"""Logging setup for the wizard service."""

import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path

from ngo_wizard.config import Config, config as default_config


def setup_logging(cfg: Config | None = None) -> None:
    """Send the service's log records to the console and, when LOG_FILE is set, a rotating file."""
    cfg = cfg or default_config
    handlers: list[logging.Handler] = []
    if cfg.LOG_FILE:
        Path(cfg.LOG_FILE).parent.mkdir(parents=True, exist_ok=True)
        handlers.append(RotatingFileHandler(cfg.LOG_FILE, maxBytes=5 * 1024 * 1024, backupCount=2, encoding="utf-8"))
    if cfg.LOG_TO_CONSOLE or not handlers:
        handlers.append(logging.StreamHandler())

    logging.basicConfig(
        level=getattr(logging, cfg.LOG_LEVEL.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        handlers=handlers,
        force=True,
    )
