from __future__ import annotations

import logging
import os
import socket

import uvicorn

from ngo_wizard.config import config
from ngo_wizard.logging_config import setup_logging

logger = logging.getLogger("ngo_wizard")


def _free_port(host: str, preferred: int, tries: int) -> int:
    for port in range(preferred, preferred + max(1, tries)):
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
            s.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            try:
                s.bind((host, port))
            except OSError:
                continue
            return port
    return preferred


def main() -> None:
    setup_logging()
    host = os.getenv("HOST", "127.0.0.1")
    port = _free_port(host, int(os.getenv("PORT", "8000")), int(os.getenv("PORT_TRIES", "20")))
    logger.info("Serving %s on http://%s:%s/docs", config.APP_NAME, host, port)

    uvicorn.run(
        "ngo_wizard.main:app",
        host=host,
        port=port,
        reload=os.getenv("RELOAD", "0") not in {"0", "false", "False"},
        log_level=config.LOG_LEVEL.lower(),
    )


if __name__ == "__main__":
    main()
