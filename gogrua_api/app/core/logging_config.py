"""
Logging for the GoGrúa API.

Every module logs through ``logging.getLogger(__name__)``; the request
handlers prefix their lines with the operation in brackets
(``[cancel-request]``, ``[webpay-callback]``) so a towing request can be
followed across pricing, payment and dispatch.  The HTTP client
libraries used for Webpay and the n8n webhooks are held at ``WARNING``:
their per-request chatter would otherwise drown those lines.
"""

import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional


LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Outbound HTTP stacks: httpx (Webpay) and requests/urllib3 (n8n).
CLIENT_LOGGERS = ("httpx", "httpcore", "urllib3")

LOG_FILE_MAX_BYTES = 5 * 1024 * 1024
LOG_FILE_BACKUPS = 3


def setup_logging(level: str = "INFO", logfile: Optional[str] = None) -> None:
    """Configure the root logger for the API process.

    Handlers are attached only once, so calling ``create_app`` again (as
    the tests do) does not duplicate output.  ``logfile`` adds a size
    rotated file next to the console output.
    """
    for name in CLIENT_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    root = logging.getLogger()
    if root.handlers:
        return

    root.setLevel(getattr(logging, level.upper(), logging.INFO))
    formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt=LOG_DATE_FORMAT)

    console = logging.StreamHandler()
    console.setFormatter(formatter)
    root.addHandler(console)

    if logfile:
        handler = RotatingFileHandler(
            Path(logfile).resolve(),
            maxBytes=LOG_FILE_MAX_BYTES,
            backupCount=LOG_FILE_BACKUPS,
            encoding="utf-8",
        )
        handler.setFormatter(formatter)
        root.addHandler(handler)
