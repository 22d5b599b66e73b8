"""Log setup for the relay process.

Relay events (queued, superseded, reported, timed out) are logged at INFO by
``homebase_relay.relay`` and go to the console and, optionally, a log file.
Devices hold a long poll open almost continuously, so aiohttp's per-request
access log and client chatter are kept at WARNING unless network logging is
switched on in the ``[logging]`` section.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, Optional

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"
ACCESS_LOG_FORMAT = '%a "%r" %s %b %Tf'

NETWORK_LOGGERS = ("aiohttp.access", "aiohttp.client", "aiohttp.server")


def configure_logging(
    level: str = "INFO", *, log_path: Optional[Path] = None, log_network: bool = False
) -> None:
    """Install the console handler and, when ``log_path`` is set, a file handler.

    Existing root handlers are replaced so repeated calls (tests, restarts
    inside one process) do not duplicate output.
    """

    root = logging.getLogger()
    for handler in list(root.handlers):
        root.removeHandler(handler)

    logging.captureWarnings(True)
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=LOG_FORMAT,
    )

    if log_path:
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_path)
        file_handler.setFormatter(logging.Formatter(LOG_FORMAT))
        root.addHandler(file_handler)

    network_level = logging.NOTSET if log_network else logging.WARNING
    for name in NETWORK_LOGGERS:
        logging.getLogger(name).setLevel(network_level)


def access_log_options(log_network: bool) -> Dict[str, Any]:
    """Keyword arguments for :class:`aiohttp.web.AppRunner`."""

    if not log_network:
        return {"access_log": None}
    return {"access_log_format": ACCESS_LOG_FORMAT}
