"""
Configures the root logger with a console handler and a rotating file
handler (``road_locator.log``, 1 MB, 2 backups).

Call :func:`setup_logging` once at startup, from the entry point.
"""
from __future__ import annotations

import logging
from logging.handlers import RotatingFileHandler

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"


def setup_logging(level: int | str = logging.INFO, log_file: str | None = "road_locator.log") -> None:
    """Apply a unified log format to console and file output.

    Parameters
    ----------
    level : int or str
        Minimum severity level (e.g. ``logging.DEBUG`` or ``"INFO"``).
    log_file : str or None
        Rotating log file path; ``None`` logs to the console only.
    """
    root = logging.getLogger()
    root.setLevel(level)

    fmt = logging.Formatter(LOG_FORMAT)

    ch = logging.StreamHandler()
    ch.setFormatter(fmt)

    root.handlers.clear()
    root.addHandler(ch)

    if log_file:
        fh = RotatingFileHandler(log_file, maxBytes=1_000_000, backupCount=2)
        fh.setFormatter(fmt)
        root.addHandler(fh)

    # urllib3 logs every connection at DEBUG; keep page progress readable.
    logging.getLogger("urllib3").setLevel(logging.WARNING)
