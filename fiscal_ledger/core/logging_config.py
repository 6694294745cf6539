"""
Logging setup for the ledger API, the CLI and the search sync workers.

Everything logs through the standard :mod:`logging` tree under ``fiscal_ledger``.
``setup_logging`` installs one console handler on the root logger (plus an
optional file handler) and pins per-package levels so that SQL echo and the
OpenSearch transport stay quiet unless asked for.
"""

import logging
import logging.config
import os
from pathlib import Path
from typing import Optional

_TRUTHY = ("true", "1", "yes")


def _env_flag(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).lower() in _TRUTHY


def _default_level() -> str:
    # Settings may not validate yet (e.g. a half-configured CLI shell); use the raw variable then.
    try:
        from fiscal_ledger.server.core.config import settings
    except Exception:
        return os.getenv("FISCAL_LEDGER_LOG_LEVEL", "INFO").upper()
    return settings.log_level.upper()


LOG_LEVEL = _default_level()
LOG_FORMAT = os.getenv("LOG_FORMAT", "detailed")
LOG_FILE_DIR = os.getenv("LOG_FILE_DIR", "logs")
ENABLE_FILE_LOGGING = _env_flag("ENABLE_FILE_LOGGING")


SIMPLE_FORMAT = "%(levelname)s %(name)s: %(message)s"

DETAILED_FORMAT = "%(asctime)s [%(levelname)s] %(name)s (%(filename)s:%(lineno)d %(funcName)s): %(message)s"

JSON_FORMAT = (
    '{"ts": "%(asctime)s", "level": "%(levelname)s", "logger": "%(name)s", '
    '"at": "%(filename)s:%(lineno)d", "message": "%(message)s"}'
)

_FORMATS = {"simple": SIMPLE_FORMAT, "detailed": DETAILED_FORMAT, "json": JSON_FORMAT}


MODULE_LOG_LEVELS = {
    "fiscal_ledger.ledger": "INFO",
    "fiscal_ledger.ledger.migrations": "INFO",
    "fiscal_ledger.ledger.settlements": "INFO",
    "fiscal_ledger.search": "INFO",
    "fiscal_ledger.search.batch_processor": "DEBUG",
    "fiscal_ledger.search.sync_postgres": "INFO",
    "fiscal_ledger.server": "INFO",
    "fiscal_ledger.server.api": "DEBUG",
    # third party
    "sqlalchemy": "WARNING",
    "sqlalchemy.engine": "WARNING",
    "sqlalchemy.pool": "WARNING",
    "httpx": "WARNING",
    "opensearch": "WARNING",
    "asyncpg": "WARNING",
    "asyncio": "WARNING",
    "uvicorn": "INFO",
    "uvicorn.access": "INFO",
}


def setup_logging(
    log_level: Optional[str] = None,
    log_format: Optional[str] = None,
    enable_file: bool = True,
) -> None:
    """
    (Re)configure the root logger.

    Safe to call more than once: handlers installed by an earlier call are replaced.

    Args:
        log_level: Console level, defaults to ``settings.log_level``
        log_format: One of ``simple``, ``detailed`` or ``json``; anything else falls back to ``detailed``
        enable_file: Also write ``fiscal_ledger.log`` when ``ENABLE_FILE_LOGGING`` is set
    """
    level = (log_level or LOG_LEVEL).upper()
    fmt = log_format or LOG_FORMAT
    formatter = logging.Formatter(_FORMATS.get(fmt, DETAILED_FORMAT), datefmt="%Y-%m-%d %H:%M:%S")

    root = logging.getLogger()
    # Handlers do the filtering.
    root.setLevel(logging.DEBUG)
    for handler in list(root.handlers):
        root.removeHandler(handler)

    console = logging.StreamHandler()
    console.setLevel(level)
    console.setFormatter(formatter)
    root.addHandler(console)

    to_file = enable_file and ENABLE_FILE_LOGGING
    if to_file:
        log_dir = Path(LOG_FILE_DIR)
        log_dir.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_dir / "fiscal_ledger.log")
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(formatter)
        root.addHandler(file_handler)

    for package, package_level in MODULE_LOG_LEVELS.items():
        logging.getLogger(package).setLevel(package_level)

    root.info("Logging configured: level=%s, format=%s, file_logging=%s", level, fmt, to_file)


def get_logger(name: str) -> logging.Logger:
    """Return the stdlib logger for ``name`` (pass ``__name__``)."""
    return logging.getLogger(name)
