"""Logging setup shared by the CLI, the scheduler and the coordinator threads.

Console output goes to stdout at ``LOG_LEVEL``. A daily file under
``JOBSEEKER_LOG_DIR`` (default ``logs/`` beside the package) records
everything at DEBUG, with the thread name, since searches fan out over a
thread pool.
"""
from __future__ import annotations

import logging
import os
import sys
from datetime import date
from pathlib import Path

_CONSOLE_FORMAT = "%(asctime)s  %(levelname)-8s  %(name)s  %(message)s"
_FILE_FORMAT = "%(asctime)s  %(levelname)-8s  [%(threadName)s]  %(name)s  %(message)s"
_DATE_FMT = "%Y-%m-%d %H:%M:%S"
# HTTP client internals; one line per connection at DEBUG.
_NOISY = ("urllib3", "requests")
_configured = False


def parse_level(name: str | None) -> int:
    level = logging.getLevelName((name or "INFO").strip().upper())
    return level if isinstance(level, int) else logging.INFO


def log_dir() -> Path:
    override = os.environ.get("JOBSEEKER_LOG_DIR")
    if override:
        return Path(override).expanduser()
    return Path(__file__).resolve().parent.parent / "logs"


def log_file_for(directory: Path, day: date | None = None) -> Path:
    return directory / f"jobseeker_{(day or date.today()).isoformat()}.log"


def build_handlers(level: int, directory: Path) -> tuple[list[logging.Handler], str | None]:
    """Console handler plus, when *directory* is writable, the daily file.

    Returns the handlers and the reason the file handler was left out.
    """
    console = logging.StreamHandler(sys.stdout)
    console.setLevel(level)
    console.setFormatter(logging.Formatter(_CONSOLE_FORMAT, datefmt=_DATE_FMT))
    handlers: list[logging.Handler] = [console]
    try:
        directory.mkdir(parents=True, exist_ok=True)
        fh = logging.FileHandler(log_file_for(directory), encoding="utf-8")
    except OSError as exc:
        return handlers, f"file logging disabled ({exc})"
    fh.setLevel(logging.DEBUG)
    fh.setFormatter(logging.Formatter(_FILE_FORMAT, datefmt=_DATE_FMT))
    handlers.append(fh)
    return handlers, None


def get_logger(name: str) -> logging.Logger:
    """Return a named logger; configures root handlers on first call."""
    global _configured
    if not _configured:
        _configure()
        _configured = True
    return logging.getLogger(name)


def _configure() -> None:
    raw_level = os.environ.get("LOG_LEVEL")
    level = parse_level(raw_level)

    root = logging.getLogger()
    root.setLevel(min(level, logging.DEBUG))
    for name in _NOISY:
        logging.getLogger(name).setLevel(logging.WARNING)

    if root.handlers:
        root.setLevel(level)
        return

    handlers, problem = build_handlers(level, log_dir())
    for handler in handlers:
        root.addHandler(handler)
    setup_log = logging.getLogger(__name__)
    if problem:
        setup_log.warning("Read-only log location: %s", problem)
    if raw_level and level == logging.INFO and raw_level.strip().upper() != "INFO":
        setup_log.warning("Unknown LOG_LEVEL %r, using INFO", raw_level)
