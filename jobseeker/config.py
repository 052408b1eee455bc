"""Load environment and file configuration."""
from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv

from jobseeker.log import get_logger
from jobseeker.models import SearchSettings

log = get_logger(__name__)

load_dotenv()

PROJECT_ROOT: Path = Path(__file__).resolve().parent.parent
CONFIG_DIR: Path = PROJECT_ROOT / "config"
DEFAULTS_PATH: Path = CONFIG_DIR / "defaults.yaml"

API_HARD_LIMIT = 100
DEFAULT_API_URL = "https://jobsearch.api.jobtechdev.se"

BUILTIN_DEFAULTS = SearchSettings(
    keywords="it, Supporttekniker, helpdesk, kundtjänst, kundsupport",
    blacklist_keywords=(
        "barnvakt, körkort, barnflicka, nanny, myNanny, undersköterska, parkarbetare"
    ),
    locations_p1="1283, 1277, 1260, 1292, 1284, 1276, 1231, 1282, 1261",
    locations_p2="1280, 1281",
    locations_p3="",
    my_profile=(
        "Jag är en serviceinriktad person med erfarenhet inom IT-support och kundservice."
    ),
    sync_path="",
    app_min_count=6,
    app_goal_count=12,
)


def get_env(key: str, default: str = "") -> str:
    return os.environ.get(key, default).strip()


def env_int(key: str, default: int) -> int:
    raw = get_env(key)
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        log.warning("Ignoring non-integer %s=%r, using %d", key, raw, default)
        return default


def data_dir() -> Path:
    override = get_env("JOBSEEKER_DATA_DIR")
    if override:
        return Path(override).expanduser()
    return Path.home() / ".local" / "share" / "jobseeker"


def exports_dir() -> Path:
    return data_dir() / "exports"


def reports_dir() -> Path:
    return data_dir() / "reports"


def db_path() -> Path:
    """Store location; JOBSEEKER_DB_PATH points at an alternate (test) store."""
    override = get_env("JOBSEEKER_DB_PATH")
    path = Path(override).expanduser() if override else data_dir() / "jobseeker.db"
    path.parent.mkdir(parents=True, exist_ok=True)
    return path


def ensure_dirs() -> None:
    for d in (data_dir(), exports_dir(), reports_dir()):
        d.mkdir(parents=True, exist_ok=True)


def load_default_settings(path: Path | None = None) -> SearchSettings:
    """Defaults for a fresh store, from config/defaults.yaml when present."""
    path = path or DEFAULTS_PATH
    if not path.exists():
        return BUILTIN_DEFAULTS
    try:
        with open(path, "r", encoding="utf-8") as f:
            data: Any = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as exc:
        log.warning("Could not read %s (%s) — using built-in defaults", path, exc)
        return BUILTIN_DEFAULTS
    if not isinstance(data, dict):
        log.warning("%s is not a mapping — using built-in defaults", path)
        return BUILTIN_DEFAULTS
    # YAML lists are accepted for the comma-separated fields
    for key in ("keywords", "blacklist_keywords", "locations_p1", "locations_p2", "locations_p3"):
        if isinstance(data.get(key), list):
            data[key] = ", ".join(str(v) for v in data[key])
    try:
        return SearchSettings.from_dict(data, defaults=BUILTIN_DEFAULTS)
    except (TypeError, ValueError) as exc:
        log.warning("Invalid value in %s (%s) — using built-in defaults", path, exc)
        return BUILTIN_DEFAULTS


@dataclass(frozen=True)
class ApiSettings:
    base_url: str = DEFAULT_API_URL
    timeout: float = 15.0
    page_size: int = API_HARD_LIMIT
    max_attempts: int = 3
    max_workers: int = 4
    max_pages: int = 5
    max_locations_per_request: int | None = None
    keywords_per_request: int | None = None


def api_settings() -> ApiSettings:
    page_size = env_int("JOBSEEKER_PAGE_SIZE", API_HARD_LIMIT)
    timeout_raw = get_env("JOBSEEKER_HTTP_TIMEOUT")
    try:
        timeout = float(timeout_raw) if timeout_raw else 15.0
    except ValueError:
        log.warning("Ignoring non-numeric JOBSEEKER_HTTP_TIMEOUT=%r", timeout_raw)
        timeout = 15.0
    return ApiSettings(
        base_url=get_env("JOBSEEKER_API_URL", DEFAULT_API_URL).rstrip("/"),
        timeout=timeout,
        page_size=max(1, min(page_size, API_HARD_LIMIT)),
        max_attempts=max(1, env_int("JOBSEEKER_HTTP_RETRIES", 3)),
        max_workers=max(1, env_int("JOBSEEKER_MAX_WORKERS", 4)),
        max_pages=max(1, env_int("JOBSEEKER_MAX_PAGES", 5)),
    )


def offline_mode() -> bool:
    return get_env("JOBSEEKER_OFFLINE").lower() in ("1", "true", "yes")
