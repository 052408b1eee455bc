"""
Pull every configured priority zone once a day, then export applied jobs.

Usage:
  - Cron: 0 7 * * * cd /path/to/project && .venv/bin/python -m jobseeker.run_daily --once
  - Or keep it running in the background: python -m jobseeker.run_daily
"""
from __future__ import annotations

import sys
import time
from datetime import datetime, timedelta
from zoneinfo import ZoneInfo

from jobseeker.agent import search_zone
from jobseeker.config import api_settings, ensure_dirs, exports_dir, get_env, env_int
from jobseeker.executor import SearchExecutor
from jobseeker.export import export_applied
from jobseeker.locations import split_locations
from jobseeker.log import get_logger
from jobseeker.models import ZONES
from jobseeker.report import build_monthly_report, write_report
from jobseeker.sources import get_backend
from jobseeker.store import RecordStore, open_store

log = get_logger(__name__)

TZ = ZoneInfo(get_env("JOBSEEKER_TZ", "Europe/Stockholm"))
TARGET_HOUR = env_int("DAILY_RUN_HOUR", 7)
TARGET_MINUTE = 0


def run_once(store: RecordStore | None = None, *, offline: bool | None = None) -> dict:
    ensure_dirs()
    api = api_settings()
    own_store = store is None
    store = store or open_store()
    backend = get_backend(api, offline=offline)
    executor = SearchExecutor(backend, max_workers=api.max_workers, max_pages=api.max_pages)
    summary: dict = {"zones": {}, "export_path": None, "report_path": None}
    try:
        settings = store.load_settings()
        for zone in ZONES:
            if not split_locations(settings.zone_locations(zone)):
                log.info("Zone %d has no locations — skipped", zone)
                continue
            outcome = search_zone(zone, settings, store, executor, api)
            summary["zones"][zone] = outcome.status_message

        summary["export_path"] = export_applied(store, exports_dir())
        now = datetime.now(TZ)
        report = build_monthly_report(store, settings, now.year, now.month)
        summary["report_path"] = write_report(report, now.year, now.month)
    finally:
        backend.close()
        if own_store:
            store.close()
    return summary


def next_run() -> datetime:
    now = datetime.now(TZ)
    target = now.replace(hour=TARGET_HOUR, minute=TARGET_MINUTE, second=0, microsecond=0)
    if now >= target:
        target = target + timedelta(days=1)
    return target


def main() -> None:
    log.info("Scheduler: run daily at %d:%02d (%s)", TARGET_HOUR, TARGET_MINUTE, TZ.key)
    while True:
        target = next_run()
        wait_secs = (target - datetime.now(TZ)).total_seconds()
        log.info("Next run at %s (in %.1f hours)", target, wait_secs / 3600)
        time.sleep(max(0.0, min(wait_secs, 86400)))
        now = datetime.now(TZ)
        if now.hour == TARGET_HOUR and now.minute < 30:
            log.info("Running daily pull...")
            run_once()
            log.info("Done. Next run tomorrow.")


if __name__ == "__main__":
    if "--once" in sys.argv:
        for zone, message in run_once()["zones"].items():
            log.info("Zone %d: %s", zone, message)
        sys.exit(0)
    main()
