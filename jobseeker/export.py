"""Export applied jobs to timestamped CSV files, skipping unchanged exports."""
from __future__ import annotations

import csv
import fcntl
import io
import os
from datetime import datetime
from pathlib import Path

from jobseeker.log import get_logger
from jobseeker.models import AdStatus, JobRecord, utcnow
from jobseeker.store import RecordStore

log = get_logger(__name__)

HEADERS: list[str] = [
    "id", "headline", "employer_name", "municipality", "publication_date", "applied_at",
]
PREFIX = "applied-"
LATEST = "latest.csv"


def _lock(f) -> None:
    """Advisory file lock (Unix fcntl)."""
    try:
        fcntl.flock(f.fileno(), fcntl.LOCK_EX)
    except (OSError, AttributeError):
        pass


def _unlock(f) -> None:
    try:
        fcntl.flock(f.fileno(), fcntl.LOCK_UN)
    except (OSError, AttributeError):
        pass


def applied_records(store: RecordStore, limit: int | None = None) -> list[JobRecord]:
    """Everything applied to, including records whose status moved on since."""
    rows = [
        r for r in store.all_records()
        if r.status is AdStatus.APPLIED or r.applied_at is not None
    ]
    rows.sort(key=lambda r: r.external_id)
    return rows[:limit] if limit is not None else rows


def build_csv(records: list[JobRecord]) -> str:
    buf = io.StringIO()
    writer = csv.writer(buf, lineterminator="\n")
    writer.writerow(HEADERS)
    for r in records:
        writer.writerow([
            r.external_id,
            r.headline,
            r.employer_name,
            r.municipality_name or r.city,
            r.publication_date,
            r.applied_at.isoformat() if r.applied_at else "",
        ])
    return buf.getvalue()


def latest_export(export_dir: Path) -> Path | None:
    # YYYYMMDD-HHMMSS names sort chronologically
    found = sorted(export_dir.glob(f"{PREFIX}*.csv"))
    return found[-1] if found else None


def export_applied(
    store: RecordStore,
    export_dir: Path,
    *,
    dry_run: bool = False,
    limit: int | None = None,
    now: datetime | None = None,
) -> Path | None:
    """Write a new export when the applied set changed; returns its path or None."""
    records = applied_records(store, limit)
    if not records:
        log.info("No applied jobs to export")
        return None
    content = build_csv(records)

    previous = latest_export(export_dir) if export_dir.is_dir() else None
    if previous is not None and previous.read_bytes() == content.encode("utf-8"):
        log.info("Applied list unchanged since %s — export skipped", previous.name)
        return None

    stamp = (now or utcnow()).strftime("%Y%m%d-%H%M%S")
    path = export_dir / f"{PREFIX}{stamp}.csv"
    if dry_run:
        log.info("Dry run: would write %d row(s) to %s", len(records), path)
        return None

    export_dir.mkdir(parents=True, exist_ok=True)
    with open(path, "w", newline="", encoding="utf-8") as f:
        _lock(f)
        f.write(content)
        _unlock(f)
    tmp = export_dir / f".{LATEST}.{stamp}.tmp"
    tmp.write_bytes(content.encode("utf-8"))
    os.replace(tmp, export_dir / LATEST)
    log.info("Exported %d applied job(s) → %s", len(records), path)
    return path
