"""Persistent listings, application drafts and settings.

Each logical table holds JSON documents in the key-value engine: job records
and drafts keyed by the upstream external id, settings under a singleton key.
Every call is atomic on its own; multi-record work goes through the batch
methods (``upsert_many``, ``clear``) which use a single transaction. Mutations
are serialized by one lock and followed by a sync mirror of the store file.
"""
from __future__ import annotations

import json
import threading
from collections import Counter
from contextlib import contextmanager
from dataclasses import replace
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Iterable, Iterator, Sequence

from jobseeker.config import db_path, load_default_settings
from jobseeker.errors import PersistenceError
from jobseeker.kv import KeyValueStore, SqliteKeyValueStore, Transaction
from jobseeker.log import get_logger
from jobseeker.mirror import SyncMirror
from jobseeker.models import (
    LISTING_FIELDS,
    AdStatus,
    ApplicationDraft,
    JobRecord,
    SearchSettings,
    transition_status,
    utcnow,
)

log = get_logger(__name__)

JOBS = "job_ads"
DRAFTS = "drafts"
SETTINGS = "settings"
SETTINGS_KEY = "current"

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


def _encode(doc: dict[str, Any]) -> str:
    return json.dumps(doc, ensure_ascii=False, sort_keys=True)


def _decode(raw: str, what: str) -> dict[str, Any]:
    try:
        doc = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise PersistenceError(f"corrupt {what} document: {exc}") from exc
    if not isinstance(doc, dict):
        raise PersistenceError(f"corrupt {what} document: not an object")
    return doc


def _sort_key(record: JobRecord) -> datetime:
    return record.activity_at or _EPOCH


class RecordStore:
    def __init__(
        self,
        kv: KeyValueStore,
        *,
        defaults: SearchSettings | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.kv = kv
        self.defaults = defaults or SearchSettings()
        self._clock = clock
        self._lock = threading.RLock()
        self.mirror = SyncMirror(kv.path)
        self.mirror.target = self.load_settings().sync_path

    # ── plumbing ─────────────────────────────────────────────────────────

    @contextmanager
    def _mutation(self, on_commit: Callable[[], None] | None = None) -> Iterator[Transaction]:
        with self._lock:
            with self.kv.transaction() as txn:
                yield txn
            if on_commit is not None:
                on_commit()
            self.mirror.mirror()

    def _read_record(self, txn: Transaction, job_id: str) -> JobRecord | None:
        raw = txn.get(JOBS, job_id)
        return JobRecord.from_dict(_decode(raw, f"job {job_id}")) if raw else None

    def _write_record(self, txn: Transaction, record: JobRecord) -> None:
        txn.put(JOBS, record.external_id, _encode(record.to_dict()))

    def _upsert(self, txn: Transaction, record: JobRecord, now: datetime) -> JobRecord:
        existing = self._read_record(txn, record.external_id)
        if existing is None:
            change = transition_status(
                AdStatus.NEW, record.status, now,
                applied_at=record.applied_at, bookmarked_at=record.bookmarked_at,
            )
            stored = replace(
                record,
                status=change.status,
                applied_at=change.applied_at,
                bookmarked_at=change.bookmarked_at,
                created_at=record.created_at or now,
            )
        else:
            # Listing fields follow upstream; user state and first-seen data stay.
            stored = replace(
                existing,
                **{name: getattr(record, name) for name in LISTING_FIELDS},
                search_keyword=existing.search_keyword or record.search_keyword,
                search_zone=existing.search_zone if existing.search_zone is not None
                else record.search_zone,
            )
        self._write_record(txn, stored)
        return stored

    def _records(self) -> list[JobRecord]:
        return [JobRecord.from_dict(_decode(v, f"job {k}")) for k, v in self.kv.scan(JOBS)]

    # ── job records ──────────────────────────────────────────────────────

    def upsert(self, record: JobRecord) -> JobRecord:
        with self._mutation() as txn:
            return self._upsert(txn, record, self._clock())

    def upsert_many(self, records: Iterable[JobRecord]) -> list[JobRecord]:
        records = list(records)
        if not records:
            return []
        now = self._clock()
        with self._mutation() as txn:
            stored = [self._upsert(txn, r, now) for r in records]
        log.info("Stored %d record(s)", len(stored))
        return stored

    def get(self, job_id: str) -> JobRecord | None:
        raw = self.kv.get(JOBS, job_id)
        return JobRecord.from_dict(_decode(raw, f"job {job_id}")) if raw else None

    def all_records(self) -> list[JobRecord]:
        return sorted(self._records(), key=_sort_key, reverse=True)

    def list_by(
        self,
        statuses: Sequence[AdStatus] = (),
        year: int | None = None,
        month: int | None = None,
    ) -> list[JobRecord]:
        """Records filtered by status and calendar month, most recent first.

        No statuses means everything except REJECTED. With a month and a
        single APPLIED (or BOOKMARKED) status the match is on ``applied_at``
        (``bookmarked_at``), so records that moved on since still show up in
        the month they were applied to. Otherwise the month is checked against
        applied_at, then bookmarked_at, then created_at. Ordering uses the
        same fallback chain.
        """
        if month is not None and year is None:
            raise ValueError("month filter requires a year")
        if month is not None and not 1 <= month <= 12:
            raise ValueError(f"month out of range: {month}")
        wanted = [AdStatus.parse(s) for s in statuses]
        single = wanted[0] if len(wanted) == 1 else None
        by_timestamp = {AdStatus.APPLIED: "applied_at", AdStatus.BOOKMARKED: "bookmarked_at"}

        out: list[JobRecord] = []
        for record in self._records():
            if month is not None and single in by_timestamp:
                when = getattr(record, by_timestamp[single])
                if when is None:
                    continue
            else:
                if wanted and record.status not in wanted:
                    continue
                if not wanted and record.status is AdStatus.REJECTED:
                    continue
                when = record.activity_at
            if year is not None:
                if when is None or when.year != year:
                    continue
                if month is not None and when.month != month:
                    continue
            out.append(record)
        return sorted(out, key=_sort_key, reverse=True)

    def set_status(self, job_id: str, status: AdStatus) -> JobRecord | None:
        with self._mutation() as txn:
            record = self._read_record(txn, job_id)
            if record is None:
                log.warning("set_status: unknown job %s", job_id)
                return None
            change = transition_status(
                record.status, status, self._clock(),
                applied_at=record.applied_at, bookmarked_at=record.bookmarked_at,
            )
            record = replace(
                record,
                status=change.status,
                applied_at=change.applied_at,
                bookmarked_at=change.bookmarked_at,
            )
            self._write_record(txn, record)
        log.debug("%s: %s → %s", job_id, change.previous.name, change.status.name)
        return record

    def mark_read(self, job_id: str) -> bool:
        with self._mutation() as txn:
            record = self._read_record(txn, job_id)
            if record is None:
                return False
            self._write_record(txn, replace(record, is_read=True))
        return True

    def set_rating(self, job_id: str, rating: int | None) -> bool:
        if rating is not None and not 0 <= int(rating) <= 10:
            raise ValueError(f"rating must be within 0–10, got {rating}")
        with self._mutation() as txn:
            record = self._read_record(txn, job_id)
            if record is None:
                return False
            self._write_record(
                txn, replace(record, rating=int(rating) if rating is not None else None)
            )
        return True

    def clear(self, keep: Callable[[JobRecord], bool]) -> int:
        """Delete every record for which *keep* is false; returns the count."""
        removed = 0
        with self._mutation() as txn:
            for key, raw in txn.scan(JOBS):
                record = JobRecord.from_dict(_decode(raw, f"job {key}"))
                if not keep(record):
                    txn.delete(JOBS, key)
                    removed += 1
        log.info("Cleared %d record(s)", removed)
        return removed

    def clear_non_bookmarked(self) -> int:
        return self.clear(lambda r: r.status not in (AdStatus.NEW, AdStatus.REJECTED))

    def keyword_stats(self) -> dict[str, int]:
        """How many stored records each search keyword produced, most first."""
        counts = Counter(r.search_keyword for r in self._records() if r.search_keyword)
        return dict(counts.most_common())

    # ── settings ─────────────────────────────────────────────────────────

    def save_settings(self, settings: SearchSettings) -> None:
        def retarget() -> None:
            self.mirror.target = settings.sync_path

        with self._mutation(on_commit=retarget) as txn:
            txn.put(SETTINGS, SETTINGS_KEY, _encode(settings.to_dict()))
        log.info("Settings saved")

    def load_settings(self) -> SearchSettings:
        raw = self.kv.get(SETTINGS, SETTINGS_KEY)
        if raw is None:
            return replace(self.defaults)
        return SearchSettings.from_dict(_decode(raw, "settings"), defaults=self.defaults)

    # ── drafts ───────────────────────────────────────────────────────────

    def save_draft(self, job_id: str, content: str) -> ApplicationDraft:
        draft = ApplicationDraft(job_id=job_id, content=content, updated_at=self._clock())
        with self._mutation() as txn:
            txn.put(DRAFTS, job_id, _encode(draft.to_dict()))
        return draft

    def load_draft(self, job_id: str) -> ApplicationDraft | None:
        raw = self.kv.get(DRAFTS, job_id)
        return ApplicationDraft.from_dict(_decode(raw, f"draft {job_id}")) if raw else None

    def list_drafts(self) -> list[ApplicationDraft]:
        """Drafts newest first, with the headline of their record when it still exists."""
        drafts = []
        for key, raw in self.kv.scan(DRAFTS):
            draft = ApplicationDraft.from_dict(_decode(raw, f"draft {key}"))
            record = self.get(draft.job_id)
            draft.headline = record.headline if record else ""
            drafts.append(draft)
        return sorted(drafts, key=lambda d: d.updated_at, reverse=True)

    def delete_draft(self, job_id: str) -> bool:
        with self._mutation() as txn:
            return txn.delete(DRAFTS, job_id)

    def close(self) -> None:
        self.kv.close()


def open_store(path: str | Path | None = None) -> RecordStore:
    """Open the SQLite-backed store at *path* (default: configured location)."""
    location = Path(path) if path else db_path()
    log.info("Using store at %s", location)
    return RecordStore(SqliteKeyValueStore(location), defaults=load_default_settings())
