"""
Search pipeline.

Runs: resolve locations → plan → execute → de-duplicate/blacklist → store.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable

from jobseeker.config import ApiSettings, api_settings
from jobseeker.executor import ExecutionReport, SearchExecutor
from jobseeker.locations import resolve_locations, split_locations
from jobseeker.log import get_logger
from jobseeker.merge import merge_counted
from jobseeker.models import AdStatus, JobRecord, SearchSettings
from jobseeker.planner import parse_term_list, plan
from jobseeker.sources import get_backend
from jobseeker.store import RecordStore, open_store

log = get_logger(__name__)


@dataclass
class SearchOutcome:
    zone: int | None
    records: list[JobRecord] = field(default_factory=list)
    report: ExecutionReport = field(default_factory=ExecutionReport)
    duplicates: int = 0
    excluded: int = 0
    unresolved: list[str] = field(default_factory=list)
    status_message: str = ""

    @property
    def failed(self) -> bool:
        return self.report.requests > 0 and self.report.succeeded == 0


def build_status_message(outcome: SearchOutcome) -> str:
    report = outcome.report
    where = f"zone {outcome.zone}" if outcome.zone else "free-text search"
    if report.requests == 0:
        msg = f"Nothing searched for {where}"
    elif outcome.failed:
        msg = f"Search failed for {where}: all {report.requests} request(s) failed"
    else:
        msg = f"Found {len(outcome.records)} ad(s) in {where}"
        extras = []
        if outcome.excluded:
            extras.append(f"{outcome.excluded} excluded by blacklist")
        if outcome.duplicates:
            extras.append(f"{outcome.duplicates} duplicate(s) merged")
        if report.skipped_hits:
            extras.append(f"{report.skipped_hits} unreadable listing(s) skipped")
        if report.unfetched:
            extras.append(f"{report.unfetched} more upstream not fetched")
        if extras:
            msg += " (" + ", ".join(extras) + ")"
        if report.failures:
            msg += (
                f". {len(report.failures)} of {report.requests} request(s) failed"
                " — the search is still displayed with partial results"
            )
    if outcome.unresolved:
        msg += ". Unknown locations ignored: " + ", ".join(outcome.unresolved)
    return msg


def _execute(
    outcome: SearchOutcome,
    requests: list,
    settings: SearchSettings,
    store: RecordStore,
    executor: SearchExecutor,
) -> SearchOutcome:
    report = executor.execute(requests)
    merged = merge_counted(report.hits, parse_term_list(settings.blacklist_keywords))
    stored = store.upsert_many(merged.records)

    outcome.report = report
    outcome.duplicates = merged.duplicates
    outcome.excluded = len(merged.excluded)
    outcome.records = [r for r in stored if r.status is not AdStatus.REJECTED]
    outcome.status_message = build_status_message(outcome)
    log.info(outcome.status_message)
    return outcome


def search_zone(
    zone: int,
    settings: SearchSettings,
    store: RecordStore,
    executor: SearchExecutor,
    api: ApiSettings | None = None,
) -> SearchOutcome:
    """Keyword search across the locations of one priority zone."""
    api = api or ApiSettings()
    outcome = SearchOutcome(zone=zone)
    location_text = settings.zone_locations(zone)
    codes, outcome.unresolved = resolve_locations(location_text)
    for name in outcome.unresolved:
        log.warning("Zone %d: unknown location %r dropped", zone, name)

    if not split_locations(location_text):
        outcome.status_message = f"Zone {zone} has no locations configured"
        log.info(outcome.status_message)
        return outcome
    if not codes:
        outcome.status_message = build_status_message(outcome)
        return outcome

    requests = plan(
        parse_term_list(settings.keywords),
        codes,
        zone=zone,
        limit=api.page_size,
        max_locations_per_request=api.max_locations_per_request,
        keywords_per_request=api.keywords_per_request,
    )
    return _execute(outcome, requests, settings, store, executor)


def search_free_text(
    text: str,
    settings: SearchSettings,
    store: RecordStore,
    executor: SearchExecutor,
    api: ApiSettings | None = None,
    *,
    zone: int | None = None,
) -> SearchOutcome:
    """Raw query, optionally scoped to a zone's locations."""
    api = api or ApiSettings()
    outcome = SearchOutcome(zone=zone)
    codes: list[str] = []
    if zone is not None:
        codes, outcome.unresolved = resolve_locations(settings.zone_locations(zone))
    requests = plan((), codes, free_text=text, zone=zone, limit=api.page_size,
                    max_locations_per_request=api.max_locations_per_request)
    return _execute(outcome, requests, settings, store, executor)


def zone_searcher(
    store: RecordStore, executor: SearchExecutor, api: ApiSettings | None = None
) -> Callable[[int], SearchOutcome]:
    """Bind the pipeline for the coordinator; settings are re-read on every call."""

    def search(zone: int) -> SearchOutcome:
        return search_zone(zone, store.load_settings(), store, executor, api)

    return search


def run(zone: int = 1, free_text: str | None = None, *, offline: bool | None = None,
        store: RecordStore | None = None) -> SearchOutcome:
    """One-shot search with configuration from the environment."""
    api = api_settings()
    own_store = store is None
    store = store or open_store()
    backend = get_backend(api, offline=offline)
    executor = SearchExecutor(backend, max_workers=api.max_workers, max_pages=api.max_pages)
    try:
        settings = store.load_settings()
        if free_text:
            return search_free_text(free_text, settings, store, executor, api, zone=zone)
        return search_zone(zone, settings, store, executor, api)
    finally:
        backend.close()
        if own_store:
            store.close()
