"""Merge per-request results: de-duplicate by external id, apply the blacklist.

Blacklisting is absolute exclusion on a case-insensitive substring match in the
headline or description. Broad terms cut deep: "körkort" also removes listings
that merely mention a licence as a merit.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, Sequence

from jobseeker.log import get_logger
from jobseeker.models import JobRecord, RawHit

log = get_logger(__name__)


def dedupe(raw_hits: Iterable[RawHit]) -> list[RawHit]:
    """One hit per external id; the first seen wins, provenance included."""
    seen: dict[str, RawHit] = {}
    for hit in raw_hits:
        if hit.external_id not in seen:
            seen[hit.external_id] = hit
    return list(seen.values())


def blacklisted_term(record: JobRecord | RawHit, terms: Sequence[str]) -> str | None:
    headline = (record.headline or "").casefold()
    description = (record.description or "").casefold()
    for term in terms:
        needle = term.strip().casefold()
        if needle and (needle in headline or needle in description):
            return term
    return None


def apply_blacklist(
    records: Iterable[JobRecord], terms: Sequence[str]
) -> tuple[list[JobRecord], list[JobRecord]]:
    """Split into ``(kept, excluded)``."""
    kept: list[JobRecord] = []
    excluded: list[JobRecord] = []
    for record in records:
        term = blacklisted_term(record, terms)
        if term is None:
            kept.append(record)
        else:
            log.debug("Excluded %s (%r) — blacklisted term %r",
                      record.external_id, record.headline, term)
            excluded.append(record)
    return kept, excluded


@dataclass
class MergeResult:
    records: list[JobRecord] = field(default_factory=list)
    duplicates: int = 0
    excluded: list[JobRecord] = field(default_factory=list)


def merge_counted(raw_hits: Iterable[RawHit], blacklist: Sequence[str]) -> MergeResult:
    """De-duplicate, convert and blacklist, keeping the counts for status messages."""
    hits = list(raw_hits)
    unique = dedupe(hits)
    kept, excluded = apply_blacklist((JobRecord.from_hit(h) for h in unique), blacklist)
    log.info(
        "Merged %d hit(s) → %d unique, %d blacklisted, %d kept",
        len(hits), len(unique), len(excluded), len(kept),
    )
    return MergeResult(records=kept, duplicates=len(hits) - len(unique), excluded=excluded)


def merge(raw_hits: Iterable[RawHit], blacklist: Sequence[str]) -> list[JobRecord]:
    return merge_counted(raw_hits, blacklist).records
