"""Build upstream search requests from keywords, locations or free text."""
from __future__ import annotations

from typing import Iterable, Sequence

from jobseeker.config import API_HARD_LIMIT
from jobseeker.log import get_logger
from jobseeker.models import SearchRequest

log = get_logger(__name__)

# Upstream rejects offsets beyond this.
MAX_OFFSET = 2000


def parse_term_list(text: str | None) -> list[str]:
    """Split a user-delimited list; case-insensitive duplicates removed, order kept."""
    if not text:
        return []
    seen: set[str] = set()
    out: list[str] = []
    for part in text.split(","):
        term = part.strip()
        key = term.casefold()
        if term and key not in seen:
            seen.add(key)
            out.append(term)
    return out


def quote_term(term: str) -> str:
    return '"' + term.replace('"', "").strip() + '"'


def build_or_query(keywords: Sequence[str]) -> str:
    """``("kw1" OR "kw2")``: every keyword quoted, the group parenthesized.

    Unquoted multi-term OR queries trigger the API's concept extraction and
    come back empty, so the quoting is not optional.
    """
    terms = [quote_term(k) for k in keywords if k.replace('"', "").strip()]
    if not terms:
        raise ValueError("at least one keyword is required")
    return "(" + " OR ".join(terms) + ")"


def clamp_limit(limit: int) -> int:
    return max(1, min(int(limit), API_HARD_LIMIT))


def _chunks(items: Sequence[str], size: int | None) -> list[tuple[str, ...]]:
    if not items:
        return [()]
    if not size or size >= len(items):
        return [tuple(items)]
    return [tuple(items[i:i + size]) for i in range(0, len(items), size)]


def _offsets(limit: int, pages: int) -> list[int]:
    offsets = [page * limit for page in range(max(1, pages))]
    kept = [o for o in offsets if o <= MAX_OFFSET]
    if len(kept) < len(offsets):
        log.warning("Pagination truncated at offset %d (%d page(s) dropped)",
                    MAX_OFFSET, len(offsets) - len(kept))
    return kept


def plan(
    keywords: Iterable[str],
    location_codes: Sequence[str],
    free_text: str | None = None,
    *,
    zone: int | None = None,
    limit: int = API_HARD_LIMIT,
    pages: int = 1,
    max_locations_per_request: int | None = None,
    keywords_per_request: int | None = None,
) -> list[SearchRequest]:
    """Plan the requests for one search.

    Free text is sent as-is in a single query. Otherwise keywords form one
    quoted OR-group (split into several groups when ``keywords_per_request``
    is set; each group is one ``batch``). Location codes go on every request
    as repeated ``municipality`` parameters, split when
    ``max_locations_per_request`` is set. No sort parameter is ever planned.
    """
    limit = clamp_limit(limit)
    location_chunks = _chunks(list(location_codes), max_locations_per_request)
    offsets = _offsets(limit, pages)

    free_text = (free_text or "").strip()
    if free_text:
        return [
            SearchRequest(
                query=free_text,
                municipalities=codes,
                limit=limit,
                offset=offset,
                zone=zone,
            )
            for codes in location_chunks
            for offset in offsets
        ]

    keyword_list = [k for k in keywords if k and k.strip()]
    if not keyword_list:
        log.warning("Nothing to search for: no keywords and no free text")
        return []

    requests_out: list[SearchRequest] = []
    for batch, group in enumerate(_chunks(keyword_list, keywords_per_request)):
        query = build_or_query(group)
        for codes in location_chunks:
            for offset in offsets:
                requests_out.append(
                    SearchRequest(
                        query=query,
                        municipalities=codes,
                        limit=limit,
                        offset=offset,
                        keywords=tuple(group),
                        zone=zone,
                        batch=batch,
                    )
                )
    log.debug("Planned %d request(s) for zone=%s", len(requests_out), zone)
    return requests_out
