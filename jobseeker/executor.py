"""Run planned requests against a backend and parse the listings they return."""
from __future__ import annotations

import re
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field, replace
from itertools import groupby
from typing import Any, Sequence

from jobseeker.errors import MalformedRecordError, MalformedResponseError
from jobseeker.log import get_logger
from jobseeker.models import RawHit, SearchRequest
from jobseeker.planner import MAX_OFFSET
from jobseeker.sources.base import SearchBackend

log = get_logger(__name__)

# Pages fetched per planned request, the first one included.
DEFAULT_MAX_PAGES = 5

QUALIFICATION_KEYS: tuple[str, ...] = (
    "qualifications", "qualification", "requirements", "skills",
    "kvalifikationer", "kvalifikation", "kompetenskrav", "krav",
)
ADDITIONAL_INFO_KEYS: tuple[str, ...] = (
    "other_information", "additional_information", "otherinfo",
    "övrig_information", "övrig", "övrig information", "övrigt", "additional",
)
WORKING_HOURS_KEYS: tuple[str, ...] = ("working_hours", "omfattning", "employment_type")


def _nonblank(value: Any) -> str | None:
    if isinstance(value, str) and value.strip():
        return value
    return None


def _section_label(section: Any) -> str:
    if not isinstance(section, dict):
        return ""
    for key in ("heading", "label", "title"):
        if isinstance(section.get(key), str):
            return section[key].lower()
    return ""


def _section_text(section: Any) -> str | None:
    if isinstance(section, str):
        return _nonblank(section)
    if not isinstance(section, dict):
        return None
    text = _nonblank(section.get("text")) or _nonblank(section.get("content"))
    if text:
        return text
    paragraphs = section.get("paragraphs")
    if isinstance(paragraphs, list):
        parts = [p for p in paragraphs if isinstance(p, str)]
        if parts:
            return "\n\n".join(parts)
    return None


def find_section(hit: dict, keys: Sequence[str]) -> str | None:
    """Locate a free-text section under any of *keys*.

    Looked up as a top-level key, as a key under ``description``, then as a
    heading in ``description.sections`` and finally in top-level ``sections``.
    """
    description = hit.get("description") if isinstance(hit.get("description"), dict) else {}
    for key in keys:
        found = _nonblank(hit.get(key)) or _nonblank(description.get(key))
        if found:
            return found

    for sections in (description.get("sections"), hit.get("sections")):
        if not isinstance(sections, list):
            continue
        for section in sections:
            label = _section_label(section)
            if any(k.lower() in label for k in keys):
                text = _section_text(section)
                if text:
                    return text
    return None


def _obj(hit: dict, key: str) -> dict:
    value = hit.get(key)
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise MalformedRecordError(f"{key!r} is {type(value).__name__}, expected object")
    return value


def _text(value: Any, name: str) -> str:
    if value is None:
        return ""
    if isinstance(value, (str, int, float)):
        return str(value)
    raise MalformedRecordError(f"{name!r} is {type(value).__name__}, expected text")


def keyword_pattern(keyword: str) -> re.Pattern:
    """Keyword at the start or end of a word, so compounds still match.

    "support" matches "Supporttekniker" and "utvecklare" matches
    "Systemutvecklare", but "it" does not match inside "kvalitet".
    Multi-word phrases are matched whole.
    """
    body = r"\s+".join(re.escape(part) for part in keyword.split())
    return re.compile(rf"(?<!\w){body}|{body}(?!\w)", re.IGNORECASE)


def tag_keyword(headline: str, description: str, keywords: Sequence[str]) -> str | None:
    """First keyword (in user order) present in the listing text."""
    text = f"{headline}\n{description}"
    for keyword in keywords:
        if keyword.strip() and keyword_pattern(keyword).search(text):
            return keyword
    return None


def parse_hit(hit: Any, request: SearchRequest | None = None) -> RawHit:
    if not isinstance(hit, dict):
        raise MalformedRecordError(f"hit is {type(hit).__name__}, expected object")
    raw_id = hit.get("id")
    if raw_id is None or isinstance(raw_id, (dict, list)) or not str(raw_id).strip():
        raise MalformedRecordError("hit has no usable 'id'")
    headline = hit.get("headline")
    if not isinstance(headline, str):
        raise MalformedRecordError(f"hit {raw_id} has no 'headline'")

    desc_field = hit.get("description")
    if isinstance(desc_field, dict):
        description = _text(desc_field.get("text"), "description.text")
    else:
        description = _text(desc_field, "description")

    employer = _obj(hit, "employer")
    address = _obj(hit, "workplace_address")
    application = _obj(hit, "application_details")

    working_hours = _text(_obj(hit, "working_hours_type").get("label"), "working_hours_type")
    if not working_hours:
        section = find_section(hit, WORKING_HOURS_KEYS)
        if section:
            working_hours = section.splitlines()[0].strip()

    keywords = request.keywords if request else ()
    fallback = request.query if request else None
    return RawHit(
        external_id=str(raw_id).strip(),
        headline=headline,
        employer_name=_text(employer.get("name"), "employer.name"),
        employer_workplace=_text(employer.get("workplace"), "employer.workplace"),
        description=description,
        detail_url=_text(hit.get("webpage_url") or application.get("url"), "webpage_url"),
        publication_date=_text(hit.get("publication_date"), "publication_date"),
        last_application_date=_text(hit.get("last_application_date"), "last_application_date")
        or None,
        municipality_code=_text(address.get("municipality_code"), "municipality_code"),
        municipality_name=_text(address.get("municipality"), "municipality"),
        city=_text(address.get("city"), "city"),
        occupation=_text(_obj(hit, "occupation").get("label"), "occupation"),
        working_hours=working_hours,
        qualifications=find_section(hit, QUALIFICATION_KEYS) or "",
        additional_information=find_section(hit, ADDITIONAL_INFO_KEYS) or "",
        search_keyword=tag_keyword(headline, description, keywords) or fallback,
        search_zone=request.zone if request else None,
    )


def parse_response(body: Any) -> list:
    if not isinstance(body, dict):
        raise MalformedResponseError(f"response is {type(body).__name__}, expected object")
    hits = body.get("hits")
    if not isinstance(hits, list):
        raise MalformedResponseError("no 'hits' array found in response")
    return hits


@dataclass
class RequestFailure:
    request: SearchRequest
    error: BaseException

    def __str__(self) -> str:
        return f"{self.request.label()}: {type(self.error).__name__}: {self.error}"


@dataclass
class ExecutionReport:
    hits: list[RawHit] = field(default_factory=list)
    failures: list[RequestFailure] = field(default_factory=list)
    skipped_hits: int = 0
    requests: int = 0
    pages: int = 0
    total_upstream: int = 0
    unfetched: int = 0

    @property
    def succeeded(self) -> int:
        return self.requests - len(self.failures)

    @property
    def partial(self) -> bool:
        return bool(self.failures) and self.succeeded > 0


@dataclass
class _RequestResult:
    hits: list[RawHit] = field(default_factory=list)
    skipped: int = 0
    pages: int = 0
    upstream: int = 0
    unfetched: int = 0


class SearchExecutor:
    """Issues requests and collects hits in plan order.

    Keyword batches run one after another; the requests inside a batch
    (one per location chunk or page) run concurrently. A failing request is
    recorded in the report and never cancels its siblings.

    When upstream reports more matches than one page holds, follow-up pages
    are fetched for that request, up to ``max_pages`` and never past
    ``MAX_OFFSET``. Whatever is left is counted in ``unfetched``.
    """

    def __init__(self, backend: SearchBackend, max_workers: int = 4,
                 max_pages: int = DEFAULT_MAX_PAGES) -> None:
        self.backend = backend
        self.max_workers = max(1, max_workers)
        self.max_pages = max(1, max_pages)

    def _parse_page(self, request: SearchRequest, body: Any, result: _RequestResult) -> int:
        entries = parse_response(body)
        for entry in entries:
            try:
                result.hits.append(parse_hit(entry, request))
            except MalformedRecordError as exc:
                result.skipped += 1
                log.warning("Skipping malformed hit in %s: %s", request.label(), exc)
        result.pages += 1
        log.debug("%s returned %d hit(s)", request.label(), len(entries))
        return len(entries)

    def _run_one(self, request: SearchRequest) -> _RequestResult:
        result = _RequestResult()
        body = self.backend.fetch(request)
        received = self._parse_page(request, body, result)
        total = body.get("total")
        upstream = total.get("value") if isinstance(total, dict) else None
        if not isinstance(upstream, int):
            upstream = request.offset + received
        result.upstream = upstream

        page = request
        seen = request.offset + received
        exhausted = received < request.limit
        while not exhausted and seen < upstream and result.pages < self.max_pages:
            if seen > MAX_OFFSET:
                log.info("%s: stopping at upstream offset limit %d", request.label(), MAX_OFFSET)
                break
            page = replace(page, offset=seen)
            try:
                received = self._parse_page(page, self.backend.fetch(page), result)
            except Exception as exc:
                log.warning("Follow-up page failed, keeping earlier pages: %s: %s",
                            page.label(), exc)
                break
            seen += received
            exhausted = received < page.limit
        result.unfetched = 0 if exhausted else max(0, upstream - seen)
        if result.unfetched:
            log.info("%s: %d of %d upstream listing(s) not fetched",
                     request.label(), result.unfetched, upstream)
        return result

    def _run_batch(self, batch: list[tuple[int, SearchRequest]], report: ExecutionReport,
                   results: dict[int, list[RawHit]]) -> None:
        if len(batch) == 1 or self.max_workers == 1:
            outcomes = []
            for index, request in batch:
                try:
                    outcomes.append((index, request, self._run_one(request), None))
                except Exception as exc:
                    outcomes.append((index, request, None, exc))
        else:
            outcomes = []
            with ThreadPoolExecutor(max_workers=min(self.max_workers, len(batch))) as pool:
                futures = {pool.submit(self._run_one, req): (idx, req) for idx, req in batch}
                for future in as_completed(futures):
                    idx, req = futures[future]
                    try:
                        outcomes.append((idx, req, future.result(), None))
                    except Exception as exc:
                        outcomes.append((idx, req, None, exc))

        for index, request, outcome, error in outcomes:
            if error is not None:
                log.warning("Request failed, continuing with siblings: %s: %s",
                            request.label(), error)
                report.failures.append(RequestFailure(request, error))
                continue
            results[index] = outcome.hits
            report.skipped_hits += outcome.skipped
            report.pages += outcome.pages
            report.total_upstream += outcome.upstream
            report.unfetched += outcome.unfetched

    def execute(self, requests: Sequence[SearchRequest]) -> ExecutionReport:
        report = ExecutionReport(requests=len(requests))
        results: dict[int, list[RawHit]] = {}
        indexed = list(enumerate(requests))
        for batch_no, group in groupby(indexed, key=lambda pair: pair[1].batch):
            batch = list(group)
            log.debug("Running batch %d with %d request(s)", batch_no, len(batch))
            self._run_batch(batch, report, results)
        for index in sorted(results):
            report.hits.extend(results[index])
        report.failures.sort(key=lambda f: requests.index(f.request))
        log.info(
            "Executed %d request(s): %d ok, %d failed, %d hit(s), %d skipped",
            report.requests, report.succeeded, len(report.failures),
            len(report.hits), report.skipped_hits,
        )
        return report
