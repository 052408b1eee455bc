"""Offline backend serving canned listings, for demos and tests."""
from __future__ import annotations

from typing import Any

from jobseeker.log import get_logger
from jobseeker.models import SearchRequest
from jobseeker.sources.base import SearchBackend

log = get_logger(__name__)

SAMPLE_HITS: list[dict[str, Any]] = [
    {
        "id": "mock-1001",
        "headline": "IT-supporttekniker",
        "employer": {"name": "Öresund IT AB", "workplace": "Öresund IT"},
        "description": {"text": "Vi söker en supporttekniker till vår helpdesk."},
        "webpage_url": "https://example.com/annons/1001",
        "publication_date": "2024-05-02T08:00:00",
        "workplace_address": {
            "city": "Helsingborg",
            "municipality": "Helsingborg",
            "municipality_code": "1283",
        },
        "working_hours_type": {"label": "Heltid"},
    },
    {
        "id": "mock-1002",
        "headline": "Kundtjänstmedarbetare",
        "employer": {"name": "Kustbolaget"},
        "description": {"text": "Kundtjänst via telefon och chatt. Körkort krävs."},
        "webpage_url": "https://example.com/annons/1002",
        "publication_date": "2024-05-03T09:30:00",
        "workplace_address": {
            "city": "Malmö",
            "municipality": "Malmö",
            "municipality_code": "1280",
        },
    },
    {
        "id": "mock-1003",
        "headline": "Helpdesk 1st line",
        "employer": {"name": "Lunds Servicedesk"},
        "description": {"text": "Första linjens support på engelska och svenska."},
        "webpage_url": "https://example.com/annons/1003",
        "publication_date": "2024-05-04T10:15:00",
        "workplace_address": {
            "city": "Lund",
            "municipality": "Lund",
            "municipality_code": "1281",
        },
    },
]


class MockBackend(SearchBackend):
    """Filters ``hits`` by the request's municipality codes.

    ``errors`` maps a query string to the exception raised for it.
    """

    def __init__(
        self,
        hits: list[dict[str, Any]] | None = None,
        *,
        errors: dict[str, Exception] | None = None,
    ) -> None:
        self.hits = SAMPLE_HITS if hits is None else hits
        self.errors = errors or {}
        self.calls: list[SearchRequest] = []

    def fetch(self, request: SearchRequest) -> Any:
        self.calls.append(request)
        if request.query in self.errors:
            raise self.errors[request.query]
        wanted = set(request.municipalities)
        matched = [
            h for h in self.hits
            if not wanted
            or (h.get("workplace_address") or {}).get("municipality_code") in wanted
        ]
        page = matched[request.offset:request.offset + request.limit]
        log.debug("MockBackend %s → %d hit(s)", request.label(), len(page))
        return {"total": {"value": len(matched)}, "hits": page}
