"""JobTech JobSearch API (Arbetsförmedlingen): public listing search.

Docs: https://jobsearch.api.jobtechdev.se
"""
from __future__ import annotations

from typing import Any

import requests

from jobseeker.config import ApiSettings
from jobseeker.errors import MalformedResponseError, TransientNetworkError, UpstreamError
from jobseeker.log import get_logger
from jobseeker.models import SearchRequest
from jobseeker.retry import retry
from jobseeker.sources.base import SearchBackend

log = get_logger(__name__)


class JobTechBackend(SearchBackend):
    def __init__(self, api: ApiSettings | None = None, session: requests.Session | None = None) -> None:
        self.api = api or ApiSettings()
        self.session = session or requests.Session()
        self.session.headers.update({"accept": "application/json"})
        self._fetch_with_retry = retry(
            max_attempts=self.api.max_attempts,
            base_delay=1.0,
            retryable=(TransientNetworkError,),
        )(self._fetch_once)

    @property
    def search_url(self) -> str:
        return f"{self.api.base_url}/search"

    def _fetch_once(self, request: SearchRequest) -> Any:
        # Parameters are a list of pairs so repeated "municipality" keys survive
        try:
            r = self.session.get(
                self.search_url,
                params=request.params(),
                timeout=self.api.timeout,
            )
        except requests.Timeout as exc:
            raise TransientNetworkError(f"timeout after {self.api.timeout}s") from exc
        except requests.ConnectionError as exc:
            raise TransientNetworkError(f"connection failed: {exc}") from exc
        except requests.RequestException as exc:
            raise UpstreamError(f"request failed: {exc}") from exc

        if r.status_code >= 500 or r.status_code == 429:
            raise TransientNetworkError(
                f"API error {r.status_code}: {r.text[:200]}", status_code=r.status_code
            )
        if r.status_code >= 400:
            raise UpstreamError(
                f"API error {r.status_code}: {r.text[:200]}", status_code=r.status_code
            )
        try:
            return r.json()
        except ValueError as exc:
            raise MalformedResponseError(f"response is not JSON: {exc}") from exc

    def fetch(self, request: SearchRequest) -> Any:
        log.debug("GET %s %s", self.search_url, request.label())
        return self._fetch_with_retry(request)

    def close(self) -> None:
        self.session.close()
