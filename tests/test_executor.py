"""Hit parsing, request execution and the JobTech HTTP backend."""

import threading

import pytest
import requests

from conftest import make_hit
from jobseeker import retry as retry_mod
from jobseeker.config import BUILTIN_DEFAULTS, ApiSettings
from jobseeker.errors import (
    MalformedRecordError,
    MalformedResponseError,
    TransientNetworkError,
    UpstreamError,
)
from jobseeker.executor import (
    QUALIFICATION_KEYS,
    SearchExecutor,
    find_section,
    parse_hit,
    parse_response,
    tag_keyword,
)
from jobseeker.models import SearchRequest
from jobseeker.planner import parse_term_list, plan
from jobseeker.sources import JobTechBackend, MockBackend, get_backend
from jobseeker.sources.base import SearchBackend


class ScriptedBackend(SearchBackend):
    """Answers per municipality tuple; an Exception value is raised."""

    def __init__(self, answers):
        self.answers = answers
        self.calls = []
        self._lock = threading.Lock()

    def fetch(self, request):
        with self._lock:
            self.calls.append(request)
        answer = self.answers[request.municipalities]
        if isinstance(answer, Exception):
            raise answer
        return answer


class TestParseHit:
    def test_full_hit(self):
        hit = make_hit(
            "1001",
            occupation={"label": "Supporttekniker"},
            working_hours_type={"label": "Heltid"},
            last_application_date="2024-06-01T23:59:59",
        )
        request = SearchRequest(query='("support")', keywords=("support",), zone=2)
        raw = parse_hit(hit, request)
        assert raw.external_id == "1001"
        assert raw.employer_name == "Acme AB"
        assert raw.employer_workplace == "Acme Helsingborg"
        assert raw.description == "Arbete i vår helpdesk."
        assert raw.detail_url == "https://example.com/annons/1001"
        assert raw.municipality_code == "1283"
        assert raw.municipality_name == "Helsingborg"
        assert raw.occupation == "Supporttekniker"
        assert raw.working_hours == "Heltid"
        assert raw.last_application_date == "2024-06-01T23:59:59"
        assert raw.search_keyword == "support"
        assert raw.search_zone == 2
        assert not hasattr(raw, "raw")

    def test_numeric_id_becomes_string(self):
        assert parse_hit(make_hit(1001)).external_id == "1001"

    def test_detail_url_falls_back_to_application_url(self):
        hit = make_hit("1", webpage_url=None, application_details={"url": "https://apply"})
        assert parse_hit(hit).detail_url == "https://apply"

    def test_plain_string_description(self):
        hit = make_hit("1")
        hit["description"] = "bara text"
        assert parse_hit(hit).description == "bara text"

    @pytest.mark.parametrize(
        "hit",
        [
            "not an object",
            {"headline": "no id"},
            {"id": "1"},
            {"id": "1", "headline": "h", "employer": "Acme"},
            {"id": {"nested": 1}, "headline": "h"},
        ],
    )
    def test_malformed(self, hit):
        with pytest.raises(MalformedRecordError):
            parse_hit(hit)


class TestSections:
    def test_section_by_heading(self):
        hit = {"description": {"sections": [
            {"heading": "Om tjänsten", "text": "..."},
            {"heading": "Kvalifikationer", "paragraphs": ["Gymnasieexamen", "B-körkort"]},
        ]}}
        assert find_section(hit, QUALIFICATION_KEYS) == "Gymnasieexamen\n\nB-körkort"

    def test_top_level_key_first(self):
        hit = {"qualifications": "Erfarenhet", "description": {"qualifications": "Annat"}}
        assert find_section(hit, QUALIFICATION_KEYS) == "Erfarenhet"

    def test_missing(self):
        assert find_section({"description": {"text": "x"}}, QUALIFICATION_KEYS) is None

    def test_working_hours_from_section(self):
        hit = make_hit("1", sections=[{"title": "Omfattning", "content": "Deltid 50%\nDagtid"}])
        assert parse_hit(hit).working_hours == "Deltid 50%"


class TestTagKeyword:
    def test_first_configured_keyword_found(self):
        assert tag_keyword("Utvecklare och support", "", ["support", "utvecklare"]) == "support"

    def test_description_searched_case_insensitively(self):
        assert tag_keyword("Tjänst", "Vi söker UTVECKLARE", ["support", "utvecklare"]) == "utvecklare"

    def test_default_keywords_ignore_letters_inside_words(self):
        keywords = parse_term_list(BUILTIN_DEFAULTS.keywords)
        tag = tag_keyword(
            "Kundtjänstmedarbetare",
            "Flexibel arbetstid och hög kvalitet i kundtjänst.",
            keywords,
        )
        assert tag == "kundtjänst"

    def test_compounds_match_at_either_end(self):
        keywords = ["it", "utvecklare"]
        assert tag_keyword("IT-tekniker", "", keywords) == "it"
        assert tag_keyword("Systemutvecklare", "", keywords) == "utvecklare"
        assert tag_keyword("Kvalitetsansvarig", "", keywords) is None

    def test_phrase_matched_whole(self):
        keywords = ["first line", "support"]
        assert tag_keyword("Helpdesk", "Första linjens support", keywords) == "support"
        assert tag_keyword("Helpdesk", "First  line support", keywords) == "first line"

    def test_falls_back_to_query(self):
        request = SearchRequest(query='("x" OR "y")', keywords=("x", "y"))
        raw = parse_hit(make_hit("1", headline="Annat", description="Inget"), request)
        assert raw.search_keyword == '("x" OR "y")'


class TestParseResponse:
    def test_hits_required(self):
        with pytest.raises(MalformedResponseError):
            parse_response({"total": {"value": 0}})
        with pytest.raises(MalformedResponseError):
            parse_response({"hits": "nope"})
        with pytest.raises(MalformedResponseError):
            parse_response([])


class TestSearchExecutor:
    def test_partial_failure_keeps_siblings(self):
        backend = ScriptedBackend({
            ("1280",): {"hits": [make_hit("a", municipality_code="1280")]},
            ("1281",): TransientNetworkError("503", status_code=503),
            ("1283",): {"hits": [make_hit("b")]},
        })
        requests_ = plan(["support"], ["1280", "1281", "1283"], max_locations_per_request=1)
        report = SearchExecutor(backend, max_workers=3).execute(requests_)
        assert [h.external_id for h in report.hits] == ["a", "b"]
        assert len(report.failures) == 1
        assert report.failures[0].request.municipalities == ("1281",)
        assert report.partial
        assert report.succeeded == 2

    def test_malformed_hits_skipped(self):
        backend = ScriptedBackend({("1283",): {"hits": [make_hit("a"), {"headline": "no id"}, 42]}})
        report = SearchExecutor(backend).execute(plan(["support"], ["1283"]))
        assert [h.external_id for h in report.hits] == ["a"]
        assert report.skipped_hits == 2
        assert not report.failures

    def test_malformed_response_fails_only_that_request(self):
        backend = ScriptedBackend({
            ("1280",): {"no_hits": True},
            ("1283",): {"hits": [make_hit("b")], "total": {"value": 7}},
        })
        requests_ = plan(["support"], ["1280", "1283"], max_locations_per_request=1)
        report = SearchExecutor(backend, max_workers=2).execute(requests_)
        assert [h.external_id for h in report.hits] == ["b"]
        assert isinstance(report.failures[0].error, MalformedResponseError)
        assert report.total_upstream == 7
        assert report.unfetched == 0

    def test_hits_in_plan_order(self):
        answers = {
            (code,): {"hits": [make_hit(f"id-{code}", municipality_code=code)]}
            for code in ("1", "2", "3", "4")
        }
        requests_ = plan(["a"], ["1", "2", "3", "4"], max_locations_per_request=1)
        report = SearchExecutor(ScriptedBackend(answers), max_workers=4).execute(requests_)
        assert [h.external_id for h in report.hits] == ["id-1", "id-2", "id-3", "id-4"]

    def test_keyword_batches_run_in_order(self):
        backend = ScriptedBackend({("1283",): {"hits": []}})
        requests_ = plan(["a", "b", "c"], ["1283"], keywords_per_request=1)
        SearchExecutor(backend, max_workers=4).execute(requests_)
        assert [r.query for r in backend.calls] == ['("a")', '("b")', '("c")']

    def test_empty_plan(self):
        report = SearchExecutor(MockBackend()).execute([])
        assert report.requests == 0 and report.hits == []


class PagedBackend(SearchBackend):
    """``total`` listings served a page at a time; listed offsets fail."""

    def __init__(self, total, fail_offsets=()):
        self.total = total
        self.fail_offsets = set(fail_offsets)
        self.offsets = []

    def fetch(self, request):
        self.offsets.append(request.offset)
        if request.offset in self.fail_offsets:
            raise TransientNetworkError("503 Service Unavailable", status_code=503)
        end = min(request.offset + request.limit, self.total)
        return {
            "total": {"value": self.total},
            "hits": [make_hit(str(i)) for i in range(request.offset, end)],
        }


class TestPagination:
    def test_follow_up_pages_until_total(self):
        backend = PagedBackend(250)
        report = SearchExecutor(backend).execute(plan(["support"], ["1283"]))
        assert backend.offsets == [0, 100, 200]
        assert len(report.hits) == 250
        assert report.pages == 3
        assert report.requests == 1
        assert report.unfetched == 0

    def test_page_cap_leaves_rest_unfetched(self):
        backend = PagedBackend(450)
        report = SearchExecutor(backend, max_pages=2).execute(plan(["support"], ["1283"]))
        assert backend.offsets == [0, 100]
        assert len(report.hits) == 200
        assert report.total_upstream == 450
        assert report.unfetched == 250

    def test_single_page_when_total_fits(self):
        backend = PagedBackend(40)
        report = SearchExecutor(backend).execute(plan(["support"], ["1283"], limit=40))
        assert backend.offsets == [0]
        assert report.unfetched == 0

    def test_stops_at_upstream_offset_limit(self):
        backend = PagedBackend(5000)
        report = SearchExecutor(backend, max_pages=100).execute(plan(["support"], ["1283"]))
        assert backend.offsets == list(range(0, 2100, 100))
        assert report.unfetched == 5000 - 2100

    def test_failed_follow_up_keeps_first_page(self):
        backend = PagedBackend(250, fail_offsets={100})
        report = SearchExecutor(backend).execute(plan(["support"], ["1283"]))
        assert backend.offsets == [0, 100]
        assert len(report.hits) == 100
        assert not report.failures
        assert report.unfetched == 150


class FakeResponse:
    def __init__(self, status_code=200, body=None, text=""):
        self.status_code = status_code
        self._body = body
        self.text = text

    def json(self):
        if self._body is None:
            raise ValueError("Expecting value")
        return self._body


class FakeSession:
    def __init__(self, responses):
        self.headers = {}
        self.responses = list(responses)
        self.calls = []
        self.closed = False

    def get(self, url, params=None, timeout=None):
        self.calls.append((url, params, timeout))
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response

    def close(self):
        self.closed = True


@pytest.fixture
def no_sleep(monkeypatch):
    monkeypatch.setattr(retry_mod.time, "sleep", lambda s: None)


class TestJobTechBackend:
    api = ApiSettings(base_url="https://api.test", timeout=5.0, max_attempts=3)

    def test_request_shape(self):
        session = FakeSession([FakeResponse(body={"hits": []})])
        backend = JobTechBackend(self.api, session=session)
        request = plan(["support"], ["1283", "1280"])[0]
        assert backend.fetch(request) == {"hits": []}
        url, params, timeout = session.calls[0]
        assert url == "https://api.test/search"
        assert timeout == 5.0
        assert params == [
            ("q", '("support")'),
            ("limit", "100"),
            ("municipality", "1283"),
            ("municipality", "1280"),
        ]
        assert session.headers["accept"] == "application/json"

    def test_retries_5xx_then_succeeds(self, no_sleep):
        session = FakeSession([
            FakeResponse(503, text="busy"),
            requests.Timeout("slow"),
            FakeResponse(body={"hits": [make_hit("1")]}),
        ])
        body = JobTechBackend(self.api, session=session).fetch(plan(["a"], [])[0])
        assert len(body["hits"]) == 1
        assert len(session.calls) == 3

    def test_gives_up_after_attempts(self, no_sleep):
        session = FakeSession([FakeResponse(500)] * 3)
        with pytest.raises(TransientNetworkError) as info:
            JobTechBackend(self.api, session=session).fetch(plan(["a"], [])[0])
        assert info.value.status_code == 500
        assert len(session.calls) == 3

    def test_client_error_not_retried(self, no_sleep):
        session = FakeSession([FakeResponse(400, text="bad query")])
        with pytest.raises(UpstreamError) as info:
            JobTechBackend(self.api, session=session).fetch(plan(["a"], [])[0])
        assert info.value.status_code == 400
        assert len(session.calls) == 1

    def test_non_json_body(self):
        session = FakeSession([FakeResponse(200, body=None)])
        with pytest.raises(MalformedResponseError):
            JobTechBackend(self.api, session=session).fetch(plan(["a"], [])[0])

    def test_close(self):
        session = FakeSession([])
        JobTechBackend(self.api, session=session).close()
        assert session.closed


class TestGetBackend:
    def test_offline_flag(self, monkeypatch):
        monkeypatch.setenv("JOBSEEKER_OFFLINE", "1")
        assert isinstance(get_backend(ApiSettings()), MockBackend)

    def test_online(self):
        backend = get_backend(ApiSettings(), offline=False)
        assert isinstance(backend, JobTechBackend)
        backend.close()

    def test_mock_filters_by_municipality(self):
        body = MockBackend().fetch(plan(["a"], ["1280"])[0])
        assert [h["id"] for h in body["hits"]] == ["mock-1002"]
        assert body["total"]["value"] == 1
