"""Shared fixtures: in-memory store, fixed clock, hit builders."""
from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any

import pytest

from jobseeker.kv import MemoryKeyValueStore, SqliteKeyValueStore
from jobseeker.models import SearchSettings
from jobseeker.store import RecordStore


class FakeClock:
    def __init__(self, start: datetime = datetime(2024, 5, 10, 9, 0, tzinfo=timezone.utc)) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now

    def set(self, *args: int) -> datetime:
        self.now = datetime(*args, tzinfo=timezone.utc)
        return self.now


def make_hit(
    id: str,
    headline: str = "Supporttekniker",
    description: str = "Arbete i vår helpdesk.",
    municipality_code: str = "1283",
    municipality: str = "Helsingborg",
    **extra: Any,
) -> dict[str, Any]:
    hit: dict[str, Any] = {
        "id": id,
        "headline": headline,
        "description": {"text": description},
        "employer": {"name": "Acme AB", "workplace": "Acme Helsingborg"},
        "webpage_url": f"https://example.com/annons/{id}",
        "publication_date": "2024-05-01T08:00:00",
        "workplace_address": {
            "municipality": municipality,
            "municipality_code": municipality_code,
            "city": municipality,
        },
    }
    hit.update(extra)
    return hit


@pytest.fixture(autouse=True)
def _isolated_env(tmp_path, monkeypatch):
    monkeypatch.setenv("JOBSEEKER_DATA_DIR", str(tmp_path / "data"))
    monkeypatch.delenv("JOBSEEKER_DB_PATH", raising=False)
    monkeypatch.delenv("JOBSEEKER_OFFLINE", raising=False)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def settings() -> SearchSettings:
    return SearchSettings(
        keywords="support, utvecklare",
        blacklist_keywords="körkort",
        locations_p1="Helsingborg",
        locations_p2="Malmö, Lund",
        locations_p3="",
    )


@pytest.fixture
def store(clock, settings) -> RecordStore:
    s = RecordStore(MemoryKeyValueStore(), defaults=settings, clock=clock)
    yield s
    s.close()


@pytest.fixture
def sqlite_store(tmp_path, clock, settings) -> RecordStore:
    s = RecordStore(SqliteKeyValueStore(tmp_path / "jobs.db"), defaults=settings, clock=clock)
    yield s
    s.close()
