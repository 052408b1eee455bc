"""Which record set is on screen: a live zone search or a month of the archive.

Work runs on an injected executor (inline when none is given) and every
display change is posted as a ``DisplayUpdate`` on a queue; the presentation
thread pulls them with ``drain_updates()``. Each trigger bumps a generation
counter and results carrying an older generation are dropped, so a slow
search for a zone the user has already left never overwrites the display.
"""
from __future__ import annotations

import queue
import threading
from concurrent.futures import Executor
from dataclasses import dataclass
from datetime import date
from typing import Callable, Sequence, Union

from jobseeker.agent import SearchOutcome
from jobseeker.log import get_logger
from jobseeker.models import ZONES, AdStatus, JobRecord
from jobseeker.store import RecordStore

log = get_logger(__name__)


@dataclass(frozen=True)
class LiveSearch:
    zone: int
    generation: int
    records: tuple[JobRecord, ...] = ()
    loading: bool = True


@dataclass(frozen=True)
class Archive:
    year: int
    month: int
    generation: int
    records: tuple[JobRecord, ...] = ()
    loading: bool = True
    return_zone: int = 1


DisplayState = Union[LiveSearch, Archive]


@dataclass(frozen=True)
class DisplayUpdate:
    state: DisplayState
    message: str = ""


def shift_month(year: int, month: int, delta: int) -> tuple[int, int]:
    index = year * 12 + (month - 1) + delta
    return index // 12, index % 12 + 1


class DataSourceCoordinator:
    def __init__(
        self,
        store: RecordStore,
        search: Callable[[int], SearchOutcome],
        *,
        executor: Executor | None = None,
        archive_statuses: Sequence[AdStatus] = (),
        today: Callable[[], date] = date.today,
    ) -> None:
        self.store = store
        self._search = search
        self._executor = executor
        self._archive_statuses = tuple(archive_statuses)
        self._today = today
        self._lock = threading.RLock()
        self._updates: queue.Queue[DisplayUpdate] = queue.Queue()
        self.generation = 0
        self.state: DisplayState | None = None

    # ── triggers ─────────────────────────────────────────────────────────

    def start(self) -> None:
        """Load this month's archive, then search zone 1 over it."""
        today = self._today()
        self._show_month(today.year, today.month, return_zone=1)
        self.select_zone(1)

    def select_zone(self, zone: int) -> int:
        if zone not in ZONES:
            raise ValueError(f"zone must be one of {ZONES}, got {zone}")
        with self._lock:
            generation = self._advance()
            self._set(LiveSearch(zone=zone, generation=generation),
                      f"Searching zone {zone}…")
        self._submit(self._run_search, generation, zone)
        return generation

    def navigate_month(self, delta: int) -> int:
        """Step the archive month; from a live search this switches to the archive."""
        with self._lock:
            state = self.state
            if isinstance(state, Archive):
                year, month = shift_month(state.year, state.month, delta)
                return_zone = state.return_zone
            else:
                today = self._today()
                year, month = shift_month(today.year, today.month, delta)
                return_zone = state.zone if isinstance(state, LiveSearch) else 1
        return self._show_month(year, month, return_zone)

    def refresh(self) -> int:
        state = self.state
        if isinstance(state, LiveSearch):
            return self.select_zone(state.zone)
        if isinstance(state, Archive):
            return self._show_month(state.year, state.month, state.return_zone)
        self.start()
        return self.generation

    # ── results ──────────────────────────────────────────────────────────

    def deliver(self, generation: int, zone: int, outcome: SearchOutcome) -> bool:
        """Apply a finished zone search; False when it is stale and was dropped."""
        with self._lock:
            state = self.state
            if (
                generation != self.generation
                or not isinstance(state, LiveSearch)
                or state.zone != zone
            ):
                log.debug("Dropping stale result for zone %d (generation %d, current %d)",
                          zone, generation, self.generation)
                return False
            self._set(
                LiveSearch(zone=zone, generation=generation,
                           records=tuple(outcome.records), loading=False),
                outcome.status_message,
            )
        return True

    def drain_updates(self) -> list[DisplayUpdate]:
        updates = []
        while True:
            try:
                updates.append(self._updates.get_nowait())
            except queue.Empty:
                return updates

    @property
    def records(self) -> tuple[JobRecord, ...]:
        return self.state.records if self.state is not None else ()

    # ── internals ────────────────────────────────────────────────────────

    def _advance(self) -> int:
        self.generation += 1
        return self.generation

    def _set(self, state: DisplayState, message: str = "") -> None:
        self.state = state
        self._updates.put(DisplayUpdate(state, message))

    def _submit(self, fn: Callable[..., None], *args) -> None:
        if self._executor is None:
            fn(*args)
        else:
            self._executor.submit(fn, *args)

    def _show_month(self, year: int, month: int, return_zone: int) -> int:
        with self._lock:
            generation = self._advance()
            self._set(Archive(year=year, month=month, generation=generation,
                              return_zone=return_zone))
        self._submit(self._load_month, generation, year, month, return_zone)
        return generation

    def _run_search(self, generation: int, zone: int) -> None:
        try:
            outcome = self._search(zone)
        except Exception as exc:
            log.error("Search for zone %d failed: %s", zone, exc)
            outcome = SearchOutcome(zone=zone, status_message=f"Search failed: {exc}")
        self.deliver(generation, zone, outcome)

    def _load_month(self, generation: int, year: int, month: int, return_zone: int) -> None:
        try:
            records = self.store.list_by(self._archive_statuses, year=year, month=month)
            message = f"{len(records)} record(s) in {year}-{month:02d}"
        except Exception as exc:
            log.error("Loading archive %d-%02d failed: %s", year, month, exc)
            records, message = [], f"Could not load {year}-{month:02d}: {exc}"
        with self._lock:
            state = self.state
            if generation != self.generation or not isinstance(state, Archive):
                log.debug("Dropping stale archive %d-%02d (generation %d)",
                          year, month, generation)
                return
            self._set(
                Archive(year=year, month=month, generation=generation,
                        records=tuple(records), loading=False, return_zone=return_zone),
                message,
            )
