"""Municipality directory and location-string normalization.

Settings hold free-form, comma-separated location strings that mix place
names and upstream municipality codes ("Helsingborg, 1277, lund"). Two views
are derived from them:

- ``normalize`` gives the canonical display form (codes become names),
- ``resolve_to_codes`` gives the codes sent to the search API (names become
  codes). Names the directory does not know are dropped with a warning so one
  typo never aborts a multi-location search.
"""
from __future__ import annotations

from typing import Iterable

from jobseeker.log import get_logger

log = get_logger(__name__)

MUNICIPALITIES: tuple[tuple[str, str], ...] = (
    # Skåne
    ("helsingborg", "1283"),
    ("ängelholm", "1292"),
    ("höganäs", "1284"),
    ("bjuv", "1260"),
    ("klippan", "1276"),
    ("åstorp", "1277"),
    ("örkelljunga", "1257"),
    ("båstad", "1278"),
    ("perstorp", "1275"),
    ("landskrona", "1282"),
    ("svalöv", "1214"),
    ("burlöv", "1231"),
    ("kävlinge", "1261"),
    ("malmö", "1280"),
    ("lund", "1281"),
    ("eslöv", "1285"),
    ("vellinge", "1233"),
    ("trelleborg", "1287"),
    ("ystad", "1286"),
    ("kristianstad", "1290"),
    ("hässleholm", "1293"),
    ("lomma", "1262"),
    ("staffanstorp", "1230"),
    ("svedala", "1263"),
    ("skurup", "1264"),
    ("sjöbo", "1265"),
    ("höör", "1267"),
    ("hörby", "1266"),
    ("tomelilla", "1270"),
    ("simrishamn", "1291"),
    ("osby", "1273"),
    ("östra göinge", "1256"),
    ("bromölla", "1272"),
    # Stockholm and Mälardalen
    ("stockholm", "0180"),
    ("huddinge", "0126"),
    ("nacka", "0182"),
    ("botkyrka", "0127"),
    ("haninge", "0136"),
    ("tyresö", "0138"),
    ("täby", "0160"),
    ("sollentuna", "0163"),
    ("järfälla", "0123"),
    ("solna", "0184"),
    ("upplands väsby", "0114"),
    ("södertälje", "0181"),
    ("lidingö", "0186"),
    ("sigtuna", "0191"),
    ("sundbyberg", "0183"),
    ("uppsala", "0380"),
    ("enköping", "0381"),
    ("västerås", "1980"),
    ("eskilstuna", "0484"),
    ("nyköping", "0480"),
    # Göteborg and the west coast
    ("göteborg", "1480"),
    ("mölndal", "1481"),
    ("partille", "1402"),
    ("härryda", "1401"),
    ("kungälv", "1482"),
    ("lerum", "1441"),
    ("alingsås", "1489"),
    ("borås", "1490"),
    ("kungsbacka", "1384"),
    ("varberg", "1383"),
    ("halmstad", "1380"),
    ("uddevalla", "1485"),
    ("trollhättan", "1488"),
    ("skövde", "1496"),
    ("öckerö", "1407"),
    ("stenungsund", "1415"),
    ("tjörn", "1419"),
    # Other cities
    ("linköping", "0580"),
    ("norrköping", "0581"),
    ("jönköping", "0680"),
    ("växjö", "0780"),
    ("kalmar", "0880"),
    ("karlskrona", "1080"),
    ("karlstad", "1780"),
    ("örebro", "1880"),
    ("falun", "2080"),
    ("borlänge", "2081"),
    ("gävle", "2180"),
    ("sundsvall", "2281"),
    ("östersund", "2380"),
    ("umeå", "2480"),
    ("skellefteå", "2482"),
    ("luleå", "2580"),
)


def _key(name: str) -> str:
    return " ".join(name.split()).casefold()


def display_name(name: str) -> str:
    return " ".join(name.split()).title()


def split_locations(text: str | None) -> list[str]:
    """Comma-separated entries, trimmed, blanks dropped."""
    if not text:
        return []
    return [part.strip() for part in text.split(",") if part.strip()]


class LocationDirectory:
    """Two-way mapping between municipality names and upstream area codes."""

    def __init__(self, entries: Iterable[tuple[str, str]] = MUNICIPALITIES) -> None:
        self._by_name: dict[str, str] = {}
        self._by_code: dict[str, str] = {}
        for name, code in entries:
            self._by_name.setdefault(_key(name), code)
            self._by_code.setdefault(code, display_name(name))

    def code_for(self, name: str) -> str | None:
        return self._by_name.get(_key(name))

    def name_for(self, code: str) -> str | None:
        return self._by_code.get(code.strip())

    def __len__(self) -> int:
        return len(self._by_code)


DEFAULT_DIRECTORY = LocationDirectory()


def normalize(text: str | None, directory: LocationDirectory = DEFAULT_DIRECTORY) -> str:
    """Canonical display form: codes resolved to names, names title-cased."""
    out: list[str] = []
    for entry in split_locations(text):
        if entry.isdigit():
            out.append(directory.name_for(entry) or entry)
        else:
            out.append(display_name(entry))
    return ", ".join(out)


def resolve_locations(
    text: str | None, directory: LocationDirectory = DEFAULT_DIRECTORY
) -> tuple[list[str], list[str]]:
    """Return ``(codes, unresolved_names)``; codes are de-duplicated in order."""
    codes: list[str] = []
    unresolved: list[str] = []
    for entry in split_locations(text):
        code = entry if entry.isdigit() else directory.code_for(entry)
        if code is None:
            unresolved.append(entry)
        elif code not in codes:
            codes.append(code)
    return codes, unresolved


def resolve_to_codes(
    text: str | None, directory: LocationDirectory = DEFAULT_DIRECTORY
) -> list[str]:
    codes, unresolved = resolve_locations(text, directory)
    for name in unresolved:
        log.warning("Unknown location %r dropped from search", name)
    return codes
