#!/usr/bin/env python3
"""Run one zone search or a free-text search and print the result.

Usage:
    python run_search.py                     # zone 1
    python run_search.py --zone 2
    python run_search.py --text "systemadministratör" --zone 1
    python run_search.py --offline           # canned listings, no network
"""
from __future__ import annotations

import argparse
import sys

from jobseeker.agent import run
from jobseeker.errors import PersistenceError
from jobseeker.log import get_logger
from jobseeker.models import ZONES

log = get_logger(__name__)


def main() -> int:
    parser = argparse.ArgumentParser(description="Search job listings for a priority zone")
    parser.add_argument("--zone", type=int, choices=ZONES, default=1, help="Priority zone (default: 1)")
    parser.add_argument("--text", help="Free-text query instead of the configured keywords")
    parser.add_argument("--offline", action="store_true", help="Use the offline sample backend")
    args = parser.parse_args()

    try:
        outcome = run(args.zone, args.text, offline=args.offline or None)
    except PersistenceError as exc:
        log.error("Store unavailable: %s", exc)
        return 2

    for record in outcome.records:
        place = record.municipality_name or record.city
        print(f"{record.external_id:>10}  {record.headline[:50]:<50}  {record.employer_name[:25]:<25}  {place}")
    print()
    print(outcome.status_message)
    return 1 if outcome.failed else 0


if __name__ == "__main__":
    sys.exit(main())
