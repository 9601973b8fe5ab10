#!/usr/bin/env python3
"""Season coverage report: validates every company's stored seasons."""

from __future__ import annotations

import argparse
import os
import sys
from collections import defaultdict
from dataclasses import dataclass
from typing import Iterable

from sqlalchemy import create_engine, select, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session

from car_rental.models.season_models import Season
from car_rental.services.season_calendar import validate_season_dates, validate_seasons_coverage


@dataclass
class CheckResult:
    name: str
    ok: bool
    detail: str


def _print_section(title: str) -> None:
    print(f"\n=== {title} ===")


def _get_engine(db_url: str) -> Engine:
    return create_engine(db_url, pool_pre_ping=True, future=True)


def _seasons_by_company(engine: Engine) -> dict[int, list[Season]]:
    grouped: dict[int, list[Season]] = defaultdict(list)
    with Session(engine) as db:
        rows = db.execute(select(Season).order_by(Season.CompanyID, Season.SeasonID)).scalars().all()
        for row in rows:
            grouped[int(row.CompanyID)].append(row)
    return dict(grouped)


def check_company(company_id: int, seasons: list[Season]) -> CheckResult:
    name = f"company:{company_id}"
    for season in seasons:
        dates = validate_season_dates(season)
        if not dates["valid"]:
            return CheckResult(name, False, f"season={season.SeasonID} {dates['message']}")
    result = validate_seasons_coverage(seasons)
    if not result["valid"]:
        return CheckResult(name, False, f"seasons={len(seasons)} {result['message']}")
    return CheckResult(name, True, f"seasons={len(seasons)}")


def run_checks(engine: Engine) -> list[CheckResult]:
    return [check_company(company_id, seasons) for company_id, seasons in sorted(_seasons_by_company(engine).items())]


def _print_results(title: str, rows: Iterable[CheckResult]) -> None:
    _print_section(title)
    for row in rows:
        status = "OK" if row.ok else "FAIL"
        print(f"[{status}] {row.name} :: {row.detail}")


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Car rental season coverage report")
    parser.add_argument("--db-url", default=os.environ.get("CAR_RENTAL_DB_URL", ""))
    args = parser.parse_args(argv)

    db_url = (args.db_url or "").strip()
    if not db_url:
        print("CAR_RENTAL_DB_URL is not set. Provide --db-url or export env first.")
        return 2

    try:
        engine = _get_engine(db_url)
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
    except Exception as exc:
        print(f"Could not connect to DB: {exc}")
        return 3

    results = run_checks(engine)
    if not results:
        _print_section("Season Coverage")
        print("No seasons configured.")
        return 0
    _print_results("Season Coverage", results)
    return 0 if all(row.ok for row in results) else 1


if __name__ == "__main__":
    sys.exit(main())
