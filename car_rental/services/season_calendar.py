from __future__ import annotations

from collections.abc import Mapping
from datetime import date
from typing import Any, Iterable, NamedTuple, Sequence


# Fixed leap-year reference calendar.
DAYS_IN_MONTH = (31, 29, 31, 30, 31, 30, 31, 31, 30, 31, 30, 31)
DAYS_IN_YEAR = sum(DAYS_IN_MONTH)

# Union of season days must reach this many distinct days. One short of
# DAYS_IN_YEAR; see DESIGN.md before changing it.
MIN_COVERED_DAYS = 365

OVERLAP_MESSAGE = "Seasons overlap detected. Each day must belong to only one season"
COVERAGE_GAP_MESSAGE = "All days of the year must be covered by seasons. Found gaps in coverage"
INVALID_START_MESSAGE = "Invalid start date"
INVALID_END_MESSAGE = "Invalid end date"

ERROR_INVALID_DATE = "invalid_date"
ERROR_OVERLAP = "overlap"
ERROR_COVERAGE_GAP = "coverage_gap"

_FIELD_ALIASES = {
    "start_month": ("start_month", "startMonth", "StartMonth"),
    "start_day": ("start_day", "startDay", "StartDay"),
    "end_month": ("end_month", "endMonth", "EndMonth"),
    "end_day": ("end_day", "endDay", "EndDay"),
}


class SeasonRange(NamedTuple):
    start_month: int
    start_day: int
    end_month: int
    end_day: int


def _read_field(source: Any, field: str) -> Any:
    for alias in _FIELD_ALIASES[field]:
        if isinstance(source, Mapping):
            if alias in source:
                return source[alias]
        elif hasattr(source, alias):
            return getattr(source, alias)
    # Missing fields read as None and fail is_valid_date.
    return None


def to_season_range(source: Any) -> SeasonRange:
    """Accepts a SeasonRange, a mapping (camelCase or snake_case keys), a
    pydantic payload or a Season row and returns the bare date range."""
    if isinstance(source, SeasonRange):
        return source
    return SeasonRange(
        start_month=_read_field(source, "start_month"),
        start_day=_read_field(source, "start_day"),
        end_month=_read_field(source, "end_month"),
        end_day=_read_field(source, "end_day"),
    )


def is_valid_date(month: Any, day: Any) -> bool:
    if isinstance(month, bool) or isinstance(day, bool):
        return False
    if not isinstance(month, int) or not isinstance(day, int):
        return False
    if month < 1 or month > 12:
        return False
    return 1 <= day <= DAYS_IN_MONTH[month - 1]


def day_of_year(month: int, day: int) -> int:
    return sum(DAYS_IN_MONTH[: month - 1]) + day


def season_days(start_month: int, start_day: int, end_month: int, end_day: int) -> set[int]:
    start = day_of_year(start_month, start_day)
    end = day_of_year(end_month, end_day)
    if start <= end:
        return set(range(start, end + 1))
    # Wraps past Dec 31.
    return set(range(start, DAYS_IN_YEAR + 1)) | set(range(1, end + 1))


def validate_season_dates(season: Any) -> dict:
    span = to_season_range(season)
    if not is_valid_date(span.start_month, span.start_day):
        return {"valid": False, "message": INVALID_START_MESSAGE, "error": ERROR_INVALID_DATE}
    if not is_valid_date(span.end_month, span.end_day):
        return {"valid": False, "message": INVALID_END_MESSAGE, "error": ERROR_INVALID_DATE}
    return {"valid": True}


def validate_seasons_coverage(seasons: Iterable[Any]) -> dict:
    """Checks that the seasons partition the reference year.

    The first overlapping pair (in input order) ends the scan. Coverage is
    checked only once no pair overlaps. The result is a dict with ``valid``
    and, on failure, ``message`` and ``error``; nothing is raised. A season
    with an impossible or missing date yields the ``invalid_date`` result
    before any overlap or coverage check.
    """
    spans: Sequence[SeasonRange] = [to_season_range(season) for season in seasons]
    for span in spans:
        dates = validate_season_dates(span)
        if not dates["valid"]:
            return dates
    day_sets = [season_days(*span) for span in spans]

    for i in range(len(day_sets)):
        for j in range(i + 1, len(day_sets)):
            if day_sets[i] & day_sets[j]:
                return {"valid": False, "message": OVERLAP_MESSAGE, "error": ERROR_OVERLAP}

    covered: set[int] = set()
    for days in day_sets:
        covered |= days
    if len(covered) < MIN_COVERED_DAYS:
        return {"valid": False, "message": COVERAGE_GAP_MESSAGE, "error": ERROR_COVERAGE_GAP}

    return {"valid": True}


def is_date_in_season(month: int, day: int, season: Any) -> bool:
    span = to_season_range(season)
    current = day_of_year(month, day)
    start = day_of_year(span.start_month, span.start_day)
    end = day_of_year(span.end_month, span.end_day)
    if start <= end:
        return start <= current <= end
    return current >= start or current <= end


def get_season_for_date(value: date, seasons: Iterable[Any]) -> Any | None:
    for season in seasons:
        if is_date_in_season(value.month, value.day, season):
            return season
    return None
