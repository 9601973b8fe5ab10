from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from datetime import date, datetime
from typing import Iterator

from sqlalchemy import select
from sqlalchemy.orm import Session

from car_rental.models.season_models import Season
from car_rental.schemas.seasons import SeasonUpsert
from car_rental.services.season_calendar import (
    day_of_year,
    get_season_for_date,
    validate_season_dates,
    validate_seasons_coverage,
)


SEASON_LOGGER = logging.getLogger("car_rental.seasons")

ERROR_COMPANY_MISMATCH = "company_mismatch"

_SCOPE_LOCKS_GUARD = threading.Lock()
# One lock per rental company for the life of the worker; companies are a
# small fixed set and entries are never evicted.
_SCOPE_LOCKS: dict[int, threading.Lock] = {}


class SeasonValidationError(ValueError):
    def __init__(self, message: str, code: str):
        super().__init__(message)
        self.message = message
        self.code = code


class SeasonNotFoundError(LookupError):
    pass


def _scope_lock(company_id: int) -> threading.Lock:
    with _SCOPE_LOCKS_GUARD:
        lock = _SCOPE_LOCKS.get(company_id)
        if lock is None:
            lock = threading.Lock()
            _SCOPE_LOCKS[company_id] = lock
        return lock


@contextmanager
def _locked_scope(db: Session, company_id: int) -> Iterator[None]:
    """Serializes read-validate-write for one company.

    The in-process lock covers concurrent requests in this worker; the
    serializable transaction and row locks cover other workers sharing the
    database.
    """
    with _scope_lock(int(company_id)):
        if not db.in_transaction():
            db.connection(execution_options={"isolation_level": "SERIALIZABLE"})
        else:
            SEASON_LOGGER.warning(
                "Season write joined an open transaction company_id=%s isolation=unchanged",
                company_id,
            )
        yield


def _load_scope(db: Session, company_id: int) -> list[Season]:
    return list(
        db.execute(
            select(Season)
            .where(Season.CompanyID == company_id)
            .order_by(Season.SeasonID)
            .with_for_update()
        ).scalars().all()
    )


def _require_valid(result: dict) -> None:
    if not result.get("valid"):
        raise SeasonValidationError(result["message"], result["error"])


def _apply_payload(season: Season, payload: SeasonUpsert) -> None:
    season.CompanyID = payload.companyID
    season.SeasonName = payload.seasonName
    season.StartMonth = payload.startMonth
    season.StartDay = payload.startDay
    season.EndMonth = payload.endMonth
    season.EndDay = payload.endDay
    season.PriceMultiplier = payload.priceMultiplier
    season.DiscountLabel = payload.discountLabel
    season.UpdatedDate = datetime.now()


def serialize_season(season: Season) -> dict:
    return {
        "seasonID": season.SeasonID,
        "companyID": season.CompanyID,
        "seasonName": season.SeasonName,
        "startMonth": season.StartMonth,
        "startDay": season.StartDay,
        "endMonth": season.EndMonth,
        "endDay": season.EndDay,
        "priceMultiplier": season.PriceMultiplier,
        "discountLabel": season.DiscountLabel,
        "createdDate": season.CreatedDate,
        "updatedDate": season.UpdatedDate,
    }


def list_seasons(db: Session, company_id: int | None = None) -> list[Season]:
    stmt = select(Season)
    if company_id is not None:
        stmt = stmt.where(Season.CompanyID == company_id)
    seasons = db.execute(stmt).scalars().all()
    return sorted(
        seasons,
        key=lambda item: (item.CompanyID, day_of_year(item.StartMonth, item.StartDay), item.SeasonID),
    )


def get_season(db: Session, season_id: int) -> Season:
    season = db.get(Season, season_id)
    if not season:
        raise SeasonNotFoundError(f"Season {season_id} not found")
    return season


def find_season_for_date(db: Session, company_id: int, value: date) -> Season | None:
    return get_season_for_date(value, list_seasons(db, company_id))


def create_season(db: Session, payload: SeasonUpsert) -> Season:
    with _locked_scope(db, payload.companyID):
        try:
            _require_valid(validate_season_dates(payload))
            existing = _load_scope(db, payload.companyID)
            _require_valid(validate_seasons_coverage([*existing, payload]))

            season = Season(CreatedDate=datetime.now())
            _apply_payload(season, payload)
            db.add(season)
            db.commit()
        except SeasonValidationError as exc:
            db.rollback()
            SEASON_LOGGER.warning(
                "Season create rejected company_id=%s reason=%s", payload.companyID, exc.code
            )
            raise
        except Exception:
            db.rollback()
            raise

    SEASON_LOGGER.info("Season created season_id=%s company_id=%s", season.SeasonID, season.CompanyID)
    return season


def update_season(db: Session, season_id: int, payload: SeasonUpsert) -> Season:
    with _locked_scope(db, payload.companyID):
        try:
            season = db.execute(
                select(Season).where(Season.SeasonID == season_id).with_for_update()
            ).scalars().first()
            if not season:
                raise SeasonNotFoundError(f"Season {season_id} not found")
            if season.CompanyID != payload.companyID:
                raise SeasonValidationError(
                    "Season cannot be moved to another company", ERROR_COMPANY_MISMATCH
                )
            _require_valid(validate_season_dates(payload))
            others = [row for row in _load_scope(db, payload.companyID) if row.SeasonID != season.SeasonID]
            _require_valid(validate_seasons_coverage([*others, payload]))

            _apply_payload(season, payload)
            db.commit()
        except SeasonValidationError as exc:
            db.rollback()
            SEASON_LOGGER.warning(
                "Season update rejected season_id=%s company_id=%s reason=%s",
                season_id,
                payload.companyID,
                exc.code,
            )
            raise
        except Exception:
            db.rollback()
            raise

    SEASON_LOGGER.info("Season updated season_id=%s company_id=%s", season.SeasonID, season.CompanyID)
    return season


def replace_company_seasons(db: Session, company_id: int, payloads: list[SeasonUpsert]) -> list[Season]:
    """Swaps a company's whole season set in one transaction.

    The new set is validated on its own, so boundaries can move without
    passing through an invalid intermediate state. An empty set clears the
    company, as a delete of its last season would.
    """
    with _locked_scope(db, company_id):
        try:
            for payload in payloads:
                if payload.companyID != company_id:
                    raise SeasonValidationError(
                        "Season belongs to another company", ERROR_COMPANY_MISMATCH
                    )
                _require_valid(validate_season_dates(payload))
            if payloads:
                _require_valid(validate_seasons_coverage(payloads))

            for row in _load_scope(db, company_id):
                db.delete(row)
            db.flush()

            now = datetime.now()
            seasons = []
            for payload in payloads:
                season = Season(CreatedDate=now)
                _apply_payload(season, payload)
                db.add(season)
                seasons.append(season)
            db.commit()
        except SeasonValidationError as exc:
            db.rollback()
            SEASON_LOGGER.warning(
                "Season replace rejected company_id=%s reason=%s", company_id, exc.code
            )
            raise
        except Exception:
            db.rollback()
            raise

    SEASON_LOGGER.info("Seasons replaced company_id=%s count=%s", company_id, len(seasons))
    return sorted(seasons, key=lambda item: day_of_year(item.StartMonth, item.StartDay))


def delete_season(db: Session, season_id: int) -> None:
    owns_lookup = not db.in_transaction() and not (db.new or db.dirty or db.deleted)
    if owns_lookup:
        company_id = db.execute(select(Season.CompanyID).where(Season.SeasonID == season_id)).scalar()
        # End the lookup so the write transaction can start at serializable isolation.
        db.rollback()
    else:
        found = db.get(Season, season_id)
        company_id = found.CompanyID if found is not None else None
    if company_id is None:
        raise SeasonNotFoundError(f"Season {season_id} not found")

    with _locked_scope(db, company_id):
        try:
            existing = _load_scope(db, company_id)
            season = next((row for row in existing if row.SeasonID == season_id), None)
            if not season:
                raise SeasonNotFoundError(f"Season {season_id} not found")
            remaining = [row for row in existing if row.SeasonID != season_id]
            # An empty company is allowed; coverage is enforced again on the next create.
            if remaining:
                _require_valid(validate_seasons_coverage(remaining))

            db.delete(season)
            db.commit()
        except SeasonValidationError as exc:
            db.rollback()
            SEASON_LOGGER.warning(
                "Season delete rejected season_id=%s company_id=%s reason=%s",
                season_id,
                company_id,
                exc.code,
            )
            raise
        except Exception:
            db.rollback()
            raise

    SEASON_LOGGER.info("Season deleted season_id=%s company_id=%s", season_id, company_id)
