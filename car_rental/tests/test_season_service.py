import tempfile
import threading
import unittest
from datetime import date
from pathlib import Path

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from car_rental.db.base import Base
from car_rental.models.season_models import Season
from car_rental.schemas.seasons import SeasonUpsert
from car_rental.services import season_service
from car_rental.services.season_calendar import COVERAGE_GAP_MESSAGE, OVERLAP_MESSAGE
from car_rental.services.season_service import (
    SeasonNotFoundError,
    SeasonValidationError,
    create_season,
    delete_season,
    find_season_for_date,
    list_seasons,
    replace_company_seasons,
    serialize_season,
    update_season,
)


def _payload(name, start, end, company_id=1, multiplier=1.0, label=None):
    return SeasonUpsert(
        seasonName=name,
        companyID=company_id,
        startMonth=start[0],
        startDay=start[1],
        endMonth=end[0],
        endDay=end[1],
        priceMultiplier=multiplier,
        discountLabel=label,
    )


def _memory_session_factory():
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )
    Base.metadata.create_all(engine)
    return engine, sessionmaker(bind=engine, autoflush=False, expire_on_commit=False, future=True)


class SeasonServiceTests(unittest.TestCase):
    def setUp(self):
        self.engine, self.SessionLocal = _memory_session_factory()
        self.db = self.SessionLocal()

    def tearDown(self):
        self.db.close()
        self.engine.dispose()

    def _seed_halves(self, company_id=1):
        return replace_company_seasons(
            self.db,
            company_id,
            [
                _payload("Low", (1, 1), (6, 30), company_id=company_id, multiplier=0.9),
                _payload("High", (7, 1), (12, 31), company_id=company_id, multiplier=1.4),
            ],
        )

    def test_create_full_year_season(self):
        season = create_season(self.db, _payload("All year", (1, 1), (12, 31)))
        self.assertIsNotNone(season.SeasonID)
        rows = list_seasons(self.db, 1)
        self.assertEqual([row.SeasonName for row in rows], ["All year"])

    def test_create_rejects_invalid_start_date(self):
        with self.assertRaises(SeasonValidationError) as ctx:
            create_season(self.db, _payload("Bad", (2, 30), (12, 31)))
        self.assertEqual(str(ctx.exception), "Invalid start date")
        self.assertEqual(ctx.exception.code, "invalid_date")
        self.assertEqual(list_seasons(self.db, 1), [])

    def test_create_rejects_invalid_end_date(self):
        with self.assertRaises(SeasonValidationError) as ctx:
            create_season(self.db, _payload("Bad", (5, 1), (4, 31)))
        self.assertEqual(str(ctx.exception), "Invalid end date")

    def test_create_partial_first_season_leaves_gap(self):
        with self.assertRaises(SeasonValidationError) as ctx:
            create_season(self.db, _payload("Spring", (3, 1), (5, 31)))
        self.assertEqual(str(ctx.exception), COVERAGE_GAP_MESSAGE)
        self.assertEqual(ctx.exception.code, "coverage_gap")

    def test_create_overlapping_existing_season_is_rejected(self):
        create_season(self.db, _payload("All year", (1, 1), (12, 31)))
        with self.assertRaises(SeasonValidationError) as ctx:
            create_season(self.db, _payload("Peak", (12, 20), (1, 5)))
        self.assertEqual(str(ctx.exception), OVERLAP_MESSAGE)
        self.assertEqual(len(list_seasons(self.db, 1)), 1)

    def test_create_fills_the_single_tolerated_day(self):
        create_season(self.db, _payload("Most of the year", (1, 1), (12, 30)))
        create_season(self.db, _payload("New Year's Eve", (12, 31), (12, 31), multiplier=2.0))
        self.assertEqual(len(list_seasons(self.db, 1)), 2)

    def test_companies_are_validated_independently(self):
        create_season(self.db, _payload("All year", (1, 1), (12, 31), company_id=1))
        create_season(self.db, _payload("All year", (1, 1), (12, 31), company_id=2))
        self.assertEqual(len(list_seasons(self.db, 1)), 1)
        self.assertEqual(len(list_seasons(self.db, 2)), 1)
        self.assertEqual(len(list_seasons(self.db)), 2)

    def test_replace_with_wraparound_partition(self):
        seasons = replace_company_seasons(
            self.db,
            1,
            [
                _payload("Rest of year", (1, 21), (12, 19)),
                _payload("Holidays", (12, 20), (1, 20), multiplier=1.8, label="+80%"),
            ],
        )
        self.assertEqual([season.SeasonName for season in seasons], ["Rest of year", "Holidays"])
        self.assertEqual(find_season_for_date(self.db, 1, date(2026, 1, 3)).SeasonName, "Holidays")
        self.assertEqual(find_season_for_date(self.db, 1, date(2026, 5, 3)).SeasonName, "Rest of year")

    def test_replace_swaps_the_existing_set(self):
        create_season(self.db, _payload("All year", (1, 1), (12, 31)))
        self._seed_halves()
        self.assertEqual([row.SeasonName for row in list_seasons(self.db, 1)], ["Low", "High"])

    def test_replace_rejects_gap_and_keeps_existing_rows(self):
        create_season(self.db, _payload("All year", (1, 1), (12, 31)))
        with self.assertRaises(SeasonValidationError):
            replace_company_seasons(
                self.db,
                1,
                [_payload("Low", (1, 1), (6, 1)), _payload("High", (6, 10), (12, 31))],
            )
        self.assertEqual([row.SeasonName for row in list_seasons(self.db, 1)], ["All year"])

    def test_replace_rejects_foreign_company_payload(self):
        with self.assertRaises(SeasonValidationError) as ctx:
            replace_company_seasons(self.db, 1, [_payload("All year", (1, 1), (12, 31), company_id=2)])
        self.assertEqual(ctx.exception.code, "company_mismatch")

    def test_replace_with_empty_set_clears_company(self):
        self._seed_halves()
        self.assertEqual(replace_company_seasons(self.db, 1, []), [])
        self.assertEqual(list_seasons(self.db, 1), [])

    def test_update_metadata_keeps_partition(self):
        low, high = self._seed_halves()
        updated = update_season(self.db, low.SeasonID, _payload("Low season", (1, 1), (6, 30), multiplier=0.8))
        self.assertEqual(updated.SeasonName, "Low season")
        self.assertEqual(updated.PriceMultiplier, 0.8)

    def test_update_that_overlaps_is_rejected_and_rolled_back(self):
        low, high = self._seed_halves()
        with self.assertRaises(SeasonValidationError) as ctx:
            update_season(self.db, low.SeasonID, _payload("Low", (1, 1), (7, 5)))
        self.assertEqual(ctx.exception.code, "overlap")
        stored = self.db.get(Season, low.SeasonID)
        self.assertEqual((stored.EndMonth, stored.EndDay), (6, 30))

    def test_update_that_opens_gap_is_rejected(self):
        low, high = self._seed_halves()
        with self.assertRaises(SeasonValidationError) as ctx:
            update_season(self.db, high.SeasonID, _payload("High", (7, 10), (12, 31)))
        self.assertEqual(ctx.exception.code, "coverage_gap")

    def test_update_rejects_invalid_date(self):
        low, high = self._seed_halves()
        with self.assertRaises(SeasonValidationError) as ctx:
            update_season(self.db, low.SeasonID, _payload("Low", (1, 1), (6, 31)))
        self.assertEqual(str(ctx.exception), "Invalid end date")

    def test_update_cannot_move_company(self):
        low, high = self._seed_halves()
        with self.assertRaises(SeasonValidationError) as ctx:
            update_season(self.db, low.SeasonID, _payload("Low", (1, 1), (6, 30), company_id=2))
        self.assertEqual(ctx.exception.code, "company_mismatch")

    def test_update_missing_season(self):
        with self.assertRaises(SeasonNotFoundError):
            update_season(self.db, 404, _payload("All year", (1, 1), (12, 31)))

    def test_delete_last_season_is_allowed(self):
        season = create_season(self.db, _payload("All year", (1, 1), (12, 31)))
        delete_season(self.db, season.SeasonID)
        self.assertEqual(list_seasons(self.db, 1), [])

    def test_delete_that_leaves_gap_is_rejected(self):
        low, high = self._seed_halves()
        with self.assertRaises(SeasonValidationError) as ctx:
            delete_season(self.db, high.SeasonID)
        self.assertEqual(ctx.exception.code, "coverage_gap")
        self.assertEqual(len(list_seasons(self.db, 1)), 2)

    def test_delete_tolerated_single_day_season(self):
        create_season(self.db, _payload("Most of the year", (1, 1), (12, 30)))
        extra = create_season(self.db, _payload("New Year's Eve", (12, 31), (12, 31)))
        delete_season(self.db, extra.SeasonID)
        self.assertEqual(len(list_seasons(self.db, 1)), 1)

    def test_delete_missing_season(self):
        with self.assertRaises(SeasonNotFoundError):
            delete_season(self.db, 404)

    def test_delete_keeps_pending_work_in_open_transaction(self):
        season = create_season(self.db, _payload("All year", (1, 1), (12, 31)))
        self.db.add(
            Season(
                CompanyID=9,
                SeasonName="Pending",
                StartMonth=1,
                StartDay=1,
                EndMonth=12,
                EndDay=31,
                PriceMultiplier=1.0,
            )
        )
        self.db.flush()

        with self.assertLogs("car_rental.seasons", level="WARNING") as logs:
            delete_season(self.db, season.SeasonID)

        self.assertTrue(any("joined an open transaction" in line for line in logs.output))
        with self.SessionLocal() as other:
            self.assertEqual(list_seasons(other, 1), [])
            self.assertEqual([row.SeasonName for row in list_seasons(other, 9)], ["Pending"])

    def test_serialize_season(self):
        season = create_season(self.db, _payload("All year", (1, 1), (12, 31), multiplier=1.1, label="Standard"))
        payload = serialize_season(season)
        self.assertEqual(payload["seasonID"], season.SeasonID)
        self.assertEqual(payload["companyID"], 1)
        self.assertEqual(payload["seasonName"], "All year")
        self.assertEqual((payload["startMonth"], payload["startDay"]), (1, 1))
        self.assertEqual((payload["endMonth"], payload["endDay"]), (12, 31))
        self.assertEqual(payload["priceMultiplier"], 1.1)
        self.assertEqual(payload["discountLabel"], "Standard")


class SeasonScopeLockTests(unittest.TestCase):
    def test_lock_is_shared_per_company(self):
        self.assertIs(season_service._scope_lock(7), season_service._scope_lock(7))
        self.assertIsNot(season_service._scope_lock(7), season_service._scope_lock(8))

    def test_concurrent_creates_cannot_both_pass(self):
        with tempfile.TemporaryDirectory() as tmp:
            db_path = Path(tmp) / "seasons.db"
            engine = create_engine(
                f"sqlite+pysqlite:///{db_path}",
                connect_args={"check_same_thread": False},
                future=True,
            )
            Base.metadata.create_all(engine)
            SessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False, future=True)

            barrier = threading.Barrier(2)
            outcomes = []
            outcomes_lock = threading.Lock()

            def worker(name):
                db = SessionLocal()
                try:
                    barrier.wait()
                    create_season(db, _payload(name, (1, 1), (12, 31), company_id=42))
                    outcome = "created"
                except SeasonValidationError as exc:
                    outcome = exc.code
                finally:
                    db.close()
                with outcomes_lock:
                    outcomes.append(outcome)

            threads = [threading.Thread(target=worker, args=(f"Season {idx}",)) for idx in range(2)]
            for thread in threads:
                thread.start()
            for thread in threads:
                thread.join(timeout=30)

            self.assertEqual(sorted(outcomes), ["created", "overlap"])
            with SessionLocal() as db:
                self.assertEqual(len(list_seasons(db, 42)), 1)
            engine.dispose()


if __name__ == "__main__":
    unittest.main()
