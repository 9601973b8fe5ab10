import os
from datetime import date

from dotenv import load_dotenv
from fastapi import Depends, FastAPI, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text
from sqlalchemy.orm import Session

load_dotenv()

from car_rental.db.deps import get_rental_db
from car_rental.schemas.seasons import SeasonCoverageRequest, SeasonReplaceRequest, SeasonUpsert
from car_rental.services.season_calendar import validate_seasons_coverage
from car_rental.services.season_service import (
    SeasonNotFoundError,
    SeasonValidationError,
    create_season,
    delete_season,
    find_season_for_date,
    get_season,
    list_seasons,
    replace_company_seasons,
    serialize_season,
    update_season,
)

app = FastAPI(title="Car Rental Seasons")


def _parse_csv_env(name: str, default: str) -> list[str]:
    raw = os.environ.get(name, default)
    return [item.strip() for item in str(raw).split(",") if item.strip()]


_CORS_ALLOW_ORIGINS = _parse_csv_env(
    "CORS_ALLOW_ORIGINS",
    "http://127.0.0.1,http://localhost,http://127.0.0.1:5173,http://localhost:5173",
)
_CORS_ALLOW_CREDENTIALS = str(os.environ.get("CORS_ALLOW_CREDENTIALS", "true")).strip().lower() in {"1", "true", "yes", "on"}
if "*" in _CORS_ALLOW_ORIGINS:
    # Browsers reject wildcard origins with credentials.
    _CORS_ALLOW_CREDENTIALS = False

app.add_middleware(
    CORSMiddleware,
    allow_origins=_CORS_ALLOW_ORIGINS,
    allow_credentials=_CORS_ALLOW_CREDENTIALS,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _season_error(exc: SeasonValidationError) -> HTTPException:
    return HTTPException(status_code=400, detail={"message": exc.message, "error": exc.code})


@app.get("/healthz")
def healthcheck():
    return {"status": "ok"}


@app.get("/api/healthz")
def healthcheck_api(db: Session = Depends(get_rental_db)):
    try:
        db.execute(text("SELECT 1"))
        return {"status": "ok"}
    except Exception as exc:
        raise HTTPException(status_code=503, detail=f"db_unavailable: {exc}") from exc


@app.get("/api/seasons")
def get_seasons(
    company_id: int | None = Query(None, alias="companyID"),
    db: Session = Depends(get_rental_db),
):
    return [serialize_season(season) for season in list_seasons(db, company_id)]


@app.post("/api/seasons/validate")
def validate_seasons(payload: SeasonCoverageRequest):
    return validate_seasons_coverage(payload.seasons)


@app.get("/api/seasons/lookup")
def lookup_season(
    company_id: int = Query(..., alias="companyID"),
    on_date: date = Query(..., alias="date"),
    db: Session = Depends(get_rental_db),
):
    season = find_season_for_date(db, company_id, on_date)
    if not season:
        raise HTTPException(status_code=404, detail="No season covers this date")
    return serialize_season(season)


@app.get("/api/seasons/{season_id}")
def get_season_item(season_id: int, db: Session = Depends(get_rental_db)):
    try:
        season = get_season(db, season_id)
    except SeasonNotFoundError as exc:
        raise HTTPException(status_code=404, detail="Season not found") from exc
    return serialize_season(season)


@app.post("/api/seasons")
def create_season_item(payload: SeasonUpsert, db: Session = Depends(get_rental_db)):
    try:
        season = create_season(db, payload)
    except SeasonValidationError as exc:
        raise _season_error(exc) from exc
    return serialize_season(season)


@app.put("/api/seasons/{season_id}")
def update_season_item(season_id: int, payload: SeasonUpsert, db: Session = Depends(get_rental_db)):
    try:
        season = update_season(db, season_id, payload)
    except SeasonNotFoundError as exc:
        raise HTTPException(status_code=404, detail="Season not found") from exc
    except SeasonValidationError as exc:
        raise _season_error(exc) from exc
    return serialize_season(season)


@app.delete("/api/seasons/{season_id}")
def delete_season_item(season_id: int, db: Session = Depends(get_rental_db)):
    try:
        delete_season(db, season_id)
    except SeasonNotFoundError as exc:
        raise HTTPException(status_code=404, detail="Season not found") from exc
    except SeasonValidationError as exc:
        raise _season_error(exc) from exc
    return {"message": "Deleted"}


@app.put("/api/companies/{company_id}/seasons")
def replace_seasons(company_id: int, payload: SeasonReplaceRequest, db: Session = Depends(get_rental_db)):
    try:
        seasons = replace_company_seasons(db, company_id, payload.seasons)
    except SeasonValidationError as exc:
        raise _season_error(exc) from exc
    return [serialize_season(season) for season in seasons]
