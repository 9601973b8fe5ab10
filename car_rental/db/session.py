import os

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker


def _require_env(name: str) -> str:
    value = os.environ.get(name)
    if not value:
        raise RuntimeError(f"Missing required environment variable: {name}")
    return value


CAR_RENTAL_DB_URL = _require_env("CAR_RENTAL_DB_URL")
CAR_RENTAL_DB_ECHO = str(os.environ.get("CAR_RENTAL_DB_ECHO", "")).strip().lower() in {"1", "true", "yes", "on"}

engine_rental = create_engine(
    CAR_RENTAL_DB_URL,
    pool_pre_ping=True,
    echo=CAR_RENTAL_DB_ECHO,
    future=True,
)

SessionLocalRental = sessionmaker(
    bind=engine_rental,
    autoflush=False,
    autocommit=False,
    expire_on_commit=False,
    future=True,
)
