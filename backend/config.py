"""
Runtime settings, read from the environment with development defaults.
"""
from __future__ import annotations

import logging
import os
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parent.parent

DB_PATH = Path(os.environ.get("FANTASY_DB_PATH", str(PROJECT_ROOT / "data" / "fantasy.db")))
# Seconds a writer waits on a locked database before failing.
DB_TIMEOUT = float(os.environ.get("FANTASY_DB_TIMEOUT", "10"))

JWT_SECRET_KEY = os.environ.get("JWT_SECRET_KEY", "dev-secret-change-in-production")
JWT_ALGORITHM = "HS256"
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.environ.get("ACCESS_TOKEN_EXPIRE_MINUTES", str(60 * 24 * 7)))

STARTING_BUDGET = float(os.environ.get("FANTASY_STARTING_BUDGET", "100.0"))

CORS_ORIGINS = [
    o.strip()
    for o in os.environ.get(
        "FANTASY_CORS_ORIGINS", "http://localhost:5173,http://127.0.0.1:5173"
    ).split(",")
    if o.strip()
]

LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").upper()
LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def configure_logging(level: str | None = None) -> None:
    """Set up root logging once for the API process."""
    logging.basicConfig(level=level or LOG_LEVEL, format=LOG_FORMAT)
