"""
Shared fixtures: a fresh SQLite database per test.
"""
from __future__ import annotations

import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parent.parent.parent))

from backend.persistence.db import get_connection, init_db, set_db_path


@pytest.fixture
def db_path(tmp_path):
    path = tmp_path / "fantasy_test.db"
    set_db_path(path)
    init_db(db_path=path)
    return path


@pytest.fixture
def db_conn(db_path):
    conn = get_connection(db_path)
    try:
        yield conn
    finally:
        conn.close()
