from __future__ import annotations

import os
import sys
from datetime import date
from pathlib import Path

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

ROOT = Path(__file__).resolve().parent
sys.path.append(str(ROOT))

os.environ["DATABASE_URL"] = "sqlite+pysqlite:///:memory:"
os.environ["DATABASE_WRITE_URL"] = "sqlite+pysqlite:///:memory:"

import certdb  # noqa: E402,F401  registers every model and flush hook
from certdb.clock import FixedClock  # noqa: E402
from certdb.database import Base, configure_sqlite  # noqa: E402

TODAY = date(2025, 3, 15)


@pytest.fixture()
def clock():
    return FixedClock(TODAY)


@pytest.fixture()
def db_session(clock):
    engine = create_engine("sqlite+pysqlite:///:memory:")
    configure_sqlite(engine)
    Base.metadata.create_all(bind=engine)
    TestingSession = sessionmaker(
        bind=engine,
        autoflush=False,
        autocommit=False,
        expire_on_commit=False,
    )
    session = TestingSession()
    session.info["clock"] = clock
    try:
        yield session
    finally:
        session.close()
        engine.dispose()


@pytest.fixture()
def file_session_factory(tmp_path):
    """Sessions on a file-backed database, safe to use from several threads."""
    engine = create_engine(
        f"sqlite+pysqlite:///{tmp_path / 'certdb.sqlite'}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )
    configure_sqlite(engine, begin="BEGIN IMMEDIATE")
    Base.metadata.create_all(bind=engine)
    factory = sessionmaker(
        bind=engine,
        autoflush=False,
        autocommit=False,
        expire_on_commit=False,
    )
    try:
        yield factory
    finally:
        engine.dispose()
