"""
conftest.py — Shared pytest fixtures for the nursing workforce backend test suite.

Pure-engine tests use the WardConfig / record fixtures below and need nothing
else. Store and route tests run against an in-memory SQLite database through
aiosqlite; Postgres is never required.

Import-path bootstrapping:
    The ``backend/`` directory is inserted into sys.path so that all
    ``app.*`` imports resolve correctly regardless of where pytest is invoked.
"""

import sys
import os
from contextlib import asynccontextmanager
from datetime import date

import pytest

# ---------------------------------------------------------------------------
# Ensure ``backend/`` is on the import path before any app imports occur.
# ---------------------------------------------------------------------------
_BACKEND_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if _BACKEND_DIR not in sys.path:
    sys.path.insert(0, _BACKEND_DIR)

SQLITE_URL = "sqlite+aiosqlite:///:memory:"


# ---------------------------------------------------------------------------
# WorkloadEngine fixture
# ---------------------------------------------------------------------------

@pytest.fixture(scope="session")
def workload_engine():
    """WorkloadEngine with the hospital standards: 7 h/shift, 6.0 HPPD."""
    from app.services.workload_engine import WorkloadEngine
    return WorkloadEngine()


# ---------------------------------------------------------------------------
# Ward configuration fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def triage_fields_config():
    """
    Raw OPD config document mirroring the legacy triage weights as a dynamic
    schema, so dynamic and legacy scoring can be compared directly.
    """
    return {
        "groups": [
            {
                "name": "Triage",
                "fields": [
                    {"key": "triage1", "label": "Level 1", "multiplier": 3.2},
                    {"key": "triage2", "label": "Level 2", "multiplier": 2.5},
                    {"key": "triage3", "label": "Level 3", "multiplier": 1.0},
                    {"key": "triage4", "label": "Level 4", "multiplier": 0.5},
                    {"key": "triage5", "label": "Level 5", "multiplier": 0.25},
                ],
            },
            {
                "name": "Procedures",
                "fields": [
                    {"key": "ivp", "label": "IVP", "multiplier": 2.0},
                    {"key": "ems", "label": "EMS", "multiplier": 1.5},
                    {"key": "lr", "label": "LR", "multiplier": 3.5},
                ],
            },
        ],
        "shifts": ["morning", "afternoon", "night"],
    }


@pytest.fixture
def er_ward(triage_fields_config):
    """ER ward (OPD sub-type) configured with the triage schema."""
    from app.services.ward_config import build_ward_config
    return build_ward_config(
        id=10, code="ER01", name="Emergency", dept_type="ER",
        fields_config=triage_fields_config,
    )


@pytest.fixture
def clinic_ward():
    """OPD clinic scoring two counters: general visits ×0.5, dressings ×1.0."""
    from app.services.ward_config import build_ward_config
    return build_ward_config(
        id=20, code="OPD01", name="Medicine Clinic", dept_type="OPD",
        fields_config={
            "groups": [{"name": "Visits", "fields": [
                {"key": "general", "label": "General", "multiplier": 0.5},
                {"key": "dressing", "label": "Dressing", "multiplier": 1.0},
            ]}],
            "shifts": ["morning"],
        },
    )


@pytest.fixture
def unconfigured_opd_ward():
    """OPD ward that has never been given field groups."""
    from app.services.ward_config import build_ward_config
    return build_ward_config(id=30, code="OPD99", name="New Clinic", dept_type="OPD")


@pytest.fixture
def ipd_ward():
    from app.services.ward_config import build_ward_config
    return build_ward_config(id=1, code="MED1", name="Medicine 1", dept_type="IPD")


@pytest.fixture
def record_day():
    return date(2026, 3, 1)


# ---------------------------------------------------------------------------
# In-memory async store
# ---------------------------------------------------------------------------

def _make_sqlite_engine():
    from sqlalchemy.ext.asyncio import create_async_engine
    from sqlalchemy.pool import StaticPool
    return create_async_engine(
        SQLITE_URL,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )


@asynccontextmanager
async def _sqlite_session():
    from sqlalchemy.ext.asyncio import async_sessionmaker
    from app.db import Base
    from app.models import orm_models  # noqa: F401

    engine = _make_sqlite_engine()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    Session = async_sessionmaker(engine, expire_on_commit=False)
    try:
        async with Session() as session:
            yield session
    finally:
        await engine.dispose()


@pytest.fixture
def sqlite_session():
    """
    Factory for a fresh in-memory database session.

    Tests drive their own event loop with ``asyncio.run``::

        async def scenario():
            async with sqlite_session() as session:
                ...
        asyncio.run(scenario())
    """
    return _sqlite_session


# ---------------------------------------------------------------------------
# API client
# ---------------------------------------------------------------------------

@pytest.fixture
def api_client(monkeypatch, tmp_path):
    """
    FastAPI TestClient bound to an in-memory SQLite database.

    DATABASE_URL is unset so startup skips init_db; tables are created on the
    first request through the overridden get_db. Exports and sheet settings
    are written under tmp_path.
    """
    monkeypatch.delenv("DATABASE_URL", raising=False)
    monkeypatch.setenv("SHEET_SETTINGS_FILE", str(tmp_path / "settings.json"))

    from fastapi.testclient import TestClient
    from sqlalchemy.ext.asyncio import async_sessionmaker
    from app.main import app
    from app.db import Base, get_db
    from app.api.export_routes import get_export_engine
    from app.services.export_engine import ExportEngine

    engine = _make_sqlite_engine()
    Session = async_sessionmaker(engine, expire_on_commit=False)
    state = {"ready": False}

    async def _get_test_db():
        if not state["ready"]:
            async with engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
            state["ready"] = True
        async with Session() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = _get_test_db
    app.dependency_overrides[get_export_engine] = lambda: ExportEngine(download_dir=str(tmp_path / "exports"))
    try:
        with TestClient(app) as client:
            yield client
            client.portal.call(engine.dispose)
    finally:
        app.dependency_overrides.clear()
