"""
test_import_safety.py — Import checks and engine purity.

Verifies that:
  1. Every service, model and route module imports without circular import
     failures (no database connection is made at import time).
  2. The scoring and aggregation engines stay pure: no AsyncSession, no
     get_db, no HTTP client.
  3. Module-level staffing constants keep their documented values.

No database, network, or external services are required.
"""

import importlib
import inspect
import os
import sys

import pytest

_BACKEND_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if _BACKEND_DIR not in sys.path:
    sys.path.insert(0, _BACKEND_DIR)


# ---------------------------------------------------------------------------
# All modules import cleanly
# ---------------------------------------------------------------------------

# Pure computation: stdlib (plus pandas / xlsxwriter / httpx where noted)
_PURE_SERVICE_MODULES = [
    "app.services.ward_config",
    "app.services.shift_records",
    "app.services.workload_engine",
    "app.services.aggregation_engine",
    "app.services.sheet_settings",
    "app.services.sheet_import",
    "app.services.export_engine",
    "app.services.logging_config",
    "app.services.middleware",
]

_DB_MODULES = [
    "app.db",
    "app.db.repository",
    "app.models.orm_models",
    "app.models.api_models",
    "app.services.census_lookup",
]

_ROUTE_MODULES = [
    "app.api.deps",
    "app.api.ward_routes",
    "app.api.ipd_routes",
    "app.api.opd_routes",
    "app.api.dashboard_routes",
    "app.api.his_routes",
    "app.api.export_routes",
    "app.api.settings_routes",
    "app.api.sheet_routes",
    "app.main",
]


class TestModuleImports:

    @pytest.mark.parametrize("module_path", _PURE_SERVICE_MODULES)
    def test_pure_service_module_imports(self, module_path):
        try:
            mod = importlib.import_module(module_path)
            assert mod is not None, f"Module {module_path} is None after import"
        except ImportError as e:
            pytest.fail(f"{module_path} raised ImportError: {e}")

    @pytest.mark.parametrize("module_path", _DB_MODULES)
    def test_db_modules_import_without_connection(self, module_path):
        try:
            mod = importlib.import_module(module_path)
            assert mod is not None
        except ImportError as e:
            pytest.fail(f"{module_path} raised ImportError: {e}")

    @pytest.mark.parametrize("module_path", _ROUTE_MODULES)
    def test_route_modules_import(self, module_path):
        mod = importlib.import_module(module_path)
        assert mod is not None

    def test_every_router_is_mounted(self):
        from app.main import app
        paths = {route.path for route in app.routes}
        for expected in (
            "/api/wards", "/api/ipd/save-all", "/api/opd/shifts", "/api/dashboard",
            "/api/ipd/his", "/api/his/wards", "/api/ipd/export", "/api/opd/export",
            "/api/settings", "/api/sheets", "/api/sheets/summary", "/health",
        ):
            assert expected in paths, f"{expected} is not routed"


# ---------------------------------------------------------------------------
# Engines stay pure
# ---------------------------------------------------------------------------

class TestEnginePurity:

    @pytest.mark.parametrize("module_path", [
        "app.services.ward_config",
        "app.services.workload_engine",
        "app.services.aggregation_engine",
    ])
    def test_engine_has_no_db_or_http(self, module_path):
        src = inspect.getsource(importlib.import_module(module_path))
        assert "AsyncSession" not in src, f"{module_path} must not depend on AsyncSession"
        assert "get_db" not in src, f"{module_path} must not call get_db"
        assert "httpx" not in src, f"{module_path} must not make HTTP calls"

    def test_workload_engine_does_not_import_aggregation(self):
        import app.services.workload_engine as we
        assert "aggregation_engine" not in dir(we)


class TestConstants:

    def test_staffing_standards(self):
        from app.services import workload_engine as we
        assert we.HOURS_PER_SHIFT == 7.0
        assert we.STANDARD_HPPD == 6.0
        assert we.ADEQUACY_THRESHOLD_PCT == 85.0

    def test_legacy_multipliers(self):
        from app.services.ward_config import LEGACY_TRIAGE_SCHEMA
        multipliers = {f.key: f.multiplier for f in LEGACY_TRIAGE_SCHEMA.fields}
        assert multipliers == {
            "triage1": 3.2, "triage2": 2.5, "triage3": 1.0, "triage4": 0.5,
            "triage5": 0.25, "ivp": 2.0, "ems": 1.5, "lr": 3.5,
        }


class TestDatabaseUrl:

    @pytest.mark.parametrize("raw,expected", [
        ("postgres://u:p@db:5432/nursing", "postgresql+asyncpg://u:p@db:5432/nursing"),
        ("postgresql://u:p@db/nursing", "postgresql+asyncpg://u:p@db/nursing"),
        ("postgresql+asyncpg://u:p@db/nursing", "postgresql+asyncpg://u:p@db/nursing"),
        ("sqlite+aiosqlite:///:memory:", "sqlite+aiosqlite:///:memory:"),
    ])
    def test_normalize(self, raw, expected):
        from app.db import normalize_database_url
        assert normalize_database_url(raw) == expected

    def test_his_tables_not_bootstrapped(self):
        from app.db import WORKFORCE_TABLES
        assert "fact_visits" not in WORKFORCE_TABLES
        assert "dim_ward" not in WORKFORCE_TABLES
