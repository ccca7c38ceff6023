"""
Tests for the health endpoints and the health aggregation helpers.

The database probe is replaced through ``app.dependency_overrides`` so no
PostgreSQL server is needed.

Run with:
    pytest tests/test_health.py -v
"""

from __future__ import annotations

import asyncio
from datetime import datetime
from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient

from backend.app.api.health import get_database_probe
from backend.app.core.database import async_database_url
from backend.app.core.health import (
    DatabaseHealth,
    MemoryUsage,
    check_database,
    memory_usage,
    uptime_seconds,
)


async def _healthy_probe() -> float:
    return 3.14159


async def _failing_probe() -> float:
    raise ConnectionRefusedError("connection refused")


def _client_with_probe(app, probe) -> TestClient:
    app.dependency_overrides[get_database_probe] = lambda: probe
    return TestClient(app)


# ═══════════════════════════════════════════════════════════════════════════
# Endpoints
# ═══════════════════════════════════════════════════════════════════════════

class TestBasicHealth:
    def test_fields(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "ok"
        assert body["version"] == "1.0.0"
        assert body["environment"] == "test"
        assert body["uptime"] >= 0
        datetime.fromisoformat(body["timestamp"])

    def test_no_detailed_sections(self, client):
        body = client.get("/health").json()
        assert "database" not in body
        assert "memory" not in body

    def test_post_not_allowed(self, client):
        response = client.post("/health")
        assert response.status_code == 405
        assert response.json()["error"] == "Internal Server Error"


class TestDetailedHealth:
    def test_database_connected(self, app):
        body = _client_with_probe(app, _healthy_probe).get("/health/detailed").json()
        assert body["status"] == "ok"
        assert body["database"] == {"status": "connected", "responseTime": 3.14}
        assert set(body["memory"]) == {"used", "total", "percentage"}

    def test_database_down_is_still_ok(self, app, capture):
        response = _client_with_probe(app, _failing_probe).get("/health/detailed")
        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "ok"
        assert body["database"] == {"status": "disconnected", "responseTime": 0}
        assert capture.named("Request completed")


# ═══════════════════════════════════════════════════════════════════════════
# Helpers
# ═══════════════════════════════════════════════════════════════════════════

class TestHealthHelpers:
    def test_check_database_connected(self):
        result = asyncio.run(check_database(_healthy_probe))
        assert result == DatabaseHealth(status="connected", response_time_ms=3.14159)

    def test_check_database_failure_logged(self, caplog):
        result = asyncio.run(check_database(_failing_probe))
        assert result.status == "disconnected"
        assert "Database health check failed" in caplog.text

    def test_memory_percentage(self):
        assert MemoryUsage(used=256, total=1024).percentage == 25.0

    def test_memory_percentage_unknown_total(self):
        assert MemoryUsage(used=256, total=0).percentage == 0.0

    def test_memory_usage_reads_process(self):
        usage = memory_usage()
        assert usage.used >= 0
        assert usage.total >= 0

    def test_memory_usage_without_sysconf(self):
        with patch("backend.app.core.health.os.sysconf", side_effect=ValueError("unsupported")):
            usage = memory_usage()
        assert usage.total == 0
        assert usage.percentage == 0.0

    def test_uptime_monotonic(self):
        first = uptime_seconds()
        assert uptime_seconds() >= first >= 0


@pytest.mark.parametrize("url, expected", [
    ("postgresql://u:p@db:5432/app", "postgresql+asyncpg://u:p@db:5432/app"),
    ("postgresql+asyncpg://u:p@db/app", "postgresql+asyncpg://u:p@db/app"),
])
def test_async_database_url(url, expected):
    assert async_database_url(url) == expected
