"""
Health check aggregation.

Checks:
    • Process uptime, version and environment (basic probe)
    • Database connectivity (PostgreSQL ``SELECT 1``)
    • Process memory usage

Returns a structured health report suitable for:
    - Kubernetes liveness/readiness probes
    - Load balancer health checks
    - Monitoring dashboards

The detailed report always has status "ok": an unreachable database is
reported as "disconnected" and logged, not turned into an error response.
"""

from __future__ import annotations

import logging
import os
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, Optional

from backend.app.core.config import Settings

logger = logging.getLogger(__name__)

DatabaseProbe = Callable[[], Awaitable[float]]

# Track application start time
_start_time = time.monotonic()


def uptime_seconds() -> float:
    return round(time.monotonic() - _start_time, 2)


@dataclass
class DatabaseHealth:
    status: str = "disconnected"  # connected | disconnected
    response_time_ms: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {"status": self.status, "responseTime": round(self.response_time_ms, 2)}


@dataclass
class MemoryUsage:
    used: int = 0   # bytes
    total: int = 0  # bytes

    @property
    def percentage(self) -> float:
        if self.total <= 0:
            return 0.0
        return round(self.used / self.total * 100, 2)

    def to_dict(self) -> Dict[str, Any]:
        return {"used": self.used, "total": self.total, "percentage": self.percentage}


@dataclass
class HealthReport:
    version: str
    environment: str
    status: str = "ok"
    timestamp: str = ""
    uptime: float = 0.0
    database: Optional[DatabaseHealth] = None
    memory: Optional[MemoryUsage] = None

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {
            "status": self.status,
            "timestamp": self.timestamp or datetime.now(timezone.utc).isoformat(),
            "uptime": self.uptime,
            "version": self.version,
            "environment": self.environment,
        }
        if self.database is not None:
            d["database"] = self.database.to_dict()
        if self.memory is not None:
            d["memory"] = self.memory.to_dict()
        return d


def _resident_bytes() -> int:
    try:
        with open("/proc/self/statm", encoding="ascii") as fh:
            return int(fh.read().split()[1]) * os.sysconf("SC_PAGE_SIZE")
    except (OSError, ValueError, IndexError, AttributeError):
        pass
    try:
        import resource
        peak = resource.getrusage(resource.RUSAGE_SELF).ru_maxrss
        # Linux reports KiB, macOS bytes
        return peak if os.uname().sysname == "Darwin" else peak * 1024
    except (ImportError, AttributeError, OSError):
        return 0


def _physical_bytes() -> int:
    try:
        return os.sysconf("SC_PAGE_SIZE") * os.sysconf("SC_PHYS_PAGES")
    except (AttributeError, ValueError, OSError):
        return 0


def memory_usage() -> MemoryUsage:
    """Resident memory of this process against the machine's physical memory."""
    return MemoryUsage(used=_resident_bytes(), total=_physical_bytes())


async def check_database(probe: DatabaseProbe) -> DatabaseHealth:
    """Check PostgreSQL connectivity."""
    try:
        latency_ms = await probe()
    except Exception as e:
        logger.error("Database health check failed: %s", e)
        return DatabaseHealth(status="disconnected", response_time_ms=0.0)
    return DatabaseHealth(status="connected", response_time_ms=latency_ms)


def basic_health(config: Settings) -> HealthReport:
    return HealthReport(
        version=config.API_VERSION,
        environment=config.ENVIRONMENT,
        timestamp=datetime.now(timezone.utc).isoformat(),
        uptime=uptime_seconds(),
    )


async def detailed_health(config: Settings, probe: DatabaseProbe) -> HealthReport:
    """Run all health checks and aggregate into a report."""
    report = basic_health(config)
    report.database = await check_database(probe)
    report.memory = memory_usage()
    return report
