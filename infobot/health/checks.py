"""Health checks for a running infobot.

Provides checks for:
- Disk space where the database lives
- Dedup Store readability
- Scheduler state
- Source configuration

Usage:
    checker = HealthChecker(app)
    report = await checker.check_all()
"""

import asyncio
import shutil
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Any, Dict, List

import structlog

from infobot.utils.exceptions import PersistenceError

if TYPE_CHECKING:
    from infobot.app import Application

logger = structlog.get_logger()


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class HealthStatus(str, Enum):
    """Overall health status."""

    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"


class CheckStatus(str, Enum):
    """Individual check status."""

    PASS = "pass"
    WARN = "warn"
    FAIL = "fail"


@dataclass
class HealthCheckResult:
    """Result of a single health check."""

    name: str
    status: CheckStatus
    message: str
    duration_ms: float = 0.0
    details: Dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=_utc_now)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "status": self.status.value,
            "message": self.message,
            "duration_ms": round(self.duration_ms, 2),
            "details": self.details,
            "timestamp": self.timestamp.isoformat(),
        }


@dataclass
class HealthReport:
    """Complete health report with all check results."""

    status: HealthStatus
    checks: List[HealthCheckResult]
    timestamp: datetime = field(default_factory=_utc_now)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status.value,
            "checks": [c.to_dict() for c in self.checks],
            "timestamp": self.timestamp.isoformat(),
        }


class HealthChecker:
    """Runs health checks against one Application."""

    def __init__(
        self,
        app: "Application",
        disk_threshold_gb: float = 0.1,
        disk_warning_gb: float = 1.0,
    ):
        self.app = app
        self.disk_threshold_gb = disk_threshold_gb
        self.disk_warning_gb = disk_warning_gb

    async def check_all(self) -> HealthReport:
        """Run all health checks concurrently."""
        results = await asyncio.gather(
            self.check_disk_space(),
            self.check_database(),
            self.check_scheduler(),
            self.check_sources(),
            return_exceptions=True,
        )

        checks: List[HealthCheckResult] = []
        for result in results:
            if isinstance(result, HealthCheckResult):
                checks.append(result)
            else:
                checks.append(
                    HealthCheckResult(
                        name="unknown",
                        status=CheckStatus.FAIL,
                        message=f"Check failed: {result}",
                    )
                )

        return HealthReport(status=self._overall(checks), checks=checks)

    @staticmethod
    def _overall(checks: List[HealthCheckResult]) -> HealthStatus:
        if any(c.status == CheckStatus.FAIL for c in checks):
            return HealthStatus.UNHEALTHY
        if any(c.status == CheckStatus.WARN for c in checks):
            return HealthStatus.DEGRADED
        return HealthStatus.HEALTHY

    async def check_disk_space(self) -> HealthCheckResult:
        start = time.monotonic()
        name = "disk_space"

        db_dir = Path(self.app.config.storage.database_path).resolve().parent
        probe = db_dir if db_dir.exists() else Path.cwd()
        total, used, free = shutil.disk_usage(probe)
        free_gb = free / (1024**3)
        details = {
            "path": str(probe),
            "free_gb": round(free_gb, 2),
            "used_percent": round(used / total * 100, 1),
        }
        duration_ms = (time.monotonic() - start) * 1000

        if free_gb < self.disk_threshold_gb:
            status, message = CheckStatus.FAIL, f"Disk space critical: {free_gb:.1f}GB free"
        elif free_gb < self.disk_warning_gb:
            status, message = CheckStatus.WARN, f"Disk space low: {free_gb:.1f}GB free"
        else:
            status, message = CheckStatus.PASS, f"Disk space OK: {free_gb:.1f}GB free"

        return HealthCheckResult(
            name=name,
            status=status,
            message=message,
            duration_ms=duration_ms,
            details=details,
        )

    async def check_database(self) -> HealthCheckResult:
        start = time.monotonic()
        try:
            stats = await self.app.store.get_stats()
        except PersistenceError as e:
            return HealthCheckResult(
                name="database",
                status=CheckStatus.FAIL,
                message=f"Dedup store unavailable: {e}",
                duration_ms=(time.monotonic() - start) * 1000,
            )

        return HealthCheckResult(
            name="database",
            status=CheckStatus.PASS,
            message="Dedup store readable",
            duration_ms=(time.monotonic() - start) * 1000,
            details=stats.model_dump(mode="json"),
        )

    async def check_scheduler(self) -> HealthCheckResult:
        status = self.app.scheduler.status()
        if status.is_running:
            return HealthCheckResult(
                name="scheduler",
                status=CheckStatus.PASS,
                message="Scheduler running",
                details={"jobs": status.active_tasks},
            )
        return HealthCheckResult(
            name="scheduler",
            status=CheckStatus.FAIL,
            message=f"Scheduler {status.state.value}",
        )

    async def check_sources(self) -> HealthCheckResult:
        configured = [
            p.source_id for p in self.app.pollers.values() if p.is_configured()
        ]
        if not configured:
            return HealthCheckResult(
                name="sources",
                status=CheckStatus.WARN,
                message="No sources configured",
            )
        return HealthCheckResult(
            name="sources",
            status=CheckStatus.PASS,
            message=f"{len(configured)} source(s) configured",
            details={"configured": configured},
        )

    async def is_alive(self) -> bool:
        return True

    async def is_ready(self) -> bool:
        database = await self.check_database()
        return database.status == CheckStatus.PASS and self.app.scheduler.is_running
