"""Health checks and HTTP endpoints."""

from infobot.health.checks import HealthChecker, HealthReport, HealthStatus
from infobot.health.server import create_health_app

__all__ = ["HealthChecker", "HealthReport", "HealthStatus", "create_health_app"]
