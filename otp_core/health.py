"""
Health Check Module
===================
Read-only checks of the store, email provider and rate limiter.
"""

import time
from datetime import datetime
from typing import Awaitable, Callable, Dict, Optional
from enum import Enum

from pydantic import BaseModel, Field
import structlog

from otp_core.otp.models import utcnow

logger = structlog.get_logger(__name__)


class HealthStatus(str, Enum):
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"


class ComponentHealth(BaseModel):
    status: str
    latency_ms: Optional[float] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status == "ok"


class HealthReport(BaseModel):
    status: HealthStatus
    version: str
    components: Dict[str, ComponentHealth]
    timestamp: datetime = Field(default_factory=utcnow)

    @property
    def checks(self) -> Dict[str, bool]:
        return {name: component.ok for name, component in self.components.items()}


async def check_component(name: str, check_fn: Callable[[], Awaitable[bool]]) -> ComponentHealth:
    """Run one check and time it. Exceptions count as failures."""
    try:
        start = time.perf_counter()
        healthy = await check_fn()
        latency = (time.perf_counter() - start) * 1000
        if healthy:
            return ComponentHealth(status="ok", latency_ms=round(latency, 2))
        return ComponentHealth(status="error", latency_ms=round(latency, 2), error="check returned false")
    except Exception as e:
        logger.error("Health check failed", component=name, error=str(e))
        return ComponentHealth(status="error", error=str(e))


def summarize(components: Dict[str, ComponentHealth]) -> HealthStatus:
    """All healthy -> healthy, at least one -> degraded, none -> unhealthy."""
    healthy = sum(1 for component in components.values() if component.ok)
    if healthy == len(components):
        return HealthStatus.HEALTHY
    if healthy >= 1:
        return HealthStatus.DEGRADED
    return HealthStatus.UNHEALTHY


async def build_report(
    checks: Dict[str, Callable[[], Awaitable[bool]]],
    version: str,
) -> HealthReport:
    components = {name: await check_component(name, check_fn) for name, check_fn in checks.items()}
    return HealthReport(
        status=summarize(components),
        version=version,
        components=components,
    )
