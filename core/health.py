"""
core/health.py -- Health probes and the executor that runs them.

A probe is a zero-argument callable returning a HealthCheckResult. Probes are
registered by name with a set of tags; HealthCheckService.run() executes the
probes selected by an optional predicate, times each one, and folds them into
a HealthReport whose status is the worst individual status.

A probe that raises is reported Unhealthy with the exception message -- the
executor itself never raises.

Built-in probes:
  database -- connectivity check plus vehicle/administrator row counts
  memory   -- process resident memory via psutil, Degraded above a threshold
  self     -- always Healthy; proves the process is serving requests

Layer rule: core/ may not import from api/, auth/, fleet/, or cache/. The
database probe receives the Database object from the caller.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import TYPE_CHECKING, Any, Optional

import psutil

if TYPE_CHECKING:
    from fleet.repository import Database

logger = logging.getLogger("fleetadmin.health")

_MB = 1024 * 1024


class HealthStatus(str, Enum):
    # Declaration order is severity order; worst() relies on it.
    HEALTHY = "Healthy"
    DEGRADED = "Degraded"
    UNHEALTHY = "Unhealthy"

    @classmethod
    def worst(cls, statuses: Iterable["HealthStatus"]) -> "HealthStatus":
        order = list(cls)
        return max(statuses, key=order.index, default=cls.HEALTHY)


@dataclass
class HealthCheckResult:
    status: HealthStatus
    description: str = ""
    data: dict[str, Any] = field(default_factory=dict)
    error: Optional[str] = None

    @classmethod
    def healthy(cls, description: str = "", data: Optional[dict[str, Any]] = None) -> "HealthCheckResult":
        return cls(HealthStatus.HEALTHY, description, data or {})

    @classmethod
    def degraded(cls, description: str = "", data: Optional[dict[str, Any]] = None) -> "HealthCheckResult":
        return cls(HealthStatus.DEGRADED, description, data or {})

    @classmethod
    def unhealthy(cls, description: str = "", error: Optional[BaseException] = None) -> "HealthCheckResult":
        return cls(HealthStatus.UNHEALTHY, description, {}, str(error) if error is not None else None)


@dataclass
class HealthEntry:
    name: str
    result: HealthCheckResult
    duration: timedelta
    tags: tuple[str, ...]

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "status": self.result.status.value,
            "duration": str(self.duration),
            "description": self.result.description,
            "data": self.result.data,
            "exception": self.result.error,
            "tags": list(self.tags),
        }


@dataclass
class HealthReport:
    entries: list[HealthEntry]
    duration: timedelta
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def status(self) -> HealthStatus:
        return HealthStatus.worst(e.result.status for e in self.entries)

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status.value,
            "timestamp": self.timestamp.isoformat(),
            "duration": str(self.duration),
            "checks": [e.to_dict() for e in self.entries],
        }


@dataclass
class _Registration:
    name: str
    check: Callable[[], HealthCheckResult]
    tags: tuple[str, ...]


class HealthCheckService:
    """Registry and executor for health probes.

    Usage:
        health = HealthCheckService()
        health.register("self", self_check, tags=("api",))
        report = health.run()                                   # every probe
        ready = health.run(lambda name, tags: "ready" in tags)  # subset
        live = health.run(lambda name, tags: False)             # no probes
    """

    def __init__(self) -> None:
        self._checks: list[_Registration] = []

    @property
    def names(self) -> list[str]:
        return [r.name for r in self._checks]

    def register(self, name: str, check: Callable[[], HealthCheckResult], tags: Iterable[str] = ()) -> None:
        if name in self.names:
            raise ValueError(f"Health check {name!r} is already registered")
        self._checks.append(_Registration(name, check, tuple(tags)))

    def run(self, predicate: Optional[Callable[[str, tuple[str, ...]], bool]] = None) -> HealthReport:
        started = time.perf_counter()
        entries: list[HealthEntry] = []
        for registration in self._checks:
            if predicate is not None and not predicate(registration.name, registration.tags):
                continue
            entries.append(self._run_one(registration))
        return HealthReport(entries=entries, duration=timedelta(seconds=time.perf_counter() - started))

    @staticmethod
    def _run_one(registration: _Registration) -> HealthEntry:
        started = time.perf_counter()
        try:
            result = registration.check()
        except Exception as exc:
            logger.exception("Health check %s raised", registration.name)
            result = HealthCheckResult.unhealthy(f"Health check {registration.name} failed", exc)
        return HealthEntry(
            name=registration.name,
            result=result,
            duration=timedelta(seconds=time.perf_counter() - started),
            tags=registration.tags,
        )


# ---------------------------------------------------------------------------
# Built-in probes
# ---------------------------------------------------------------------------


def database_check(database: Database) -> Callable[[], HealthCheckResult]:
    def check() -> HealthCheckResult:
        try:
            if not database.can_connect():
                return HealthCheckResult.unhealthy("Database is unhealthy", ConnectionError("Cannot connect"))
            with database.unit_of_work() as uow:
                vehicles = uow.vehicles.count()
                administrators = uow.administrators.count()
        except Exception as exc:
            logger.error("Database health check failed: %s", exc)
            return HealthCheckResult.unhealthy("Database is unhealthy", exc)
        return HealthCheckResult.healthy(
            "Database is healthy",
            {
                "vehicles_count": vehicles,
                "administrators_count": administrators,
                "database_server": database.engine.url.render_as_string(hide_password=True),
            },
        )

    return check


def memory_check(threshold_mb: int = 500, process: Optional[psutil.Process] = None) -> Callable[[], HealthCheckResult]:
    """Degraded when resident memory exceeds threshold_mb. Never Unhealthy by itself."""

    def check() -> HealthCheckResult:
        proc = process or psutil.Process()
        info = proc.memory_info()
        data = {
            "working_set_mb": info.rss // _MB,
            "virtual_memory_mb": info.vms // _MB,
            "threshold_mb": threshold_mb,
        }
        if info.rss > threshold_mb * _MB:
            return HealthCheckResult.degraded("High memory usage detected", data)
        return HealthCheckResult.healthy("Memory usage is normal", data)

    return check


def self_check() -> HealthCheckResult:
    return HealthCheckResult.healthy("API is running")


def build_health_service(database: Database, memory_threshold_mb: int = 500) -> HealthCheckService:
    health = HealthCheckService()
    health.register("database", database_check(database), tags=("database", "sql", "ready"))
    health.register("memory", memory_check(memory_threshold_mb), tags=("memory", "performance"))
    health.register("self", self_check, tags=("api",))
    return health
