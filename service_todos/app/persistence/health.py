"""
Database liveness probe.
"""

import asyncio
from dataclasses import dataclass
from typing import Optional

from shared.errors import ServiceException
from shared.logging import get_logger
from .pool import ConnectionPool


@dataclass(frozen=True)
class HealthStatus:
    healthy: bool
    reason: Optional[str] = None


class DatabaseHealthProbe:
    """Round-trips a trivial query through the pool."""

    def __init__(self, pool: ConnectionPool, timeout: float = 5.0):
        self.pool = pool
        self.timeout = timeout
        self.logger = get_logger("todos.persistence.health")

    async def check(self) -> HealthStatus:
        try:
            await asyncio.wait_for(self.pool.query("SELECT 1"), self.timeout)
        except asyncio.TimeoutError:
            reason = f"health query timed out after {self.timeout}s"
        except ServiceException as e:
            reason = f"{e.code}: {e.message}"
        else:
            return HealthStatus(healthy=True)

        self.logger.error("Health check failed", reason=reason)
        return HealthStatus(healthy=False, reason=reason)
