"""
Tests for the database health probe.
"""

import pytest

from shared.test_helpers import FakeTokenSigner
from service_todos.app.persistence.health import DatabaseHealthProbe
from service_todos.app.persistence.iam import IAMCredentialProvider
from service_todos.app.persistence.pool import ConnectionPool, PoolSettings


class TestDatabaseHealthProbe:
    """Test cases for DatabaseHealthProbe."""

    @pytest.mark.asyncio
    async def test_healthy_when_select_succeeds(self, make_pool, database):
        probe = DatabaseHealthProbe(make_pool())

        status = await probe.check()

        assert status.healthy is True
        assert status.reason is None
        assert database.statements == ["SELECT 1"]

    @pytest.mark.asyncio
    async def test_unhealthy_when_database_unreachable(self, make_pool, connector):
        """Test a failed handshake is reported, not raised."""
        connector.failures = 1
        pool = make_pool()

        status = await DatabaseHealthProbe(pool).check()

        assert status.healthy is False
        assert status.reason.startswith("CONNECT_ERROR")
        assert pool.outstanding == 0

    @pytest.mark.asyncio
    async def test_unhealthy_when_signing_fails(self, endpoint, connector):
        pool = ConnectionPool(endpoint, IAMCredentialProvider(FakeTokenSigner(fail=True)), connector=connector)

        status = await DatabaseHealthProbe(pool).check()

        assert status.healthy is False
        assert "IAM auth token" in status.reason
        assert connector.calls == []

    @pytest.mark.asyncio
    async def test_unhealthy_on_timeout(self, make_pool, database):
        database.delay = 1.0

        status = await DatabaseHealthProbe(make_pool(), timeout=0.05).check()

        assert status.healthy is False
        assert "timed out" in status.reason

    @pytest.mark.asyncio
    async def test_unhealthy_after_shutdown(self, make_pool):
        pool = make_pool()
        await pool.shutdown()

        status = await DatabaseHealthProbe(pool).check()

        assert status.healthy is False
        assert status.reason.startswith("POOL_CLOSED")

    @pytest.mark.asyncio
    async def test_unhealthy_when_provider_raises_unexpectedly(self, endpoint, connector):
        """Test a failing custom credential provider is reported, not raised."""
        async def provider():
            raise RuntimeError("sts endpoint unreachable")

        pool = ConnectionPool(endpoint, provider, connector=connector,
                              settings=PoolSettings(connect_attempts=3, connect_retry_delay=0.0))

        status = await DatabaseHealthProbe(pool).check()

        assert status.healthy is False
        assert status.reason.startswith("CONNECT_ERROR")
        assert "sts endpoint unreachable" in status.reason
        assert pool.outstanding == 0
