"""
Shared fixtures for Todo service tests.
"""

import pytest

from shared.test_helpers import FakeConnector, FakeDatabase, FakeTokenSigner, write_ca_bundle
from service_todos.app.config import DatabaseEndpointConfig, TodoServiceConfig
from service_todos.app.persistence.iam import IAMCredentialProvider
from service_todos.app.persistence.pool import ConnectionPool, PoolSettings


@pytest.fixture
def ca_bundle(tmp_path):
    """Path to a valid throwaway CA bundle."""
    return write_ca_bundle(str(tmp_path / "rds-ca-bundle.pem"))


@pytest.fixture
def endpoint():
    return DatabaseEndpointConfig(
        host="todo-db.abc123.ap-south-1.rds.amazonaws.com",
        port=5432,
        user="todo_app",
        database="todos",
        region="ap-south-1",
    )


@pytest.fixture
def database():
    return FakeDatabase()


@pytest.fixture
def connector(database):
    return FakeConnector(database)


@pytest.fixture
def signer():
    return FakeTokenSigner()


@pytest.fixture
def make_pool(endpoint, signer, connector):
    """Factory building a pool over the fake connector; settings overridable."""

    def _make_pool(**overrides):
        on_fatal = overrides.pop("on_fatal", None)
        settings = PoolSettings(**{"max_size": 2, "acquire_timeout": 1.0, "connect_retry_delay": 0.0, **overrides})
        return ConnectionPool(
            endpoint,
            IAMCredentialProvider(signer),
            settings=settings,
            connector=connector,
            on_fatal=on_fatal,
        )

    return _make_pool


@pytest.fixture
def config(ca_bundle):
    return TodoServiceConfig(
        rds_hostname="todo-db.abc123.ap-south-1.rds.amazonaws.com",
        rds_port=5432,
        rds_iam_user="todo_app",
        rds_db_name="todos",
        aws_region="ap-south-1",
        rds_ca_bundle_path=ca_bundle,
        app_password="correct horse",
        session_secret="test-session-secret",
        pool_max_size=2,
        pool_acquire_timeout=1.0,
        health_timeout=1.0,
    )
