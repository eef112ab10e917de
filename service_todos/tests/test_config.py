"""
Tests for Todo service configuration.
"""

import os

import pytest

from shared.errors import ConfigError
from service_todos.app.config import DEFAULT_CA_BUNDLE_PATH, DatabaseEndpointConfig, TodoServiceConfig
from service_todos.app.persistence.pool import IdleErrorPolicy

ENV_VARS = (
    "RDS_HOSTNAME", "RDS_PORT", "RDS_IAM_USER", "RDS_DB_NAME", "AWS_REGION", "RDS_CA_BUNDLE_PATH",
    "APP_PASSWORD", "SESSION_SECRET", "PORT", "TODO_ENV", "TODO_POOL_MAX_SIZE",
    "TODO_POOL_IDLE_ERROR_POLICY", "TODO_POOL_CONNECT_ATTEMPTS",
)


@pytest.fixture
def clean_env(monkeypatch, tmp_path):
    """Environment without any service variables and no .env file in reach."""
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)
    return monkeypatch


class TestTodoServiceConfig:
    """Test cases for TodoServiceConfig."""

    def test_reads_environment(self, clean_env):
        clean_env.setenv("RDS_HOSTNAME", "db.example.com")
        clean_env.setenv("RDS_PORT", "6543")
        clean_env.setenv("RDS_IAM_USER", "todo_app")
        clean_env.setenv("RDS_DB_NAME", "todos")
        clean_env.setenv("AWS_REGION", "eu-west-1")
        clean_env.setenv("PORT", "8080")
        clean_env.setenv("TODO_POOL_IDLE_ERROR_POLICY", "evict")

        config = TodoServiceConfig()

        assert config.port == 8080
        assert config.database_endpoint() == DatabaseEndpointConfig(
            host="db.example.com", port=6543, user="todo_app", database="todos", region="eu-west-1"
        )
        assert config.pool_settings().idle_error_policy is IdleErrorPolicy.EVICT

    def test_defaults(self, clean_env):
        config = TodoServiceConfig()

        assert config.service_name == "todos"
        assert config.port == 80
        assert config.rds_port == 5432
        assert config.app_password == "example"
        assert config.ca_bundle_path == DEFAULT_CA_BUNDLE_PATH
        assert config.is_production is False

    @pytest.mark.parametrize("missing", ["RDS_HOSTNAME", "RDS_IAM_USER", "RDS_DB_NAME", "AWS_REGION"])
    def test_missing_required_variable_is_config_error(self, clean_env, missing):
        """Test every required database variable is reported when absent."""
        values = {
            "RDS_HOSTNAME": "db.example.com",
            "RDS_IAM_USER": "todo_app",
            "RDS_DB_NAME": "todos",
            "AWS_REGION": "eu-west-1",
        }
        for name, value in values.items():
            if name != missing:
                clean_env.setenv(name, value)

        with pytest.raises(ConfigError) as exc_info:
            TodoServiceConfig().database_endpoint()

        assert exc_info.value.details["missing"] == [missing]

    def test_blank_values_count_as_missing(self, clean_env):
        config = TodoServiceConfig(rds_hostname="   ", rds_iam_user="todo_app", rds_db_name="todos",
                                   aws_region="eu-west-1")

        with pytest.raises(ConfigError) as exc_info:
            config.database_endpoint()

        assert exc_info.value.details["missing"] == ["RDS_HOSTNAME"]

    def test_ca_bundle_path_override(self, clean_env):
        clean_env.setenv("RDS_CA_BUNDLE_PATH", "/etc/ssl/rds/global-bundle.pem")

        assert TodoServiceConfig().ca_bundle_path == "/etc/ssl/rds/global-bundle.pem"

    def test_default_ca_bundle_lives_in_certs_dir(self):
        assert os.path.basename(DEFAULT_CA_BUNDLE_PATH) == "rds-ca-bundle.pem"
        assert os.path.basename(os.path.dirname(DEFAULT_CA_BUNDLE_PATH)) == "certs"

    def test_pool_settings(self, clean_env):
        clean_env.setenv("TODO_POOL_MAX_SIZE", "4")
        clean_env.setenv("TODO_POOL_CONNECT_ATTEMPTS", "3")

        settings = TodoServiceConfig(pool_acquire_timeout=2.5, pool_shutdown_grace=1.0).pool_settings()

        assert settings.max_size == 4
        assert settings.connect_attempts == 3
        assert settings.acquire_timeout == 2.5
        assert settings.shutdown_grace_period == 1.0
        assert settings.idle_error_policy is IdleErrorPolicy.FATAL

    def test_production_flag(self, clean_env):
        clean_env.setenv("TODO_ENV", "production")

        assert TodoServiceConfig().is_production is True
