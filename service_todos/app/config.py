"""
Configuration for the Todo service.
"""

import os
from dataclasses import dataclass
from typing import Optional

from pydantic import Field

from shared.config import ServiceConfig
from shared.errors import ConfigError
from .persistence.pool import IdleErrorPolicy, PoolSettings

DEFAULT_CA_BUNDLE_PATH = os.path.join(os.path.dirname(__file__), '..', 'certs', 'rds-ca-bundle.pem')
DEFAULT_SESSION_SECRET = "a-weak-default-secret-change-me!"


@dataclass(frozen=True)
class DatabaseEndpointConfig:
    """Where and as whom to connect. Immutable after startup."""
    host: str
    port: int
    user: str
    database: str
    region: str


class TodoServiceConfig(ServiceConfig):
    """Todo service configuration."""

    # Database endpoint
    rds_hostname: str = Field(default="", validation_alias="RDS_HOSTNAME")
    rds_port: int = Field(default=5432, validation_alias="RDS_PORT")
    rds_iam_user: str = Field(default="", validation_alias="RDS_IAM_USER")
    rds_db_name: str = Field(default="", validation_alias="RDS_DB_NAME")
    aws_region: str = Field(default="", validation_alias="AWS_REGION")
    rds_ca_bundle_path: Optional[str] = Field(default=None, validation_alias="RDS_CA_BUNDLE_PATH")

    # Login gate
    app_password: str = Field(default="example", validation_alias="APP_PASSWORD")
    session_secret: str = Field(default=DEFAULT_SESSION_SECRET, validation_alias="SESSION_SECRET")

    # Pool tuning
    pool_max_size: int = Field(default=10, ge=1, validation_alias="TODO_POOL_MAX_SIZE")
    pool_acquire_timeout: float = Field(default=10.0, gt=0, validation_alias="TODO_POOL_ACQUIRE_TIMEOUT")
    pool_connect_timeout: float = Field(default=10.0, gt=0, validation_alias="TODO_POOL_CONNECT_TIMEOUT")
    pool_command_timeout: float = Field(default=30.0, gt=0, validation_alias="TODO_POOL_COMMAND_TIMEOUT")
    pool_shutdown_grace: float = Field(default=10.0, ge=0, validation_alias="TODO_POOL_SHUTDOWN_GRACE")
    pool_connect_attempts: int = Field(default=1, ge=1, validation_alias="TODO_POOL_CONNECT_ATTEMPTS")
    pool_idle_error_policy: IdleErrorPolicy = Field(
        default=IdleErrorPolicy.FATAL, validation_alias="TODO_POOL_IDLE_ERROR_POLICY"
    )
    health_timeout: float = Field(default=5.0, gt=0, validation_alias="TODO_HEALTH_TIMEOUT")

    def __init__(self, service_name: str = "todos", **kwargs):
        super().__init__(service_name=service_name, **kwargs)

    @property
    def ca_bundle_path(self) -> str:
        return self.rds_ca_bundle_path or DEFAULT_CA_BUNDLE_PATH

    def database_endpoint(self) -> DatabaseEndpointConfig:
        """Build the endpoint, failing when any required variable is missing."""
        required = {
            "RDS_HOSTNAME": self.rds_hostname,
            "RDS_IAM_USER": self.rds_iam_user,
            "RDS_DB_NAME": self.rds_db_name,
            "AWS_REGION": self.aws_region,
        }
        missing = [name for name, value in required.items() if not value or not value.strip()]
        if missing:
            raise ConfigError(
                "Missing required database configuration",
                details={"missing": missing}
            )

        return DatabaseEndpointConfig(
            host=self.rds_hostname.strip(),
            port=self.rds_port,
            user=self.rds_iam_user.strip(),
            database=self.rds_db_name.strip(),
            region=self.aws_region.strip(),
        )

    def pool_settings(self) -> PoolSettings:
        return PoolSettings(
            max_size=self.pool_max_size,
            acquire_timeout=self.pool_acquire_timeout,
            connect_timeout=self.pool_connect_timeout,
            command_timeout=self.pool_command_timeout,
            shutdown_grace_period=self.pool_shutdown_grace,
            connect_attempts=self.pool_connect_attempts,
            idle_error_policy=self.pool_idle_error_policy,
        )
