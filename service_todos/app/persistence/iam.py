"""
RDS IAM authentication for database connections.

The database user has no static password. Each physical connection presents a
short-lived token signed with the process's AWS identity instead.
"""

import asyncio
import functools
from typing import Any, Optional, Protocol, TYPE_CHECKING

import boto3

from shared.errors import ConnectError, SigningError
from shared.logging import get_logger
from shared.metrics import MetricsCollector

if TYPE_CHECKING:
    from ..config import DatabaseEndpointConfig


class CredentialProvider(Protocol):
    """Produces the password for one new physical connection."""

    async def __call__(self) -> str:
        ...


class RDSTokenSigner:
    """Mints RDS IAM auth tokens for a fixed (host, port, user, region)."""

    def __init__(self, endpoint: "DatabaseEndpointConfig", client: Optional[Any] = None):
        self.endpoint = endpoint
        self.logger = get_logger("todos.persistence.iam")
        self._client = client if client is not None else boto3.client("rds", region_name=endpoint.region)

    async def get_auth_token(self) -> str:
        """Generate a fresh token. Does not retry."""
        loop = asyncio.get_running_loop()
        try:
            token = await loop.run_in_executor(
                None,
                functools.partial(
                    self._client.generate_db_auth_token,
                    DBHostname=self.endpoint.host,
                    Port=self.endpoint.port,
                    DBUsername=self.endpoint.user,
                    Region=self.endpoint.region,
                ),
            )
        except Exception as e:
            raise SigningError(
                f"Failed to obtain IAM auth token: {e}",
                details={"host": self.endpoint.host, "user": self.endpoint.user}
            ) from e

        if not token:
            raise SigningError(
                "Failed to obtain IAM auth token: signer returned an empty token",
                details={"host": self.endpoint.host, "user": self.endpoint.user}
            )

        return token


class IAMCredentialProvider:
    """Credential hook handed to the pool; one signer call per connection attempt."""

    def __init__(self, signer: RDSTokenSigner, metrics: Optional[MetricsCollector] = None):
        self.signer = signer
        self.metrics = metrics
        self.logger = get_logger("todos.persistence.iam")

    async def __call__(self) -> str:
        self.logger.info("Pool requesting new connection, generating IAM auth token")
        try:
            token = await self.signer.get_auth_token()
        except SigningError as e:
            self.logger.error("Failed to generate IAM auth token", error=e.message)
            if self.metrics:
                self.metrics.record_auth_token("error")
            raise ConnectError(e.message, details=e.details) from e

        self.logger.info("IAM auth token generated")
        if self.metrics:
            self.metrics.record_auth_token("ok")
        return token
