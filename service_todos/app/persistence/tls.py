"""
Trust bundle loading for RDS TLS verification.
"""

import os
import ssl
from dataclasses import dataclass, field

from shared.errors import TrustBundleError
from shared.logging import get_logger

logger = get_logger("todos.persistence.tls")

PEM_CERT_MARKER = "-----BEGIN CERTIFICATE-----"


@dataclass(frozen=True)
class TrustBundle:
    """CA material for the data store, loaded once at startup."""
    path: str
    pem: str = field(repr=False)
    certificate_count: int

    def ssl_context(self) -> ssl.SSLContext:
        """Client context that verifies the server certificate and hostname."""
        context = ssl.create_default_context(ssl.Purpose.SERVER_AUTH, cadata=self.pem)
        context.check_hostname = True
        context.verify_mode = ssl.CERT_REQUIRED
        return context


def load_trust_bundle(path: str) -> TrustBundle:
    """Read and validate a PEM CA bundle.

    There is no insecure fallback: a missing, unreadable or malformed bundle
    raises TrustBundleError.
    """
    if not os.path.isfile(path):
        logger.error("RDS CA bundle not found", path=path)
        raise TrustBundleError("RDS CA bundle not found", details={"path": path})

    try:
        with open(path, "r", encoding="ascii") as f:
            pem = f.read()
    except (OSError, UnicodeDecodeError) as e:
        logger.error("Failed to read RDS CA bundle", path=path, error=str(e))
        raise TrustBundleError("Failed to read RDS CA bundle", details={"path": path}) from e

    count = pem.count(PEM_CERT_MARKER)
    if count == 0:
        raise TrustBundleError("RDS CA bundle contains no certificates", details={"path": path})

    bundle = TrustBundle(path=path, pem=pem, certificate_count=count)
    try:
        bundle.ssl_context()
    except ssl.SSLError as e:
        raise TrustBundleError("RDS CA bundle is not valid PEM", details={"path": path}) from e

    logger.info("Loaded RDS CA bundle", path=path, certificates=count)
    return bundle
