"""
Trust capability for controllers serving a self-signed certificate.

Crafty ships with a self-signed certificate. Skipping validation is only
acceptable for a controller on localhost or a trusted network, so the
capability exists only when an endpoint opts in and is handed explicitly to
the transport that will use it.
"""

import logging
import ssl

logger = logging.getLogger(__name__)


class TrustAllCertificates:
    """Accepts every server certificate: valid, expired, or self-signed."""

    def __init__(self, reason: str = "insecure mode enabled"):
        self.reason = reason
        logger.warning(
            "Certificate validation disabled (%s). Only enable this if you absolutely need to.",
            reason,
        )

    def ssl_context(self) -> ssl.SSLContext:
        context = ssl.create_default_context()
        context.check_hostname = False
        context.verify_mode = ssl.CERT_NONE
        return context

    def __repr__(self) -> str:
        return f"TrustAllCertificates(reason={self.reason!r})"
