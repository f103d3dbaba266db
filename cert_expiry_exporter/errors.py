"""
Exception hierarchy for Certificate Expiry Exporter.
"""

from typing import Optional


class CertExporterError(Exception):
    """Base class for all exporter errors."""

    def __init__(self, message: str, domain: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.domain = domain


class UnreadableConfigError(CertExporterError):
    """The domain list could not be opened or read."""


class ProbeError(CertExporterError):
    """Retrieving the certificate of a domain failed."""


class ParseError(CertExporterError):
    """A certificate date did not match the expected format."""


class BindError(CertExporterError):
    """The metrics server could not bind its listen address."""
