"""
Certificate date probing for Certificate Expiry Exporter.

Two backends retrieve the leaf certificate of ``<domain>:443`` using the
domain as SNI server name:

- ``native``: an in-process TLS handshake, certificate decoded with
  ``cryptography``
- ``openssl``: ``openssl s_client`` piped into ``openssl x509 -noout -dates``
"""

import socket
import ssl
import subprocess  # nosec B404
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import List, Optional, Tuple

from cryptography import x509

from cert_expiry_exporter.config import Config
from cert_expiry_exporter.errors import ParseError, ProbeError
from cert_expiry_exporter.logger import get_logger

CERT_DATE_FORMAT = "%b %d %H:%M:%S %Y"
NOT_BEFORE_PREFIX = "notBefore="
NOT_AFTER_PREFIX = "notAfter="
HTTPS_PORT = 443


@dataclass(frozen=True)
class CertificateWindow:
    """Validity window of a certificate, both ends in UTC."""

    not_before: datetime
    not_after: datetime


def parse_cert_date(value: str) -> datetime:
    """
    Parse a certificate date such as ``Jan  2 15:04:05 2006 GMT``.

    Runs of whitespace are accepted (openssl pads single-digit days). The
    zone abbreviation is recorded with zero offset.

    Args:
        value: Date text

    Returns:
        Timezone-aware UTC datetime

    Raises:
        ParseError: If the text does not match the format
    """
    fields = value.split()
    if len(fields) != 5 or not fields[4].isalpha():
        raise ParseError(f"Invalid certificate date: {value!r}")

    try:
        parsed = datetime.strptime(" ".join(fields[:4]), CERT_DATE_FORMAT)
    except ValueError as e:
        raise ParseError(f"Invalid certificate date {value!r}: {e}") from e

    return parsed.replace(tzinfo=timezone.utc)


def parse_cert_dates(output: str) -> Tuple[Optional[datetime], Optional[datetime]]:
    """
    Extract ``notBefore=`` and ``notAfter=`` dates from openssl output.

    Other lines are ignored. When a prefix appears more than once the last
    occurrence wins. A missing prefix leaves that date as ``None``.

    Args:
        output: Text printed by ``openssl x509 -noout -dates``

    Returns:
        Tuple of (not_before, not_after)
    """
    not_before: Optional[datetime] = None
    not_after: Optional[datetime] = None

    for line in output.splitlines():
        if line.startswith(NOT_BEFORE_PREFIX):
            not_before = parse_cert_date(line[len(NOT_BEFORE_PREFIX) :])
        elif line.startswith(NOT_AFTER_PREFIX):
            not_after = parse_cert_date(line[len(NOT_AFTER_PREFIX) :])

    return not_before, not_after


class CertificateProber:
    """Base class for certificate probes."""

    name = "base"

    def __init__(self, timeout: float = 10.0, port: int = HTTPS_PORT):
        self.timeout = timeout
        self.port = port
        self.logger = get_logger(f"prober.{self.name}")

    def probe(self, domain: str) -> CertificateWindow:
        """
        Retrieve the validity window of the certificate served for ``domain``.

        Args:
            domain: Host name, used both as connection target and SNI

        Returns:
            Certificate validity window

        Raises:
            ProbeError: If the certificate could not be retrieved
            ParseError: If its dates could not be parsed or are missing
        """
        self.logger.debug(f"Probing {domain}:{self.port}")
        not_before, not_after = self._fetch_dates(domain)

        if not_before is None or not_after is None:
            raise ParseError("Certificate dates missing from probe output", domain=domain)

        return CertificateWindow(not_before=not_before, not_after=not_after)

    def _fetch_dates(self, domain: str) -> Tuple[Optional[datetime], Optional[datetime]]:
        raise NotImplementedError


class NativeProber(CertificateProber):
    """Probe certificates with the ssl module and cryptography."""

    name = "native"

    def _create_context(self) -> ssl.SSLContext:
        # The window of expired or untrusted certificates is still reported
        context = ssl.SSLContext(ssl.PROTOCOL_TLS_CLIENT)
        context.check_hostname = False
        context.verify_mode = ssl.CERT_NONE
        return context

    def _fetch_dates(self, domain: str) -> Tuple[Optional[datetime], Optional[datetime]]:
        context = self._create_context()
        try:
            with socket.create_connection((domain, self.port), timeout=self.timeout) as sock:
                with context.wrap_socket(sock, server_hostname=domain) as ssock:
                    der_cert = ssock.getpeercert(binary_form=True)
        except socket.timeout as e:
            raise ProbeError(f"Connection timed out after {self.timeout}s", domain=domain) from e
        except (OSError, ValueError) as e:
            raise ProbeError(f"TLS connection failed: {e}", domain=domain) from e

        if not der_cert:
            raise ProbeError("No certificate presented by peer", domain=domain)

        try:
            cert = x509.load_der_x509_certificate(der_cert)
        except ValueError as e:
            raise ParseError(f"Invalid certificate: {e}", domain=domain) from e

        return cert.not_valid_before_utc, cert.not_valid_after_utc


class OpenSSLProber(CertificateProber):
    """Probe certificates by running the openssl command line tool."""

    name = "openssl"

    def __init__(
        self, timeout: float = 10.0, port: int = HTTPS_PORT, openssl_path: str = "openssl"
    ):
        super().__init__(timeout=timeout, port=port)
        self.openssl_path = openssl_path

    def _run(self, domain: str, args: List[str], stdin: bytes) -> subprocess.CompletedProcess:
        try:
            return subprocess.run(  # nosec B603
                [self.openssl_path, *args],
                input=stdin,
                capture_output=True,
                timeout=self.timeout,
                check=False,
            )
        except FileNotFoundError as e:
            raise ProbeError(f"{self.openssl_path} not found", domain=domain) from e
        except subprocess.TimeoutExpired as e:
            raise ProbeError(
                f"openssl {args[0]} timed out after {self.timeout}s", domain=domain
            ) from e
        except OSError as e:
            raise ProbeError(f"Failed to run {self.openssl_path}: {e}", domain=domain) from e
        except ValueError as e:
            raise ProbeError(f"Invalid openssl arguments: {e}", domain=domain) from e

    def _fetch_dates(self, domain: str) -> Tuple[Optional[datetime], Optional[datetime]]:
        s_client = self._run(
            domain,
            ["s_client", "-connect", f"{domain}:{self.port}", "-servername", domain],
            b"",
        )
        dates = self._run(domain, ["x509", "-noout", "-dates"], s_client.stdout)

        if dates.returncode != 0:
            stderr = dates.stderr.decode("utf-8", errors="replace").strip()
            raise ProbeError(
                f"openssl exited with status {dates.returncode}: {stderr or 'no certificate'}",
                domain=domain,
            )

        output = dates.stdout.decode("utf-8", errors="replace")
        if not output.strip():
            raise ProbeError("openssl produced no output", domain=domain)

        try:
            return parse_cert_dates(output)
        except ParseError as e:
            raise ParseError(e.message, domain=domain) from e


def create_prober(config: Config) -> CertificateProber:
    """
    Create the prober selected by configuration.

    Args:
        config: Configuration object

    Returns:
        Certificate prober
    """
    timeout = config.probe_timeout_seconds
    if config.probe_backend == "openssl":
        return OpenSSLProber(timeout=timeout, openssl_path=config.openssl_path)
    return NativeProber(timeout=timeout)
