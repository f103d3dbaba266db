"""
Prometheus metrics collection for Certificate Expiry Exporter.
"""

import re
import threading
import time
from datetime import datetime
from typing import Optional

from prometheus_client import CONTENT_TYPE_LATEST, CollectorRegistry, Gauge, generate_latest

from cert_expiry_exporter.logger import get_logger, log_metrics_collection
from cert_expiry_exporter.prober import CertificateWindow

# Metrics whose values are whole Unix timestamps
TIMESTAMP_METRICS = ("cert_start", "cert_expiry", "cert_refresh_last_timestamp")


class MetricsCollector:
    """
    Prometheus metrics collector for certificate validity windows.

    Owns its own registry so it can be created per process (or per test)
    and handed to both the refresh scheduler and the metrics endpoint.
    """

    def __init__(self) -> None:
        self.logger = get_logger("metrics")
        self.registry = CollectorRegistry()
        self._lock = threading.Lock()

        # Certificate metrics
        self.cert_start = Gauge(
            "cert_start",
            "Start date of SSL certificates in Unix timestamp",
            ["domain"],
            registry=self.registry,
        )

        self.cert_expiry = Gauge(
            "cert_expiry",
            "Expiry date of SSL certificates in Unix timestamp",
            ["domain"],
            registry=self.registry,
        )

        # Operational metrics
        self.cert_refresh_duration_seconds = Gauge(
            "cert_refresh_duration_seconds",
            "Duration of the last refresh cycle",
            registry=self.registry,
        )

        self.cert_refresh_last_timestamp = Gauge(
            "cert_refresh_last_timestamp",
            "Completion time of the last refresh cycle (Unix timestamp)",
            registry=self.registry,
        )

        self.logger.info("Metrics collector initialized")

    def set_start(self, domain: str, instant: datetime) -> None:
        """Set ``cert_start`` for a domain."""
        value = instant.timestamp()
        with self._lock:
            self.cert_start.labels(domain=domain).set(value)
        log_metrics_collection(self.logger, "cert_start", value, {"domain": domain})

    def set_expiry(self, domain: str, instant: datetime) -> None:
        """Set ``cert_expiry`` for a domain."""
        value = instant.timestamp()
        with self._lock:
            self.cert_expiry.labels(domain=domain).set(value)
        log_metrics_collection(self.logger, "cert_expiry", value, {"domain": domain})

    def update_certificate_window(self, domain: str, window: CertificateWindow) -> None:
        """
        Record both ends of a certificate validity window.

        Previous values for the domain are overwritten.

        Args:
            domain: Domain the certificate was served for
            window: Probed validity window
        """
        self.set_start(domain, window.not_before)
        self.set_expiry(domain, window.not_after)

    def update_refresh_metrics(self, duration: float) -> None:
        """Record the duration and completion time of a refresh cycle."""
        with self._lock:
            self.cert_refresh_duration_seconds.set(duration)
            self.cert_refresh_last_timestamp.set(time.time())

    def get_metrics(self) -> str:
        """
        Get Prometheus metrics in text format.

        Returns:
            Metrics in Prometheus text format
        """
        with self._lock:
            raw_metrics = generate_latest(self.registry).decode("utf-8")

        return self._format_numeric_values(raw_metrics)

    def _format_numeric_values(self, metrics_text: str) -> str:
        """
        Render integral timestamps as integers instead of scientific notation.

        Args:
            metrics_text: Raw Prometheus metrics text

        Returns:
            Formatted metrics text
        """
        formatted_lines = []

        for line in metrics_text.split("\n"):
            if line.startswith("#") or not line.strip():
                formatted_lines.append(line)
                continue

            match = re.match(r"^([^}]+})\s+(.+)$", line) or re.match(r"^([^\s]+)\s+(.+)$", line)
            if not match:
                formatted_lines.append(line)
                continue

            metric_name, value = match.group(1), match.group(2)
            base_name = metric_name.split("{", 1)[0]
            if base_name not in TIMESTAMP_METRICS:
                formatted_lines.append(line)
                continue

            try:
                float_value = float(value)
                if float_value.is_integer():
                    formatted_lines.append(f"{metric_name} {int(float_value)}")
                else:
                    formatted_lines.append(line)
            except (ValueError, OverflowError):
                formatted_lines.append(line)

        return "\n".join(formatted_lines)

    def get_content_type(self) -> str:
        """Get content type for metrics endpoint."""
        return CONTENT_TYPE_LATEST

    def get_sample(self, name: str, domain: str) -> Optional[float]:
        """Get the current value of a domain gauge, or ``None`` if unset."""
        return self.registry.get_sample_value(name, {"domain": domain})
