"""
Certificate Expiry Exporter

Periodically probes the TLS certificates of a list of domains and exposes
their validity windows as Prometheus gauges.
"""

__version__ = "1.0.0"
__author__ = "Certificate Expiry Exporter Team"
__description__ = "Prometheus exporter for TLS certificate validity windows"

from cert_expiry_exporter.config import Config
from cert_expiry_exporter.metrics import MetricsCollector
from cert_expiry_exporter.scheduler import RefreshScheduler

__all__ = [
    "Config",
    "MetricsCollector",
    "RefreshScheduler",
]
