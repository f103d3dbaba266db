"""
Configuration management for Certificate Expiry Exporter.
"""

import logging
import os
import re
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Tuple

import yaml
from pydantic import BaseModel, Field, field_validator

DEFAULT_LISTEN_ADDRESS = ":8837"
DEFAULT_DOMAINS_FILE = "domains.cfg"


class Config(BaseModel):
    """Configuration model for Certificate Expiry Exporter."""

    # Server settings
    listen_address: str = Field(default=DEFAULT_LISTEN_ADDRESS)

    # Domain list
    domains_file: str = Field(default=DEFAULT_DOMAINS_FILE)

    # Refresh settings
    refresh_interval: str = Field(default="6h")
    probe_timeout: str = Field(default="10s")
    probe_backend: str = Field(default="native")  # "native" or "openssl"
    openssl_path: str = Field(default="openssl")

    # Logging
    log_level: str = Field(default="INFO")
    log_file: Optional[str] = None

    # Operation modes
    dry_run: bool = Field(default=False)

    @field_validator("probe_backend")
    @classmethod
    def validate_probe_backend(cls, v: str) -> str:
        """Validate probe backend."""
        valid_backends = {"native", "openssl"}
        if v.lower() not in valid_backends:
            raise ValueError(f"probe_backend must be one of {valid_backends}, got '{v}'")
        return v.lower()

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"Log level must be one of: {valid_levels}")
        return v.upper()

    @field_validator("listen_address")
    @classmethod
    def validate_listen_address(cls, v: str) -> str:
        """Validate listen address format (e.g., ':8837', '127.0.0.1:8837', '[::1]:8837')."""
        split_listen_address(v)
        return v

    @field_validator("refresh_interval", "probe_timeout")
    @classmethod
    def validate_duration(cls, v: str) -> str:
        """Validate duration format (e.g., '5m', '6h', '30s')."""
        if not v:
            raise ValueError("Duration cannot be empty")

        pattern = r"^\d+[smhd]$"
        if not re.match(pattern, v):
            raise ValueError("Duration must be in format like '5m', '6h', '30s', '1d'")
        if parse_duration_seconds(v) <= 0:
            raise ValueError("Duration must be greater than zero")
        return v

    @property
    def refresh_interval_seconds(self) -> int:
        """Get refresh interval in seconds."""
        return parse_duration_seconds(self.refresh_interval)

    @property
    def probe_timeout_seconds(self) -> int:
        """Get per-probe timeout in seconds."""
        return parse_duration_seconds(self.probe_timeout)

    @property
    def host(self) -> str:
        return split_listen_address(self.listen_address)[0]

    @property
    def port(self) -> int:
        return split_listen_address(self.listen_address)[1]


def parse_duration_seconds(duration: str) -> int:
    """Parse duration string to seconds."""
    match = re.match(r"^(\d+)([smhd])$", duration)
    if not match:
        raise ValueError(f"Invalid duration format: {duration}")

    value, unit = match.groups()
    multipliers = {"s": 1, "m": 60, "h": 3600, "d": 86400}

    return int(value) * multipliers[unit]


def split_listen_address(address: str) -> Tuple[str, int]:
    """
    Split a listen address into host and port.

    An empty host (``:8837``) is returned as ``""`` and means every
    interface. IPv6 hosts are written
    in brackets (``[::1]:8837``).

    Args:
        address: Listen address

    Returns:
        Tuple of (host, port)
    """
    host, sep, port_str = address.rpartition(":")
    if not sep:
        raise ValueError(f"Listen address must be in form 'host:port', got '{address}'")

    if host.startswith("[") and host.endswith("]"):
        host = host[1:-1]
    elif ":" in host:
        raise ValueError(f"IPv6 listen address must use brackets, got '{address}'")

    try:
        port = int(port_str)
    except ValueError:
        raise ValueError(f"Invalid port in listen address '{address}'") from None

    if not 0 < port <= 65535:
        raise ValueError(f"Port must be between 1 and 65535, got {port}")

    return host, port


def load_config(config_path: Optional[str] = None, **overrides: Any) -> Config:
    """
    Load configuration from file, environment variables and explicit overrides.

    Args:
        config_path: Path to YAML settings file
        **overrides: Values that take precedence over file and environment
            (``None`` values are ignored)

    Returns:
        Config object
    """
    config_data: Dict[str, Any] = {}

    # Load from file if provided
    if config_path:
        config_file = Path(config_path)
        if config_file.exists():
            with open(config_file, "r", encoding="utf-8") as f:
                config_data = yaml.safe_load(f) or {}
        else:
            raise FileNotFoundError(f"Configuration file not found: {config_path}")

    # Override with environment variables
    config_data.update(_get_env_overrides())

    # Command line flags win
    config_data.update({key: value for key, value in overrides.items() if value is not None})

    return Config(**config_data)


def _get_env_overrides() -> dict:
    """Get configuration overrides from environment variables."""
    env_mapping: Dict[str, Tuple[str, Callable[[str], Any]]] = {
        "CERT_EXPORTER_LISTEN_ADDRESS": ("listen_address", str),
        "CERT_EXPORTER_DOMAINS_FILE": ("domains_file", str),
        "CERT_EXPORTER_REFRESH_INTERVAL": ("refresh_interval", str),
        "CERT_EXPORTER_PROBE_TIMEOUT": ("probe_timeout", str),
        "CERT_EXPORTER_PROBE_BACKEND": ("probe_backend", str),
        "CERT_EXPORTER_OPENSSL_PATH": ("openssl_path", str),
        "CERT_EXPORTER_LOG_LEVEL": ("log_level", str),
        "CERT_EXPORTER_LOG_FILE": ("log_file", str),
        "CERT_EXPORTER_DRY_RUN": ("dry_run", lambda x: x.lower() in ("true", "1", "yes")),
    }

    overrides = {}
    for env_var, (config_key, converter) in env_mapping.items():
        value = os.getenv(env_var)
        if value is not None:
            try:
                overrides[config_key] = converter(value)
            except (ValueError, TypeError) as e:
                logging.warning(f"Invalid value for {env_var}: {value} - {e}")

    return overrides


def create_example_config(output_path: str = "config.example.yaml") -> None:
    """Create an example settings file."""
    example_config = {
        "listen_address": DEFAULT_LISTEN_ADDRESS,
        "domains_file": DEFAULT_DOMAINS_FILE,
        "refresh_interval": "6h",
        "probe_timeout": "10s",
        "probe_backend": "native",
        "openssl_path": "openssl",
        "log_level": "INFO",
        "log_file": None,
        "dry_run": False,
    }

    with open(output_path, "w", encoding="utf-8") as f:
        yaml.dump(example_config, f, default_flow_style=False, sort_keys=False)
