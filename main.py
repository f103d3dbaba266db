#!/usr/bin/env python3
"""
Certificate Expiry Exporter - Main Application Entry Point
"""

import asyncio
import logging
import socket
import sys
from pathlib import Path
from typing import Any, List, Optional

import click
import uvicorn
from fastapi import FastAPI

from cert_expiry_exporter import __version__
from cert_expiry_exporter.api import create_app
from cert_expiry_exporter.config import Config, load_config
from cert_expiry_exporter.domains import load_domains
from cert_expiry_exporter.errors import BindError
from cert_expiry_exporter.logger import setup_logging
from cert_expiry_exporter.metrics import MetricsCollector
from cert_expiry_exporter.prober import create_prober
from cert_expiry_exporter.scheduler import RefreshScheduler


def bind_socket(host: str, port: int) -> socket.socket:
    """
    Bind the listening socket for the metrics server.

    An empty host listens on every interface: a dual-stack IPv6 socket
    where the platform supports it, otherwise all IPv4 interfaces.

    Raises:
        BindError: If the address is in use or not permitted
    """
    if not host:
        sock = _dual_stack_socket()
        bind_host = "::"
        if sock is None:
            sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
            bind_host = "0.0.0.0"  # nosec B104
    else:
        family = socket.AF_INET6 if ":" in host else socket.AF_INET
        sock = socket.socket(family, socket.SOCK_STREAM)
        bind_host = host

    try:
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        sock.bind((bind_host, port))
    except OSError as e:
        sock.close()
        raise BindError(f"Failed to listen on {host}:{port}: {e}") from e
    return sock


def _dual_stack_socket() -> Optional[socket.socket]:
    """Create an IPv6 socket that also accepts IPv4, or None if unsupported."""
    if not socket.has_ipv6:
        return None
    try:
        sock = socket.socket(socket.AF_INET6, socket.SOCK_STREAM)
    except OSError:
        return None
    try:
        sock.setsockopt(socket.IPPROTO_IPV6, socket.IPV6_V6ONLY, 0)
    except (AttributeError, OSError):
        sock.close()
        return None
    return sock


class CertExpiryExporter:
    """Main application class for Certificate Expiry Exporter."""

    def __init__(self, settings_path: Optional[str] = None, **overrides: Any):
        self.config: Optional[Config] = None
        self.domains: List[str] = []
        self.metrics: Optional[MetricsCollector] = None
        self.scheduler: Optional[RefreshScheduler] = None
        self.app: Optional[FastAPI] = None
        self.settings_path = settings_path
        self.overrides = overrides
        self.logger = logging.getLogger("cert_expiry_exporter.main")

    async def initialize(self) -> None:
        """Load configuration and domains, then run the first refresh."""
        try:
            self.config = load_config(self.settings_path, **self.overrides)

            setup_logging(self.config)
            self.logger.info(f"Initializing Certificate Expiry Exporter v{__version__}")

            self.domains = load_domains(self.config.domains_file)

            self.metrics = MetricsCollector()

            self.scheduler = RefreshScheduler(
                domains=self.domains,
                prober=create_prober(self.config),
                metrics=self.metrics,
                interval=self.config.refresh_interval_seconds,
            )

            self.app = create_app(metrics=self.metrics)

            # Initial refresh completes before the server starts
            await self.scheduler.refresh_once()

            self.logger.info("Certificate Expiry Exporter initialized successfully")

        except Exception as e:
            self.logger.error(f"Failed to initialize application: {e}")
            raise

    async def run(self) -> None:
        """Run the metrics server or perform a dry-run refresh."""
        if not self.app:
            await self.initialize()

        assert self.config is not None, "Config should be initialized"
        assert self.scheduler is not None and self.metrics is not None

        if self.config.dry_run:
            self.logger.info("Dry-run refresh completed")
            click.echo(self.metrics.get_metrics(), nl=False)
            await self.shutdown()
            return

        sock = bind_socket(self.config.host, self.config.port)

        server = uvicorn.Server(
            uvicorn.Config(
                self.app,  # type: ignore[arg-type]
                log_level=self.config.log_level.lower(),
                access_log=False,
            )
        )

        await self.scheduler.start()
        self.logger.info(f"Starting server on {self.config.listen_address}")

        try:
            await server.serve(sockets=[sock])
        except KeyboardInterrupt:
            self.logger.info("Received interrupt signal")
        finally:
            sock.close()
            await self.shutdown()

    async def shutdown(self) -> None:
        """Gracefully shutdown all components."""
        self.logger.info("Starting graceful shutdown")

        if self.scheduler:
            await self.scheduler.stop()

        self.logger.info("Graceful shutdown completed")


@click.command()
@click.option(
    "--listen-address",
    default=None,
    help="The address to listen on for HTTP requests. [default: :8837]",
)
@click.option(
    "--config",
    "domains_file",
    default=None,
    type=click.Path(path_type=Path),
    help="Path to the domains configuration file. [default: domains.cfg]",
)
@click.option(
    "--settings",
    "-s",
    type=click.Path(exists=True, path_type=Path),
    help="Path to YAML settings file",
)
@click.option("--interval", default=None, help="Refresh interval, e.g. '6h'")
@click.option("--probe-timeout", default=None, help="Timeout for each probe, e.g. '10s'")
@click.option(
    "--probe-backend",
    type=click.Choice(["native", "openssl"], case_sensitive=False),
    default=None,
    help="How certificates are retrieved",
)
@click.option("--log-level", default=None, help="Logging level")
@click.option(
    "--dry-run", is_flag=True, help="Refresh once, print the metrics and exit"
)
@click.option("--version", "-v", is_flag=True, help="Show version information")
def main(
    listen_address: Optional[str],
    domains_file: Optional[Path],
    settings: Optional[Path],
    interval: Optional[str],
    probe_timeout: Optional[str],
    probe_backend: Optional[str],
    log_level: Optional[str],
    dry_run: bool,
    version: bool,
) -> None:
    """Certificate Expiry Exporter - Export TLS certificate validity windows to Prometheus."""

    if version:
        click.echo(f"Certificate Expiry Exporter v{__version__}")
        return

    exporter = CertExpiryExporter(
        str(settings) if settings else None,
        listen_address=listen_address,
        domains_file=str(domains_file) if domains_file else None,
        refresh_interval=interval,
        probe_timeout=probe_timeout,
        probe_backend=probe_backend,
        log_level=log_level,
        dry_run=dry_run or None,
    )

    try:
        asyncio.run(exporter.run())
    except KeyboardInterrupt:
        click.echo("\nShutdown requested by user")
        sys.exit(0)
    except Exception as e:
        logging.getLogger("cert_expiry_exporter").critical(f"Application failed: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
