"""
FastAPI application for Certificate Expiry Exporter.
"""

import asyncio
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Optional

from fastapi import FastAPI, HTTPException
from fastapi.responses import PlainTextResponse

from cert_expiry_exporter import __version__
from cert_expiry_exporter.logger import get_logger
from cert_expiry_exporter.metrics import MetricsCollector


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncGenerator[None, None]:
    """Lifespan handler that suppresses CancelledError during shutdown."""
    try:
        yield
    except asyncio.CancelledError:
        pass


def create_app(metrics: MetricsCollector, lifespan_override: Optional[Any] = None) -> FastAPI:
    """
    Create the metrics application.

    Only ``GET /metrics`` is served. Scrapes read the collector as it is and
    never trigger a refresh.

    Args:
        metrics: Metrics collector instance

    Returns:
        Configured FastAPI application
    """
    app = FastAPI(
        title="Certificate Expiry Exporter",
        description="Prometheus exporter for TLS certificate validity windows",
        version=__version__,
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
        lifespan=lifespan_override or lifespan,
    )

    logger = get_logger("api")

    @app.get("/metrics", response_class=PlainTextResponse)
    def get_metrics() -> PlainTextResponse:
        try:
            metrics_data: str = metrics.get_metrics()
            return PlainTextResponse(content=metrics_data, media_type=metrics.get_content_type())
        except Exception as e:
            logger.error(f"Failed to generate metrics: {e}")
            raise HTTPException(status_code=500, detail="Failed to generate metrics") from e

    return app
