"""
Tests for the refresh scheduler.
"""

import asyncio
from datetime import datetime, timezone
from unittest.mock import MagicMock, patch

import pytest

from cert_expiry_exporter.errors import ParseError, ProbeError
from cert_expiry_exporter.metrics import MetricsCollector
from cert_expiry_exporter.prober import CertificateProber, CertificateWindow
from cert_expiry_exporter.scheduler import DEFAULT_REFRESH_INTERVAL, RefreshScheduler

WINDOW_2024 = CertificateWindow(
    not_before=datetime(2024, 1, 1, tzinfo=timezone.utc),
    not_after=datetime(2025, 1, 1, tzinfo=timezone.utc),
)
WINDOW_2025 = CertificateWindow(
    not_before=datetime(2025, 1, 1, tzinfo=timezone.utc),
    not_after=datetime(2026, 1, 1, tzinfo=timezone.utc),
)


class TestRefreshScheduler:
    """Test refresh scheduler functionality."""

    @pytest.fixture
    def metrics(self):
        return MetricsCollector()

    @pytest.fixture
    def mock_prober(self):
        """Create a mock prober."""
        return MagicMock(spec=CertificateProber)

    @pytest.fixture
    def scheduler(self, mock_prober, metrics):
        """Create a scheduler over two domains."""
        scheduler = RefreshScheduler(
            domains=["a.example", "b.example"], prober=mock_prober, metrics=metrics, interval=3600
        )
        yield scheduler
        scheduler._executor.shutdown(wait=False)

    def test_scheduler_initialization(self, mock_prober, metrics):
        """Test scheduler defaults."""
        scheduler = RefreshScheduler(domains=("a.example",), prober=mock_prober, metrics=metrics)

        assert scheduler.domains == ["a.example"]
        assert scheduler.interval == DEFAULT_REFRESH_INTERVAL == 21600
        scheduler._executor.shutdown(wait=False)

    @pytest.mark.asyncio
    async def test_refresh_once_success(self, scheduler, mock_prober, metrics):
        """Test that every domain is probed in order and recorded."""
        mock_prober.probe.return_value = WINDOW_2024

        result = await scheduler.refresh_once()

        assert [c.args[0] for c in mock_prober.probe.call_args_list] == ["a.example", "b.example"]
        assert result["succeeded"] == 2
        assert result["failed"] == 0
        assert metrics.get_sample("cert_start", "a.example") == 1704067200.0
        assert metrics.get_sample("cert_expiry", "b.example") == 1735689600.0

    @pytest.mark.asyncio
    async def test_partial_failure(self, scheduler, mock_prober, metrics):
        """Test that a failing domain does not abort the cycle."""

        def probe(domain):
            if domain == "a.example":
                return WINDOW_2024
            raise ProbeError("Connection refused", domain=domain)

        mock_prober.probe.side_effect = probe

        result = await scheduler.refresh_once()

        assert result == {
            "domains": 2,
            "succeeded": 1,
            "failed": 1,
            "duration": result["duration"],
        }
        assert metrics.get_sample("cert_start", "a.example") == 1704067200.0
        assert metrics.get_sample("cert_start", "b.example") is None

        output = metrics.get_metrics()
        assert 'cert_start{domain="a.example"}' in output
        assert "b.example" not in output

    @pytest.mark.asyncio
    async def test_failure_keeps_previous_values(self, scheduler, mock_prober, metrics):
        """Test that a later failure leaves the last good values in place."""
        mock_prober.probe.return_value = WINDOW_2024
        await scheduler.refresh_once()

        mock_prober.probe.return_value = None
        mock_prober.probe.side_effect = ParseError("Invalid certificate date")
        result = await scheduler.refresh_once()

        assert result["failed"] == 2
        assert metrics.get_sample("cert_start", "a.example") == 1704067200.0
        assert metrics.get_sample("cert_expiry", "a.example") == 1735689600.0

    @pytest.mark.asyncio
    async def test_later_success_overwrites(self, scheduler, mock_prober, metrics):
        """Test that a renewed certificate replaces the old window."""
        mock_prober.probe.return_value = WINDOW_2024
        await scheduler.refresh_once()

        mock_prober.probe.return_value = WINDOW_2025
        await scheduler.refresh_once()

        assert metrics.get_sample("cert_start", "a.example") == 1735689600.0

    @pytest.mark.asyncio
    async def test_unexpected_error_skips_domain(self, mock_prober, metrics):
        """Test that any error on one domain still lets the next domain be checked."""

        def probe(domain):
            if domain == "bad\x00.example":
                raise ValueError("embedded null byte")
            return WINDOW_2024

        mock_prober.probe.side_effect = probe
        scheduler = RefreshScheduler(
            domains=["bad\x00.example", "good.example"], prober=mock_prober, metrics=metrics
        )

        result = await scheduler.refresh_once()
        scheduler._executor.shutdown(wait=False)

        assert result["succeeded"] == 1
        assert result["failed"] == 1
        assert mock_prober.probe.call_count == 2
        assert metrics.get_sample("cert_start", "good.example") == 1704067200.0

    @pytest.mark.asyncio
    async def test_scrape_during_refresh(self, scheduler, mock_prober, metrics):
        """Test that scrapes taken mid-cycle are complete expositions."""
        scrapes = []

        def probe(domain):
            scrapes.append(metrics.get_metrics())
            return WINDOW_2024

        mock_prober.probe.side_effect = probe

        await scheduler.refresh_once()

        assert len(scrapes) == 2
        assert "a.example" not in scrapes[0]
        assert 'cert_start{domain="a.example"} 1704067200' in scrapes[1]
        assert 'cert_expiry{domain="a.example"} 1735689600' in scrapes[1]
        for scrape in scrapes:
            assert "# TYPE cert_start gauge" in scrape
            assert "# TYPE cert_expiry gauge" in scrape

    @pytest.mark.asyncio
    async def test_refresh_records_cycle_metrics(self, scheduler, mock_prober, metrics):
        """Test that cycle duration and time are recorded."""
        mock_prober.probe.return_value = WINDOW_2024

        await scheduler.refresh_once()

        assert metrics.registry.get_sample_value("cert_refresh_duration_seconds") >= 0
        assert metrics.registry.get_sample_value("cert_refresh_last_timestamp") > 0

    @pytest.mark.asyncio
    async def test_start_stop_scheduler(self, scheduler):
        """Test starting and stopping the refresh loop."""
        await scheduler.start()
        assert scheduler._task is not None
        assert not scheduler._task.done()

        await scheduler.stop()
        assert scheduler._task.cancelled() or scheduler._task.done()

    @pytest.mark.asyncio
    async def test_start_twice(self, scheduler):
        """Test that a second start does not spawn another loop."""
        await scheduler.start()
        task = scheduler._task

        await scheduler.start()

        assert scheduler._task is task
        await scheduler.stop()

    @pytest.mark.asyncio
    async def test_loop_sleeps_before_refresh(self, mock_prober, metrics):
        """Test that the loop waits one interval before each refresh."""
        mock_prober.probe.return_value = WINDOW_2024
        scheduler = RefreshScheduler(
            domains=["a.example"], prober=mock_prober, metrics=metrics, interval=0.05
        )

        await scheduler.start()
        assert mock_prober.probe.call_count == 0

        await asyncio.sleep(0.3)
        await scheduler.stop()

        assert mock_prober.probe.call_count >= 2

    @pytest.mark.asyncio
    async def test_loop_survives_unexpected_error(self, mock_prober, metrics):
        """Test that the loop keeps running after an unexpected error."""
        scheduler = RefreshScheduler(
            domains=["a.example"], prober=mock_prober, metrics=metrics, interval=0.05
        )

        with patch.object(
            scheduler, "refresh_once", side_effect=[RuntimeError("bug"), {}, {}, {}, {}, {}, {}]
        ) as mock_refresh:
            await scheduler.start()
            await asyncio.sleep(0.2)
            await scheduler.stop()

        assert mock_refresh.call_count >= 2
