"""
Periodic certificate refresh for Certificate Expiry Exporter.
"""

import asyncio
import time
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Dict, List, Optional, Sequence

from cert_expiry_exporter.errors import ParseError, ProbeError
from cert_expiry_exporter.logger import (
    get_logger,
    log_probe_error,
    log_probe_success,
    log_refresh_complete,
)
from cert_expiry_exporter.metrics import MetricsCollector
from cert_expiry_exporter.prober import CertificateProber

DEFAULT_REFRESH_INTERVAL = 6 * 3600


class RefreshScheduler:
    """
    Probes every configured domain and feeds the results into the metrics.

    Domains are probed one after another, in configuration order, on a
    single worker thread so the event loop keeps serving scrapes. A failing
    domain is logged and skipped; its previous gauge values are left as-is.
    """

    def __init__(
        self,
        domains: Sequence[str],
        prober: CertificateProber,
        metrics: MetricsCollector,
        interval: float = DEFAULT_REFRESH_INTERVAL,
    ):
        self.domains: List[str] = list(domains)
        self.prober = prober
        self.metrics = metrics
        self.interval = interval
        self.logger = get_logger("scheduler")

        self._running = False
        self._task: Optional[asyncio.Task] = None
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="cert-probe")

        self.logger.info(
            f"Refresh scheduler initialized - Domains: {len(self.domains)}, "
            f"Interval: {self.interval}s"
        )

    async def start(self) -> None:
        """Start the periodic refresh loop. The first run happens after one interval."""
        if self._running:
            self.logger.warning("Scheduler is already running")
            return

        self._running = True
        self._task = asyncio.create_task(self._refresh_loop())
        self.logger.info(f"Started certificate refresh - Interval: {self.interval}s")

    async def stop(self) -> None:
        """Stop the periodic refresh loop."""
        self._running = False

        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass

        self._executor.shutdown(wait=False)
        self.logger.info("Refresh scheduler stopped")

    async def refresh_once(self) -> Dict[str, Any]:
        """
        Probe every domain once.

        Returns:
            Refresh summary
        """
        loop = asyncio.get_running_loop()
        start_time = time.time()
        succeeded = 0
        failed = 0

        for domain in self.domains:
            try:
                window = await loop.run_in_executor(self._executor, self.prober.probe, domain)
            except (ProbeError, ParseError) as e:
                failed += 1
                log_probe_error(self.logger, domain, e)
                continue
            except Exception as e:
                failed += 1
                self.logger.exception(
                    f"Unexpected error probing domain {domain}: {e}",
                    extra={"domain": domain, "error_type": type(e).__name__},
                )
                continue

            self.metrics.update_certificate_window(domain, window)
            succeeded += 1
            log_probe_success(self.logger, domain, window.not_before, window.not_after)

        duration = time.time() - start_time
        self.metrics.update_refresh_metrics(duration)
        log_refresh_complete(self.logger, duration, succeeded, failed)

        return {
            "domains": len(self.domains),
            "succeeded": succeeded,
            "failed": failed,
            "duration": duration,
        }

    async def _refresh_loop(self) -> None:
        """Sleep for one interval, refresh, repeat."""
        while self._running:
            try:
                await asyncio.sleep(self.interval)
                await self.refresh_once()
            except asyncio.CancelledError:
                break
            except Exception as e:
                self.logger.exception(f"Error in refresh loop: {e}")
