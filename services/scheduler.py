"""Scrape-triggered and periodic refresh triggers."""

from __future__ import annotations

import logging
import time
from concurrent.futures import Future, ThreadPoolExecutor
from threading import Event
from typing import Callable, List, Optional

from services.coordinator import RefreshCoordinator, RefreshResult

logger = logging.getLogger(__name__)


class RefreshScheduler:
    """Runs refreshes for every location, paced to respect upstream limits.

    ``refresh_all`` backs the scrape path and refreshes everything; the
    background loop wakes every ``interval`` seconds and refreshes only
    locations whose cache has expired.
    """

    def __init__(
        self,
        coordinator: RefreshCoordinator,
        interval: float = 60.0,
        pacing_delay: float = 0.1,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.coordinator = coordinator
        self.interval = interval
        self.pacing_delay = pacing_delay
        self._sleep = sleep
        self._stop = Event()
        self.executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="weather-refresh")
        self._loop: Optional[Future[None]] = None

    def refresh_all(self) -> List[RefreshResult]:
        results: List[RefreshResult] = []
        for index, name in enumerate(self.coordinator.names):
            if index and self.pacing_delay:
                self._sleep(self.pacing_delay)
            result = self.coordinator.refresh(name)
            if not result.success:
                logger.error(
                    "Failed to update metrics: %s",
                    result.detail,
                    extra={"location": name, "outcome": result.failure.value if result.failure else None},
                )
            results.append(result)
        return results

    def sweep(self) -> List[RefreshResult]:
        """Refresh expired locations once; returns results for those refreshed."""
        results: List[RefreshResult] = []
        for name in self.coordinator.names:
            if self._stop.is_set():
                break
            if not self.coordinator.is_expired(name):
                logger.debug("Cache still valid, skipping update", extra={"location": name})
                continue

            if results and self.pacing_delay:
                self._stop.wait(self.pacing_delay)
            logger.info("Cache expired, fetching new forecast", extra={"location": name})
            result = self.coordinator.refresh(name)
            if not result.success:
                logger.error(
                    "Failed to update metrics in background: %s",
                    result.detail,
                    extra={"location": name, "outcome": result.failure.value if result.failure else None},
                )
            results.append(result)
        return results

    def start(self) -> None:
        if self._loop is not None:
            return
        self._stop.clear()
        self._loop = self.executor.submit(self._run)

    def shutdown(self) -> None:
        """Stop the background loop without waiting for in-flight requests."""
        self._stop.set()
        self.executor.shutdown(wait=False, cancel_futures=True)

    @property
    def running(self) -> bool:
        return self._loop is not None and not self._loop.done()

    def _run(self) -> None:
        while not self._stop.wait(self.interval):
            try:
                self.sweep()
            except Exception:  # pragma: no cover - keep the loop alive
                logger.exception("Background refresh sweep failed")
