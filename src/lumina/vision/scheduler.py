"""
Privacy Detection Scheduler

Serialized, rate-limited queue that finds faces and license plates for every
selected image with privacy blur enabled. One image at a time, with a fixed
pause between requests, and never while the quota circuit breaker is open.
"""

import asyncio
import logging
from enum import Enum
from typing import Awaitable, Callable, List, Optional, Set

from pydantic import BaseModel, Field

from ..workspace import Workspace
from .client import GeminiVisionClient
from .resilience import QuotaCircuitBreaker, QuotaExceededError, ResilientInvoker

logger = logging.getLogger(__name__)


class SchedulerState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"


class DetectionRunReport(BaseModel):
    """Outcome of one scheduler run."""

    processed: List[str] = Field(default_factory=list)  # Image ids with a stored result
    failed: List[str] = Field(default_factory=list)  # Left undetected, retried on next trigger
    quota_exhausted: bool = False
    aborted: bool = False  # Breaker was open before the queue drained
    skipped: bool = False  # Another run was active or nothing to do


class PrivacyDetectionScheduler:
    """
    Runs privacy-region detection for workspace candidates.

    Only one run is active at a time. A trigger during a run is absorbed:
    the active run rescans for new candidates before it finishes.
    """

    def __init__(
        self,
        workspace: Workspace,
        client: GeminiVisionClient,
        invoker: ResilientInvoker,
        breaker: QuotaCircuitBreaker,
        debounce: float = 1.0,
        spacing: float = 4.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        on_status: Optional[Callable[[str], None]] = None,
    ):
        self.workspace = workspace
        self.client = client
        self.invoker = invoker
        self.breaker = breaker
        self.debounce = debounce
        self.spacing = spacing
        self.sleep = sleep
        self.on_status = on_status

        self.state = SchedulerState.IDLE
        self._debounce_task: Optional[asyncio.Task] = None

    def _report_status(self, message: str) -> None:
        logger.info(message)
        if self.on_status:
            self.on_status(message)

    # --- Triggering ---

    def notify_changed(self) -> None:
        """
        Restart the debounce timer after a workspace change.

        Outside a running event loop this does nothing; callers without a
        loop use run() directly. During a run the trigger is absorbed.
        """
        if self.state is SchedulerState.RUNNING:
            return

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return

        if self._debounce_task and not self._debounce_task.done():
            self._debounce_task.cancel()
        self._debounce_task = loop.create_task(self._debounced_run())

    async def _debounced_run(self) -> None:
        await self.sleep(self.debounce)
        await self.run()

    async def wait_idle(self) -> None:
        """Wait for a pending debounced run to finish."""
        while self._debounce_task and not self._debounce_task.done():
            try:
                await self._debounce_task
            except asyncio.CancelledError:
                # Replaced by a newer trigger; loop picks it up
                pass

    # --- Processing ---

    async def run(self) -> DetectionRunReport:
        """
        Detect regions for every current candidate, one at a time.

        Returns:
            DetectionRunReport describing what happened
        """
        report = DetectionRunReport()

        # Check and transition with no await in between
        if self.state is SchedulerState.RUNNING:
            report.skipped = True
            return report
        if self.breaker.is_open():
            report.aborted = True
            return report

        queue = self.workspace.detection_candidates()
        if not queue:
            report.skipped = True
            return report

        self.state = SchedulerState.RUNNING
        attempted: Set[str] = set()
        logger.info(f"Starting privacy detection for {len(queue)} images")

        try:
            while queue:
                for item in queue:
                    attempted.add(item.id)
                    if not await self._process(item.id, report):
                        return report

                # Pick up images that qualified while this run was busy
                queue = [c for c in self.workspace.detection_candidates() if c.id not in attempted]
        finally:
            self.state = SchedulerState.IDLE

        logger.info(
            f"Privacy detection finished: {len(report.processed)} done, {len(report.failed)} failed"
        )
        return report

    async def _process(self, image_id: str, report: DetectionRunReport) -> bool:
        """
        Detect one image.

        Returns:
            False when the whole run must stop
        """
        if self.breaker.is_open():
            logger.info("Circuit breaker open, stopping privacy detection")
            report.aborted = True
            return False

        item = self.workspace.get(image_id)
        if item is None or not item.needs_detection:
            # Removed, toggled off, or already detected since the queue was built
            return True

        try:
            regions = await self.invoker.invoke(
                lambda: self.client.detect_privacy_regions(item.source, item.media_type)
            )
        except QuotaExceededError:
            self.breaker.trip()
            report.quota_exhausted = True
            self._report_status(
                f"AI quota reached. Pausing detection for {self.breaker.remaining()}s..."
            )
            return False
        except Exception as e:
            logger.error(f"Privacy detection failed for {item.name}: {e}")
            report.failed.append(image_id)
            return True

        if self.workspace.set_regions(image_id, regions):
            report.processed.append(image_id)
            logger.info(f"Detected {len(regions)} privacy regions in {item.name}")

        # Rate limiting between requests
        await self.sleep(self.spacing)
        return True
