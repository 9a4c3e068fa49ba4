"""Background processor.

This module provides the BackgroundProcessor which polls the store for runs queued
with status ``running`` and drives them through the execution engine with bounded
concurrency.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import TYPE_CHECKING

from litestar_stepflow.core.types import ErrorTag, RunStatus
from litestar_stepflow.exceptions import RunAlreadyActiveError, RunAlreadyFinalizedError

if TYPE_CHECKING:
    from litestar_stepflow.config import StepflowSettings
    from litestar_stepflow.core.models import RunRecord
    from litestar_stepflow.core.protocols import RunStore
    from litestar_stepflow.engine.executor import ExecutionEngine

__all__ = ["BackgroundProcessor", "ProcessorStatus"]

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProcessorStatus:
    """Snapshot of the processor's state.

    Attributes:
        is_processing: Whether the poll loop is started.
        poll_interval: Seconds between polls.
    """

    is_processing: bool
    poll_interval: float


class BackgroundProcessor:
    """Polls for running runs and executes them in sequential batches.

    Each poll picks up at most ``page_size`` runs. They are split into batches of
    ``concurrency`` runs; the runs of one batch execute concurrently and batches run
    one after another. Runs the engine is already executing are skipped, so polling
    again while a run is in flight never executes it twice in this process.

    Args:
        engine: The execution engine.
        store: The run store to poll.
        poll_interval: Seconds between polls.
        page_size: Maximum runs picked up per poll.
        concurrency: Runs executed concurrently per batch.
    """

    def __init__(
        self,
        engine: ExecutionEngine,
        store: RunStore,
        poll_interval: float = 5.0,
        page_size: int = 10,
        concurrency: int = 3,
    ) -> None:
        self.engine = engine
        self.store = store
        self.poll_interval = poll_interval
        self.page_size = page_size
        self.concurrency = max(1, concurrency)
        self._task: asyncio.Task[None] | None = None
        self._processing = False

    @classmethod
    def from_settings(cls, engine: ExecutionEngine, store: RunStore, settings: StepflowSettings) -> BackgroundProcessor:
        """Build a processor from the ``poll_*`` and ``processor_*`` settings."""
        return cls(
            engine,
            store,
            poll_interval=settings.poll_interval_seconds,
            page_size=settings.poll_page_size,
            concurrency=settings.processor_concurrency,
        )

    @property
    def is_processing(self) -> bool:
        """Whether the poll loop is started."""
        return self._processing

    def status(self) -> ProcessorStatus:
        """Return the processor status."""
        return ProcessorStatus(is_processing=self._processing, poll_interval=self.poll_interval)

    async def start(self) -> None:
        """Start polling in a background task; a no-op if already started."""
        if self._processing:
            logger.warning("Background processor is already running")
            return

        self._processing = True
        logger.info("Starting background processor", extra={"poll_interval": self.poll_interval})
        self._task = asyncio.create_task(self._poll_loop())

    async def stop(self) -> None:
        """Stop polling and wait for the loop to exit; a no-op if not started."""
        if not self._processing:
            logger.warning("Background processor is not running")
            return

        self._processing = False
        if self._task is not None:
            self._task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._task
            self._task = None
        logger.info("Background processor stopped")

    async def process_now(self) -> int:
        """Process one page of running runs immediately.

        Returns:
            The number of runs handed to the engine.
        """
        logger.info("Manually triggering run processing")
        return await self._process_pending()

    async def _poll_loop(self) -> None:
        while self._processing:
            try:
                await self._process_pending()
            except Exception:
                logger.exception("Error processing pending runs")
            await asyncio.sleep(self.poll_interval)

    async def _process_pending(self) -> int:
        runs = await self.store.list_runs(status=RunStatus.RUNNING, limit=self.page_size)
        pending = [run for run in runs if not self.engine.is_active(run.id)]
        if not pending:
            return 0

        logger.info("Found pending runs", extra={"count": len(pending)})
        for batch in self._batches(pending):
            await asyncio.gather(*(self._process_run(run) for run in batch))
        return len(pending)

    def _batches(self, runs: list[RunRecord]) -> list[list[RunRecord]]:
        return [runs[i : i + self.concurrency] for i in range(0, len(runs), self.concurrency)]

    async def _process_run(self, run: RunRecord) -> None:
        logger.info("Processing run", extra={"run_id": run.id})
        try:
            outcome = await self.engine.execute_run(run.id)
        except RunAlreadyFinalizedError:
            logger.info("Run already finalized", extra={"run_id": run.id})
        except RunAlreadyActiveError:
            logger.info("Run already executing", extra={"run_id": run.id})
        except Exception as e:
            logger.exception("Run processing failed", extra={"run_id": run.id})
            await self._force_fail(run.id, e)
        else:
            logger.info("Run processing completed", extra={"run_id": run.id, "status": str(outcome.status)})

    async def _force_fail(self, run_id: str, error: Exception) -> None:
        try:
            current = await self.store.get_run(run_id)
            if current is None or current.status.is_terminal:
                return
            await self.store.update_run(
                run_id,
                RunStatus.FAILED,
                finished_at=datetime.now(timezone.utc),
                failure_reason=str(error),
                last_error={"message": str(error), "tag": ErrorTag.EXECUTION_FAILED.value},
            )
        except Exception:
            logger.exception("Failed to update run status", extra={"run_id": run_id})
