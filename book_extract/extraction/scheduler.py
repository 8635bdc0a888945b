from __future__ import annotations

import asyncio
import logging
from typing import Callable, Optional, Tuple

from .engine import ExtractionEngine, LogCallback, ProgressCallback
from .models import JobStatus, StoreEvent
from .store import JobStore

logger = logging.getLogger(__name__)

MISSING_INPUT_MESSAGE = "Input document is no longer available; resubmit the file."


class QueueScheduler:
    """
    Drives queued jobs through extraction, one at a time, oldest first.

    Any store change posts a wake-up signal into a single-slot queue, so a
    burst of changes collapses into one re-evaluation. A periodic re-check
    backs the signals up. The scheduler holds no lock over the store, only
    the id of the job it is currently running.
    """

    def __init__(self, store: JobStore, engine: ExtractionEngine, recheck_interval: float = 5.0):
        self.store = store
        self.engine = engine
        self.recheck_interval = recheck_interval
        self._active_job_id: Optional[str] = None
        self._signals: Optional[asyncio.Queue] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._task: Optional[asyncio.Task] = None
        self._unsubscribe: Optional[Callable[[], None]] = None

    @property
    def active_job_id(self) -> Optional[str]:
        return self._active_job_id

    @property
    def is_processing(self) -> bool:
        return self._active_job_id is not None

    # region signalling
    def _on_store_change(self, event: StoreEvent) -> None:
        if self._loop is None or self._loop.is_closed():
            return
        self._loop.call_soon_threadsafe(self._post_signal)

    def _post_signal(self) -> None:
        if self._signals is None:
            return
        try:
            self._signals.put_nowait(None)
        except asyncio.QueueFull:
            pass

    # endregion

    # region lifecycle
    async def start(self) -> None:
        if self._task is not None:
            return
        self._loop = asyncio.get_running_loop()
        self._signals = asyncio.Queue(maxsize=1)
        self._unsubscribe = self.store.subscribe(self._on_store_change)
        self._task = asyncio.create_task(self.run())
        logger.info("Queue scheduler started")

    async def stop(self) -> None:
        if self._unsubscribe:
            self._unsubscribe()
            self._unsubscribe = None
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        self._loop = None
        logger.info("Queue scheduler stopped")

    async def run(self) -> None:
        while True:
            await self.drain()
            try:
                await asyncio.wait_for(self._signals.get(), timeout=self.recheck_interval)
            except asyncio.TimeoutError:
                continue

    # endregion

    async def drain(self) -> int:
        handled = 0
        while await self.run_once():
            handled += 1
        return handled

    async def run_once(self) -> bool:
        """
        Evaluate the queue once. Returns True if a job was taken to a
        terminal state, False if another job is running or nothing is queued.
        """
        if self._active_job_id is not None:
            return False
        job = self.store.next_queued()
        if job is None:
            return False

        job_id = job.id
        self._active_job_id = job_id
        try:
            self.store.set_status(job_id, JobStatus.PROCESSING)
            if job_id not in self.store:
                return False
            if job.input_handle is None:
                logger.warning("Job %s has no input document", job_id)
                self.store.set_status(job_id, JobStatus.ERROR, error=MISSING_INPUT_MESSAGE)
                return True

            logger.info("Extracting job %s (%s)", job_id, job.name)
            on_log, on_progress, close = self._bind_callbacks(job_id, job.progress)
            try:
                book = await self.engine.extract(job.input_handle, on_log, on_progress)
            except Exception as exc:  # noqa: BLE001
                close()
                message = str(exc) or type(exc).__name__
                logger.warning("Job %s failed: %s", job_id, message)
                self.store.append_log(job_id, f"[Error] {message}")
                self.store.set_status(job_id, JobStatus.ERROR, error=message)
                return True
            close()
            self.store.set_status(job_id, JobStatus.COMPLETED, result=book)
            logger.info("Job %s completed", job_id)
            return True
        finally:
            self._active_job_id = None

    def _bind_callbacks(
        self, job_id: str, initial_progress: int
    ) -> Tuple[LogCallback, ProgressCallback, Callable[[], None]]:
        state = {"open": True, "progress": initial_progress}

        def on_log(message: str) -> None:
            if not state["open"]:
                logger.debug("Dropping late log for job %s: %s", job_id, message)
                return
            self.store.append_log(job_id, message)

        def on_progress(value: int) -> None:
            if not state["open"]:
                logger.debug("Dropping late progress for job %s: %s", job_id, value)
                return
            if value < state["progress"]:
                logger.debug("Ignoring progress regression for job %s: %s < %s", job_id, value, state["progress"])
                return
            state["progress"] = value
            self.store.set_progress(job_id, value)

        def close() -> None:
            state["open"] = False

        return on_log, on_progress, close
