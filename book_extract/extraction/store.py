from __future__ import annotations

import logging
from copy import deepcopy
from dataclasses import replace
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

from .models import (
    BookData,
    ExtractionJob,
    JobStatus,
    StoreEvent,
    StoreEventKind,
    new_job_id,
    utcnow,
)

logger = logging.getLogger(__name__)

Subscriber = Callable[[StoreEvent], None]


class JobStore:
    """
    Authoritative in-memory collection of extraction jobs.

    Every write goes through the mutation methods below. Mutations that
    target an unknown id are silent no-ops, so late callbacks from an
    in-flight extraction never fail after the user deleted its job.
    Subscribers are notified synchronously after each effective mutation.
    Reads hand out copies; the input handle itself is shared, not copied.
    """

    def __init__(self):
        self._jobs: Dict[str, ExtractionJob] = {}
        self._subscribers: List[Subscriber] = []

    def _clone(self, job: ExtractionJob) -> ExtractionJob:
        return replace(job, logs=list(job.logs), result=deepcopy(job.result))

    # region subscriptions
    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def _notify(self, kind: StoreEventKind, job_id: Optional[str] = None) -> None:
        event = StoreEvent(kind=kind, job_id=job_id)
        for callback in list(self._subscribers):
            try:
                callback(event)
            except Exception:  # noqa: BLE001
                logger.exception("Store subscriber %r failed on %s", callback, kind.value)

    # endregion

    # region reads
    def get_job(self, job_id: str) -> Optional[ExtractionJob]:
        job = self._jobs.get(job_id)
        return self._clone(job) if job else None

    def list_jobs(self) -> List[ExtractionJob]:
        return [self._clone(job) for job in self._jobs.values()]

    def terminal_jobs(self) -> List[ExtractionJob]:
        return [self._clone(job) for job in self._jobs.values() if job.status.is_terminal]

    def next_queued(self) -> Optional[ExtractionJob]:
        # Insertion order is creation order.
        for job in self._jobs.values():
            if job.status == JobStatus.QUEUED:
                return self._clone(job)
        return None

    def queued_count(self) -> int:
        return sum(1 for job in self._jobs.values() if job.status == JobStatus.QUEUED)

    def __len__(self) -> int:
        return len(self._jobs)

    def __contains__(self, job_id: object) -> bool:
        return job_id in self._jobs

    # endregion

    # region mutations
    def add_jobs(self, inputs: Iterable[Tuple[str, Any]]) -> List[ExtractionJob]:
        created: List[ExtractionJob] = []
        for name, input_handle in inputs:
            job = ExtractionJob(
                id=new_job_id(),
                name=name,
                status=JobStatus.QUEUED,
                input_handle=input_handle,
                created_at=utcnow(),
            )
            self._jobs[job.id] = job
            created.append(self._clone(job))
        if created:
            logger.info("Queued %d job(s)", len(created))
            self._notify(StoreEventKind.ADDED)
        return created

    def restore(self, jobs: Iterable[ExtractionJob]) -> int:
        admitted = 0
        for job in jobs:
            if job.id in self._jobs:
                continue
            self._jobs[job.id] = self._clone(job)
            admitted += 1
        if admitted:
            self._notify(StoreEventKind.RESTORED)
        return admitted

    def set_status(
        self,
        job_id: str,
        status: JobStatus,
        result: Optional[BookData] = None,
        error: Optional[str] = None,
    ) -> None:
        job = self._jobs.get(job_id)
        if not job:
            return
        job.status = status
        if status == JobStatus.COMPLETED:
            job.progress = 100
            if result is not None:
                job.result = result
            job.error = None
        elif status == JobStatus.ERROR:
            if error:
                job.error = error
            job.result = None
        else:
            job.result = None
            job.error = None
        if status.is_terminal:
            job.input_handle = None
        self._notify(StoreEventKind.STATUS, job_id)

    def set_progress(self, job_id: str, value: int) -> None:
        job = self._jobs.get(job_id)
        if not job:
            return
        job.progress = value
        self._notify(StoreEventKind.PROGRESS, job_id)

    def append_log(self, job_id: str, message: str) -> None:
        job = self._jobs.get(job_id)
        if not job:
            return
        job.logs.append(message)
        self._notify(StoreEventKind.LOG, job_id)

    def remove_job(self, job_id: str) -> None:
        if self._jobs.pop(job_id, None) is None:
            return
        self._notify(StoreEventKind.REMOVED, job_id)

    def clear_all(self) -> None:
        self._jobs.clear()
        self._notify(StoreEventKind.CLEARED)

    # endregion
