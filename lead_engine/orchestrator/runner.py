"""Background scheduling of job ticks, one worker loop per job."""
from __future__ import annotations

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Callable, Optional

from ..errors import JobNotFound
from ..models import Job
from .service import JobEngine

LOGGER = logging.getLogger(__name__)

ProgressCallback = Callable[[Job], None]


class JobTask:
    """Handle on a job being driven in the background."""

    def __init__(self, engine: JobEngine, job_id: str, future: Future[Job], cancel_event: threading.Event) -> None:
        self._engine = engine
        self._job_id = job_id
        self._future = future
        self._cancel_event = cancel_event

    @property
    def job_id(self) -> str:
        return self._job_id

    def cancel(self) -> None:
        """Ask the loop to stop; an in-flight tick finishes before the job is cancelled.

        Cancelling a task whose job already finished, or whose job has since
        left the history, does nothing.
        """

        self._cancel_event.set()
        if self._future.done():
            return
        try:
            self._engine.cancel_job(self._job_id)
        except JobNotFound:
            LOGGER.debug("Job %s is no longer in history; nothing to cancel", self._job_id)

    def done(self) -> bool:
        return self._future.done()

    def result(self, timeout: Optional[float] = None) -> Job:
        return self._future.result(timeout=timeout)


class JobRunner:
    """Calls :meth:`JobEngine.tick` on a fixed cadence until each job is terminal."""

    def __init__(
        self,
        engine: JobEngine,
        *,
        tick_interval: Optional[float] = None,
        max_workers: Optional[int] = None,
    ) -> None:
        self._engine = engine
        self._tick_interval = engine.settings.tick_interval_seconds if tick_interval is None else tick_interval
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="lead-job")
        self._lock = threading.Lock()

    @property
    def tick_interval(self) -> float:
        return self._tick_interval

    def submit(self, job_id: str, progress_callback: Optional[ProgressCallback] = None) -> JobTask:
        """Drive ``job_id`` on a worker thread."""

        cancel_event = threading.Event()
        future = self._executor.submit(self._drive, job_id, cancel_event, progress_callback)
        return JobTask(self._engine, job_id, future, cancel_event)

    def run_to_completion(
        self,
        job_id: str,
        progress_callback: Optional[ProgressCallback] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> Job:
        """Drive ``job_id`` on the calling thread and return the terminal job."""

        return self._drive(job_id, cancel_event or threading.Event(), progress_callback)

    def shutdown(self, wait: bool = True) -> None:
        with self._lock:
            self._executor.shutdown(wait=wait, cancel_futures=True)

    def _drive(
        self,
        job_id: str,
        cancel_event: threading.Event,
        progress_callback: Optional[ProgressCallback],
    ) -> Job:
        job = self._engine.require_job(job_id)
        try:
            while not job.is_terminal:
                if cancel_event.is_set():
                    self._engine.cancel_job(job_id)
                    job = self._engine.require_job(job_id)
                    break
                job = self._engine.tick(job_id)
                if progress_callback:
                    progress_callback(job)
                if job.is_terminal:
                    break
                if self._tick_interval > 0:
                    cancel_event.wait(self._tick_interval)
        except JobNotFound:
            # Deleted or evicted while the loop was running; keep the last snapshot.
            LOGGER.info("Job %s left history while running; stopping its worker", job_id)
            return job
        LOGGER.debug("Worker for job %s finished with status %s", job_id, job.status.value)
        return job


__all__ = ["JobRunner", "JobTask"]
