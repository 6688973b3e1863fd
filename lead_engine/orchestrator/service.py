"""Job engine that owns the lifecycle of simulated lead-acquisition jobs."""
from __future__ import annotations

import logging
import math
import random
import threading
from collections import deque
from datetime import datetime
from typing import Callable, Deque, Dict, List, Optional, Protocol, Sequence

from ..config import EngineSettings
from ..errors import GenerationFailure, JobNotFound, RateLimitExceeded, ValidationError
from ..generator import RecordGenerator
from ..lists import ListAggregator
from ..models import (
    ActivityEvent,
    Job,
    JobStatus,
    LeadList,
    LeadRecord,
    QueryPage,
    RecordFilter,
    SortDirection,
    SortKey,
    new_id,
    utc_now,
)
from ..query import ResultQuery, apply_query
from ..rate_limit import SlidingWindowRateLimiter
from ..storage import EngineStore

LOGGER = logging.getLogger(__name__)

ActivityCallback = Callable[[Job, ActivityEvent], None]


class GeneratorProtocol(Protocol):
    """Interface that record generators must follow."""

    def generate_batch(
        self, start: int, count: int, location: str, keyword: str
    ) -> List[LeadRecord]:  # pragma: no cover - runtime protocol
        """Return ``count`` records for indexes ``start .. start + count - 1``."""


class JobEngine:
    """Runs the pending -> running -> completed/cancelled/failed state machine.

    The engine never schedules itself: a caller (see :class:`JobRunner`) calls
    :meth:`tick` at whatever cadence it likes. All mutation happens under a
    single re-entrant lock, so ticks, cancellation and list updates from
    different threads never interleave.
    """

    def __init__(
        self,
        store: EngineStore,
        *,
        settings: Optional[EngineSettings] = None,
        generator: Optional[GeneratorProtocol] = None,
        rate_limiter: Optional[SlidingWindowRateLimiter] = None,
        lists: Optional[ListAggregator] = None,
        rng: Optional[random.Random] = None,
        clock: Callable[[], datetime] = utc_now,
        on_activity: Optional[ActivityCallback] = None,
        raise_on_error: bool = False,
    ) -> None:
        self._settings = settings or EngineSettings()
        self._store = store
        self._clock = clock
        self._rng = rng or random.Random(self._settings.seed)
        self._generator = generator or RecordGenerator(
            self._rng, email_probability=self._settings.email_probability
        )
        self._rate_limiter = rate_limiter or SlidingWindowRateLimiter(
            window_hours=self._settings.rate_limit_window_hours,
            max_per_window=self._settings.rate_limit_max_starts,
            history=store.load_start_times(),
        )
        self._lists = lists or ListAggregator(store, clock=clock)
        self._on_activity = on_activity
        self._raise_on_error = raise_on_error
        self._lock = threading.RLock()
        self._active: Dict[str, Job] = {}
        self._feeds: Dict[str, Deque[ActivityEvent]] = {}

    @property
    def settings(self) -> EngineSettings:
        return self._settings

    @property
    def lists(self) -> ListAggregator:
        return self._lists

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    def start_job(
        self,
        location: str,
        keyword: str,
        target_count: int,
        list_name: Optional[str] = None,
    ) -> Job:
        """Validate, check the start quota and begin a new job."""

        location, keyword, list_name = self._validate_request(location, keyword, target_count, list_name)

        with self._lock:
            now = self._clock()
            decision = self._rate_limiter.check(now)
            if not decision.allowed:
                LOGGER.warning("Rejected job for %r/%r: start quota exhausted", location, keyword)
                raise RateLimitExceeded(
                    decision.remaining, self._rate_limiter.max_per_window, decision.retry_after
                )

            job = Job(
                id=new_id("job"),
                location=location,
                keyword=keyword,
                target_count=target_count,
                list_name=list_name,
                created_at=now,
            )
            self._active[job.id] = job
            self._feeds[job.id] = deque(maxlen=self._settings.activity_feed_size)
            self._begin(job, now)
            return job.snapshot()

    def tick(self, job_id: str) -> Job:
        """Advance a running job by one step and return a snapshot of it."""

        with self._lock:
            job = self._active.get(job_id)
            if job is None:
                return self._require_stored(job_id)

            now = self._clock()
            if job.status is JobStatus.PENDING:
                self._begin(job, now)

            if self._exceeded_duration(job, now):
                self._fail(job, f"Job exceeded the maximum duration of {self._settings.max_job_duration_seconds:g}s")
                return job.snapshot()

            step = self._rng.uniform(self._settings.min_progress_step, self._settings.max_progress_step)
            progress = min(job.progress + step, 100.0)
            desired = min(math.floor(progress / 100.0 * job.target_count), job.target_count)
            delta = desired - len(job.results)

            new_records: List[LeadRecord] = []
            if delta > 0:
                try:
                    new_records = self._generator.generate_batch(
                        len(job.results), delta, job.location, job.keyword
                    )
                except Exception as exc:
                    LOGGER.exception("Record generation failed for job %s", job.id)
                    failure = GenerationFailure(job.id, str(exc))
                    self._fail(job, str(failure))
                    if self._raise_on_error:
                        raise failure from exc
                    return job.snapshot()

            job.progress = progress
            job.ticks += 1
            if new_records:
                job.append_records(new_records)
                self._emit_activity(job, new_records, now)

            LOGGER.debug(
                "Job %s tick %s: progress %.1f%%, %s/%s records",
                job.id,
                job.ticks,
                job.progress,
                job.found_count,
                job.target_count,
            )
            if job.progress >= 100.0:
                self._complete(job, now)
            return job.snapshot()

    def cancel_job(self, job_id: str) -> None:
        """Stop a running job, keeping a ``cancelled`` record of what it produced."""

        with self._lock:
            job = self._active.get(job_id)
            if job is None:
                stored = self._require_stored(job_id)
                LOGGER.debug("Job %s is already %s; nothing to cancel", job_id, stored.status.value)
                return
            job.status = JobStatus.CANCELLED
            self._finish(job)
            LOGGER.info("Cancelled job %s at %.1f%% with %s records", job.id, job.progress, job.found_count)

    # ------------------------------------------------------------------
    # History
    # ------------------------------------------------------------------
    def get_job(self, job_id: str) -> Optional[Job]:
        with self._lock:
            job = self._active.get(job_id)
            if job is not None:
                return job.snapshot()
        return self._store.get_job(job_id)

    def require_job(self, job_id: str) -> Job:
        job = self.get_job(job_id)
        if job is None:
            raise JobNotFound(job_id)
        return job

    def list_job_history(self, limit: Optional[int] = None) -> List[Job]:
        """Finished jobs, most recent first. Evicted jobs are simply absent."""

        return self._store.list_jobs(limit)

    def active_jobs(self) -> List[Job]:
        with self._lock:
            return [job.snapshot() for job in self._active.values()]

    def delete_job(self, job_id: str) -> None:
        with self._lock:
            if job_id in self._active:
                self.cancel_job(job_id)
            if not self._store.delete_job(job_id):
                raise JobNotFound(job_id)
            self._feeds.pop(job_id, None)
            self._lists.detach_job(job_id)
            LOGGER.info("Deleted job %s", job_id)

    def estimated_seconds_remaining(self, job_id: str, tick_interval: Optional[float] = None) -> int:
        """Seconds left for a job at the configured cadence and mean progress step."""

        job = self.require_job(job_id)
        interval = self._settings.tick_interval_seconds if tick_interval is None else tick_interval
        return job.estimated_seconds_remaining(interval, self._settings.mean_progress_step)

    def activity_feed(self, job_id: str) -> List[ActivityEvent]:
        """Most recent activity events for a job, newest first."""

        with self._lock:
            return list(self._feeds.get(job_id, ()))

    # ------------------------------------------------------------------
    # Results
    # ------------------------------------------------------------------
    def query_results(
        self,
        job_id: str,
        search: Optional[str] = None,
        record_filter: RecordFilter = RecordFilter.ALL,
        sort_key: SortKey = SortKey.NAME,
        direction: SortDirection = SortDirection.ASC,
        page: int = 1,
        page_size: Optional[int] = None,
    ) -> QueryPage:
        job = self.require_job(job_id)
        query = ResultQuery(
            search=search,
            record_filter=record_filter,
            sort_key=sort_key,
            direction=direction,
            page=page,
            page_size=page_size or self._settings.page_size,
        )
        return apply_query(job.results, query)

    # ------------------------------------------------------------------
    # Lists
    # ------------------------------------------------------------------
    def attach_to_list(self, list_name: str, job_id: str) -> LeadList:
        list_name = self._validate_list_name(list_name)
        with self._lock:
            job = self.require_job(job_id)
            if job.status is not JobStatus.COMPLETED:
                raise ValidationError(
                    f"Only completed jobs can be added to a list (job {job_id} is {job.status.value})",
                    field="job_id",
                )
            return self._lists.attach(list_name, job)

    def get_list(self, list_name: str) -> Optional[LeadList]:
        return self._lists.get(list_name)

    def list_all_lists(self) -> List[LeadList]:
        return self._lists.all()

    def delete_list(self, list_name: str) -> None:
        self._lists.delete(list_name)

    def list_records(self, list_name: str) -> List[LeadRecord]:
        return self._lists.resolve_records(list_name)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------
    def _begin(self, job: Job, now: datetime) -> None:
        job.status = JobStatus.RUNNING
        job.started_at = now
        self._rate_limiter.record(now)
        self._store.save_start_times(self._rate_limiter.prune(now))
        LOGGER.info(
            "Started job %s: %r in %r, target %s records",
            job.id,
            job.keyword,
            job.location,
            job.target_count,
        )

    def _complete(self, job: Job, now: datetime) -> None:
        job.status = JobStatus.COMPLETED
        job.progress = 100.0
        job.completed_at = now
        self._finish(job)
        LOGGER.info(
            "Completed job %s after %s ticks: %s records, %s with email, avg rating %.1f",
            job.id,
            job.ticks,
            job.found_count,
            job.aggregates.with_email,
            job.aggregates.avg_rating,
        )
        if job.list_name:
            self._lists.attach(job.list_name, job)

    def _fail(self, job: Job, reason: str) -> None:
        job.status = JobStatus.FAILED
        job.error = reason
        self._finish(job)
        LOGGER.error("Job %s failed with %s records kept: %s", job.id, job.found_count, reason)

    def _finish(self, job: Job) -> None:
        self._active.pop(job.id, None)
        self._store.save_job(job)
        # Feeds of jobs evicted from history go with them.
        for job_id in list(self._feeds):
            if job_id not in self._active and self._store.get_job(job_id) is None:
                del self._feeds[job_id]

    def _emit_activity(self, job: Job, records: Sequence[LeadRecord], now: datetime) -> None:
        feed = self._feeds.setdefault(job.id, deque(maxlen=self._settings.activity_feed_size))
        for record in records[-self._settings.activity_batch_limit :]:
            event = ActivityEvent.for_record(record, now)
            feed.appendleft(event)
            if self._on_activity:
                self._on_activity(job, event)

    def _exceeded_duration(self, job: Job, now: datetime) -> bool:
        if job.started_at is None:
            return False
        return (now - job.started_at).total_seconds() > self._settings.max_job_duration_seconds

    def _require_stored(self, job_id: str) -> Job:
        stored = self._store.get_job(job_id)
        if stored is None:
            raise JobNotFound(job_id)
        return stored

    def _validate_request(
        self,
        location: str,
        keyword: str,
        target_count: int,
        list_name: Optional[str],
    ) -> tuple[str, str, Optional[str]]:
        settings = self._settings
        location = (location or "").strip()
        keyword = (keyword or "").strip()
        if not location:
            raise ValidationError("Location is required", field="location")
        if len(location) > settings.max_location_length:
            raise ValidationError(
                f"Location must be less than {settings.max_location_length} characters", field="location"
            )
        if not keyword:
            raise ValidationError("Please enter a search keyword", field="keyword")
        if len(keyword) > settings.max_keyword_length:
            raise ValidationError(
                f"Keyword must be less than {settings.max_keyword_length} characters", field="keyword"
            )
        if isinstance(target_count, bool) or not isinstance(target_count, int):
            raise ValidationError("Target count must be an integer", field="target_count")
        if not settings.min_target_count <= target_count <= settings.max_target_count:
            raise ValidationError(
                f"Target count must be between {settings.min_target_count} and {settings.max_target_count}",
                field="target_count",
            )
        if list_name is not None:
            list_name = self._validate_list_name(list_name)
        return location, keyword, list_name

    def _validate_list_name(self, list_name: str) -> str:
        name = (list_name or "").strip()
        if not name:
            raise ValidationError("Lead list name is required", field="list_name")
        if len(name) > self._settings.max_list_name_length:
            raise ValidationError(
                f"List name must be less than {self._settings.max_list_name_length} characters",
                field="list_name",
            )
        return name
