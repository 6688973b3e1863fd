"""Lifecycle tests for :class:`lead_engine.orchestrator.JobEngine`."""
from __future__ import annotations

from typing import List

import pytest

from lead_engine.config import EngineSettings
from lead_engine.errors import GenerationFailure, JobNotFound, RateLimitExceeded, ValidationError
from lead_engine.generator import RecordGenerator
from lead_engine.models import ActivityEvent, Job, JobAggregates, JobStatus, LeadRecord, RecordFilter, SortKey
from lead_engine.orchestrator import JobEngine
from lead_engine.storage import MemoryStore


class FlakyGenerator:
    """Generator that fails on the call number given by ``fail_on``."""

    def __init__(self, fail_on: int) -> None:
        self._inner = RecordGenerator()
        self._fail_on = fail_on
        self.calls = 0

    def generate_batch(self, start: int, count: int, location: str, keyword: str) -> List[LeadRecord]:
        self.calls += 1
        if self.calls == self._fail_on:
            raise RuntimeError("upstream source unavailable")
        return self._inner.generate_batch(start, count, location, keyword)


def test_start_job_begins_running(engine: JobEngine, clock) -> None:
    job = engine.start_job("  New York, NY ", " restaurants ", 500, "NYC Restaurants")

    assert job.status is JobStatus.RUNNING
    assert job.progress == 0
    assert job.results == []
    assert job.location == "New York, NY"
    assert job.keyword == "restaurants"
    assert job.created_at == clock.now
    assert job.started_at == clock.now
    assert job.completed_at is None
    assert engine.list_job_history() == []
    assert [active.id for active in engine.active_jobs()] == [job.id]


def test_job_completes_with_exact_target_count(engine: JobEngine, drive, clock) -> None:
    job = engine.start_job("New York, NY", "restaurants", 500)

    finished = drive(engine, job.id)

    assert finished.status is JobStatus.COMPLETED
    assert finished.progress == 100
    assert len(finished.results) == 500
    assert finished.found_count == 500
    assert finished.completed_at == clock.now
    assert engine.list_job_history()[0].id == job.id
    assert engine.active_jobs() == []


def test_progress_and_results_are_monotonic_and_aggregates_never_drift(engine: JobEngine) -> None:
    job = engine.start_job("Austin, TX", "bbq", 730)
    previous = job

    while not job.is_terminal:
        job = engine.tick(job.id)

        assert 0 <= job.progress <= 100
        assert job.progress >= previous.progress
        assert len(job.results) >= len(previous.results)
        assert len(job.results) <= job.target_count
        # earlier records are never rewritten
        assert [record.id for record in job.results[: len(previous.results)]] == [
            record.id for record in previous.results
        ]
        assert job.aggregates == JobAggregates.from_records(job.results)
        previous = job

    assert job.found_count == 730


def test_progress_step_is_bounded(engine: JobEngine) -> None:
    job = engine.start_job("Austin, TX", "bbq", 100)

    ticked = engine.tick(job.id)

    assert 5 <= ticked.progress <= 15
    assert ticked.ticks == 1
    assert len(ticked.results) == int(ticked.progress / 100 * 100)


@pytest.mark.parametrize(
    "location, keyword, target_count, list_name, field",
    [
        ("", "pizza", 100, None, "location"),
        ("   ", "pizza", 100, None, "location"),
        ("x" * 101, "pizza", 100, None, "location"),
        ("Boston, MA", "", 100, None, "keyword"),
        ("Boston, MA", "k" * 51, 100, None, "keyword"),
        ("Boston, MA", "pizza", 5, None, "target_count"),
        ("Boston, MA", "pizza", 10001, None, "target_count"),
        ("Boston, MA", "pizza", 100.5, None, "target_count"),
        ("Boston, MA", "pizza", 100, "  ", "list_name"),
        ("Boston, MA", "pizza", 100, "n" * 51, "list_name"),
    ],
)
def test_invalid_requests_never_create_jobs(
    make_engine, location, keyword, target_count, list_name, field
) -> None:
    engine = make_engine(rate_limit_max_starts=1)

    with pytest.raises(ValidationError) as excinfo:
        engine.start_job(location, keyword, target_count, list_name)

    assert excinfo.value.field == field
    assert engine.active_jobs() == []
    assert engine.list_job_history() == []
    # the rejected attempt did not consume the single allowed start
    assert engine.start_job("Boston, MA", "pizza", 100).status is JobStatus.RUNNING


def test_rate_limit_rejects_sixth_start_within_the_hour(make_engine, clock) -> None:
    engine = make_engine(rate_limit_max_starts=5)
    for index in range(5):
        engine.start_job("Denver, CO", f"keyword {index}", 50)
        clock.advance(minutes=1)

    with pytest.raises(RateLimitExceeded) as excinfo:
        engine.start_job("Denver, CO", "one too many", 50)

    assert excinfo.value.remaining == 0
    assert excinfo.value.max_per_window == 5
    assert "0 more jobs" in str(excinfo.value)
    assert len(engine.active_jobs()) == 5

    clock.advance(minutes=56)
    assert engine.start_job("Denver, CO", "next hour", 50).status is JobStatus.RUNNING


def test_rate_limit_history_is_shared_through_the_store(make_engine, store, clock) -> None:
    first = make_engine(rate_limit_max_starts=2)
    first.start_job("Denver, CO", "one", 50)
    first.start_job("Denver, CO", "two", 50)

    second = make_engine(rate_limit_max_starts=2)

    assert len(store.load_start_times()) == 2
    with pytest.raises(RateLimitExceeded):
        second.start_job("Denver, CO", "three", 50)


def test_cancel_keeps_a_cancelled_record(engine: JobEngine) -> None:
    job = engine.start_job("Chicago, IL", "bakeries", 200, "Chicago")
    ticked = engine.tick(job.id)

    engine.cancel_job(job.id)

    cancelled = engine.get_job(job.id)
    assert cancelled is not None
    assert cancelled.status is JobStatus.CANCELLED
    assert cancelled.completed_at is None
    assert [record.id for record in cancelled.results] == [record.id for record in ticked.results]
    assert engine.get_list("Chicago") is None

    # further ticks are no-ops on a terminal job
    after = engine.tick(job.id)
    assert after.status is JobStatus.CANCELLED
    assert after.ticks == ticked.ticks

    # cancelling twice is harmless
    engine.cancel_job(job.id)


def test_unknown_job_ids_raise_job_not_found(engine: JobEngine) -> None:
    with pytest.raises(JobNotFound):
        engine.tick("job_missing")
    with pytest.raises(JobNotFound):
        engine.cancel_job("job_missing")
    with pytest.raises(JobNotFound):
        engine.delete_job("job_missing")
    with pytest.raises(JobNotFound):
        engine.query_results("job_missing")
    assert engine.get_job("job_missing") is None


def test_job_exceeding_max_duration_fails_with_partial_results(make_engine, clock) -> None:
    engine = make_engine(max_job_duration_seconds=5)
    job = engine.start_job("Miami, FL", "gyms", 100)
    ticked = engine.tick(job.id)

    clock.advance(seconds=6)
    failed = engine.tick(job.id)

    assert failed.status is JobStatus.FAILED
    assert "maximum duration" in failed.error
    assert failed.results == ticked.results
    assert failed.completed_at is None


def test_generation_failure_marks_job_failed_and_keeps_records(store, clock) -> None:
    engine = JobEngine(store, settings=EngineSettings(seed=3), generator=FlakyGenerator(fail_on=2), clock=clock)
    job = engine.start_job("Portland, OR", "coffee", 300, "Portland")
    first = engine.tick(job.id)

    failed = engine.tick(job.id)

    assert failed.status is JobStatus.FAILED
    assert "upstream source unavailable" in failed.error
    assert failed.results == first.results
    assert failed.progress == first.progress
    assert engine.get_list("Portland") is None
    assert engine.list_job_history()[0].status is JobStatus.FAILED


def test_generation_failure_can_be_raised(store, clock) -> None:
    engine = JobEngine(
        store,
        settings=EngineSettings(seed=3),
        generator=FlakyGenerator(fail_on=1),
        clock=clock,
        raise_on_error=True,
    )
    job = engine.start_job("Portland, OR", "coffee", 300)

    with pytest.raises(GenerationFailure) as excinfo:
        engine.tick(job.id)

    assert excinfo.value.job_id == job.id
    assert engine.require_job(job.id).status is JobStatus.FAILED


def test_activity_feed_is_bounded_and_newest_first(store, clock) -> None:
    events: list[tuple[str, ActivityEvent]] = []
    engine = JobEngine(
        store,
        settings=EngineSettings(seed=11),
        clock=clock,
        on_activity=lambda job, event: events.append((job.id, event)),
    )
    job = engine.start_job("Seattle, WA", "florists", 500)

    first = engine.tick(job.id)

    assert len(events) == 3
    assert [event.record_id for _, event in events] == [record.id for record in first.results[-3:]]
    feed = engine.activity_feed(job.id)
    assert [event.record_id for event in feed] == [record.id for record in reversed(first.results[-3:])]

    engine.tick(job.id)
    feed = engine.activity_feed(job.id)
    assert len(feed) == 5
    assert all(isinstance(event, ActivityEvent) for event in feed)
    assert feed[0].record_id == engine.require_job(job.id).results[-1].id
    assert feed[0].has_email == bool(engine.require_job(job.id).results[-1].email)


def test_history_is_bounded_and_eviction_is_not_an_error(clock, drive) -> None:
    engine = JobEngine(MemoryStore(history_limit=3), settings=EngineSettings(seed=5, history_limit=3), clock=clock)
    job_ids = []
    for index in range(4):
        job = engine.start_job("Reno, NV", f"shops {index}", 10)
        drive(engine, job.id)
        job_ids.append(job.id)

    history = engine.list_job_history()

    assert [job.id for job in history] == list(reversed(job_ids[1:]))
    assert [job.id for job in engine.list_job_history(2)] == list(reversed(job_ids[2:]))
    assert engine.get_job(job_ids[0]) is None
    with pytest.raises(JobNotFound):
        engine.tick(job_ids[0])


def test_completed_job_is_added_to_its_list(engine: JobEngine, drive) -> None:
    job = engine.start_job("Boston, MA", "dentists", 120, "Boston Dentists")
    finished = drive(engine, job.id)

    lead_list = engine.get_list("Boston Dentists")

    assert lead_list is not None
    assert lead_list.job_ids == [job.id]
    assert lead_list.total_records == finished.found_count == 120
    assert engine.list_records("Boston Dentists") == finished.results


def test_only_completed_jobs_can_be_attached(engine: JobEngine) -> None:
    job = engine.start_job("Boston, MA", "dentists", 120)
    engine.tick(job.id)

    with pytest.raises(ValidationError):
        engine.attach_to_list("Boston", job.id)

    engine.cancel_job(job.id)
    with pytest.raises(ValidationError):
        engine.attach_to_list("Boston", job.id)


def test_delete_job_detaches_it_from_lists(engine: JobEngine, drive) -> None:
    first = engine.start_job("Boston, MA", "dentists", 100, "Boston")
    drive(engine, first.id)
    second = engine.start_job("Boston, MA", "doctors", 50, "Boston")
    drive(engine, second.id)

    engine.delete_job(first.id)

    assert engine.get_job(first.id) is None
    lead_list = engine.get_list("Boston")
    assert lead_list.job_ids == [second.id]
    assert lead_list.total_records == 50


def test_delete_running_job(engine: JobEngine) -> None:
    job = engine.start_job("Boston, MA", "dentists", 100)
    engine.tick(job.id)

    engine.delete_job(job.id)

    assert engine.get_job(job.id) is None
    assert engine.active_jobs() == []
    assert engine.activity_feed(job.id) == []


def test_query_results_uses_configured_page_size(make_engine, drive) -> None:
    engine = make_engine(page_size=25)
    job = engine.start_job("Phoenix, AZ", "salons", 60)
    finished = drive(engine, job.id)

    page = engine.query_results(job.id, record_filter=RecordFilter.HIGH_RATING, sort_key=SortKey.RATING, page=1)

    expected = [record for record in finished.results if record.rating >= 4]
    assert page.total_count == len(expected)
    assert page.page_size == 25
    assert len(page.items) == min(25, len(expected))
    assert [record.rating for record in page.items] == sorted(record.rating for record in page.items)


def test_seeded_engines_are_repeatable(store, clock, drive) -> None:
    def run(seed: int) -> Job:
        engine = JobEngine(type(store)(), settings=EngineSettings(seed=seed), clock=clock)
        job = engine.start_job("Tampa, FL", "plumbers", 80)
        return drive(engine, job.id)

    first, second = run(99), run(99)

    assert [record.to_dict() for record in first.results] == [record.to_dict() for record in second.results]
    assert first.ticks == second.ticks


def test_estimated_seconds_remaining(engine: JobEngine) -> None:
    job = engine.start_job("Tampa, FL", "plumbers", 80)

    assert job.estimated_seconds_remaining(0.5, 10.0) == 5
    assert engine.estimated_seconds_remaining(job.id) == 5
    assert engine.estimated_seconds_remaining(job.id, tick_interval=2.0) == 20
    finished = Job(id="j", location="x", keyword="y", target_count=10, status=JobStatus.COMPLETED)
    assert finished.estimated_seconds_remaining(0.5, 10.0) == 0


def test_estimated_seconds_remaining_follows_configured_step(make_engine) -> None:
    engine = make_engine(min_progress_step=10.0, max_progress_step=30.0)
    job = engine.start_job("Tampa, FL", "plumbers", 80)

    # mean step of 20 points: five ticks of half a second
    assert engine.estimated_seconds_remaining(job.id) == 3
