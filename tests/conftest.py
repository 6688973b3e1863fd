from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Callable

import pytest

from lead_engine.config import EngineSettings
from lead_engine.models import Job
from lead_engine.orchestrator import JobEngine
from lead_engine.storage import MemoryStore


class FakeClock:
    """Manually advanced clock for deterministic time-dependent tests."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **delta: float) -> None:
        self.now += timedelta(**delta)


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def store() -> MemoryStore:
    return MemoryStore(history_limit=20)


@pytest.fixture()
def make_engine(store: MemoryStore, clock: FakeClock) -> Callable[..., JobEngine]:
    def factory(**overrides) -> JobEngine:
        options = {"seed": 1234, "rate_limit_max_starts": 50}
        options.update(overrides)
        return JobEngine(store, settings=EngineSettings(**options), clock=clock)

    return factory


@pytest.fixture()
def engine(make_engine) -> JobEngine:
    return make_engine()


def drive(engine: JobEngine, job_id: str, max_ticks: int = 100) -> Job:
    """Tick a job until it reaches a terminal state."""

    job = engine.require_job(job_id)
    for _ in range(max_ticks):
        if job.is_terminal:
            return job
        job = engine.tick(job_id)
    raise AssertionError(f"Job {job_id} did not finish within {max_ticks} ticks")


@pytest.fixture(name="drive")
def drive_fixture() -> Callable[..., Job]:
    return drive
