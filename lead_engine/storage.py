"""Persistence port for job history, lead lists and the start-time history."""
from __future__ import annotations

import json
import logging
import os
import threading
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Protocol

from .config import ConfigurationError
from .models import Job, LeadList

LOGGER = logging.getLogger(__name__)

JOBS_KEY = "lead_engine_jobs"
LISTS_KEY = "lead_engine_lead_lists"
STARTS_KEY = "lead_engine_job_starts"


class EngineStore(Protocol):
    """Interface the engine and list aggregator use for durable state."""

    def save_job(self, job: Job) -> None:  # pragma: no cover - runtime protocol
        """Insert or replace a job, evicting the oldest beyond the history limit."""

    def get_job(self, job_id: str) -> Optional[Job]:  # pragma: no cover - runtime protocol
        """Return the stored job or ``None`` if unknown or evicted."""

    def list_jobs(self, limit: Optional[int] = None) -> List[Job]:  # pragma: no cover - runtime protocol
        """Return stored jobs, most recent first."""

    def delete_job(self, job_id: str) -> bool:  # pragma: no cover - runtime protocol
        """Remove a job, returning whether it existed."""

    def save_list(self, lead_list: LeadList) -> None:  # pragma: no cover - runtime protocol
        """Insert or replace a list keyed by name."""

    def get_list(self, name: str) -> Optional[LeadList]:  # pragma: no cover - runtime protocol
        """Return the list with ``name`` if it exists."""

    def list_lists(self) -> List[LeadList]:  # pragma: no cover - runtime protocol
        """Return all lists in creation order."""

    def delete_list(self, name: str) -> bool:  # pragma: no cover - runtime protocol
        """Remove a list, returning whether it existed."""

    def load_start_times(self) -> List[datetime]:  # pragma: no cover - runtime protocol
        """Return persisted job-start timestamps."""

    def save_start_times(self, starts: List[datetime]) -> None:  # pragma: no cover - runtime protocol
        """Replace persisted job-start timestamps."""


class MemoryStore:
    """In-process store with a bounded job history."""

    def __init__(self, *, history_limit: int = 20) -> None:
        if history_limit < 1:
            raise ValueError("history_limit must be at least 1")
        self._history_limit = history_limit
        self._lock = threading.RLock()
        # Most recent first.
        self._jobs: List[Job] = []
        self._lists: List[LeadList] = []
        self._starts: List[datetime] = []

    @property
    def history_limit(self) -> int:
        return self._history_limit

    # ------------------------------------------------------------------
    # Jobs
    # ------------------------------------------------------------------
    def save_job(self, job: Job) -> None:
        with self._lock:
            stored = job.snapshot()
            for index, existing in enumerate(self._jobs):
                if existing.id == job.id:
                    self._jobs[index] = stored
                    break
            else:
                self._jobs.insert(0, stored)
            if len(self._jobs) > self._history_limit:
                evicted = self._jobs[self._history_limit:]
                del self._jobs[self._history_limit:]
                LOGGER.info(
                    "Evicted %s job(s) from history: %s",
                    len(evicted),
                    ", ".join(item.id for item in evicted),
                )
            self._flush()

    def get_job(self, job_id: str) -> Optional[Job]:
        with self._lock:
            for job in self._jobs:
                if job.id == job_id:
                    return job.snapshot()
        return None

    def list_jobs(self, limit: Optional[int] = None) -> List[Job]:
        with self._lock:
            jobs = self._jobs if limit is None else self._jobs[: max(0, limit)]
            return [job.snapshot() for job in jobs]

    def delete_job(self, job_id: str) -> bool:
        with self._lock:
            before = len(self._jobs)
            self._jobs = [job for job in self._jobs if job.id != job_id]
            removed = len(self._jobs) != before
            if removed:
                self._flush()
            return removed

    # ------------------------------------------------------------------
    # Lists
    # ------------------------------------------------------------------
    def save_list(self, lead_list: LeadList) -> None:
        with self._lock:
            stored = LeadList.from_dict(lead_list.to_dict())
            for index, existing in enumerate(self._lists):
                if existing.name == lead_list.name:
                    self._lists[index] = stored
                    break
            else:
                self._lists.append(stored)
            self._flush()

    def get_list(self, name: str) -> Optional[LeadList]:
        with self._lock:
            for lead_list in self._lists:
                if lead_list.name == name:
                    return LeadList.from_dict(lead_list.to_dict())
        return None

    def list_lists(self) -> List[LeadList]:
        with self._lock:
            return [LeadList.from_dict(lead_list.to_dict()) for lead_list in self._lists]

    def delete_list(self, name: str) -> bool:
        with self._lock:
            before = len(self._lists)
            self._lists = [lead_list for lead_list in self._lists if lead_list.name != name]
            removed = len(self._lists) != before
            if removed:
                self._flush()
            return removed

    # ------------------------------------------------------------------
    # Rate limiter history
    # ------------------------------------------------------------------
    def load_start_times(self) -> List[datetime]:
        with self._lock:
            return list(self._starts)

    def save_start_times(self, starts: List[datetime]) -> None:
        with self._lock:
            self._starts = list(starts)
            self._flush()

    def _flush(self) -> None:
        """Hook for subclasses that mirror state somewhere durable."""


class JsonFileStore(MemoryStore):
    """Store that keeps its state in a single JSON document on disk."""

    def __init__(self, path: str | Path, *, history_limit: int = 20) -> None:
        super().__init__(history_limit=history_limit)
        self._path = Path(path)
        self._load()

    @property
    def path(self) -> Path:
        return self._path

    def _load(self) -> None:
        if not self._path.exists():
            LOGGER.debug("Store file %s does not exist yet; starting empty", self._path)
            return
        try:
            document: Dict[str, Any] = json.loads(self._path.read_text(encoding="utf-8") or "{}")
        except json.JSONDecodeError as exc:
            raise ConfigurationError(f"Store file '{self._path}' is not valid JSON: {exc}") from exc
        if not isinstance(document, dict):
            raise ConfigurationError(f"Store file '{self._path}' must contain a JSON object")

        self._jobs = [Job.from_dict(item) for item in document.get(JOBS_KEY, [])][: self._history_limit]
        self._lists = [LeadList.from_dict(item) for item in document.get(LISTS_KEY, [])]
        self._starts = [datetime.fromisoformat(item) for item in document.get(STARTS_KEY, [])]
        LOGGER.debug("Loaded %s jobs and %s lists from %s", len(self._jobs), len(self._lists), self._path)

    def _flush(self) -> None:
        document = {
            JOBS_KEY: [job.to_dict() for job in self._jobs],
            LISTS_KEY: [lead_list.to_dict() for lead_list in self._lists],
            STARTS_KEY: [timestamp.isoformat() for timestamp in self._starts],
        }
        self._path.parent.mkdir(parents=True, exist_ok=True)
        temporary = self._path.with_suffix(self._path.suffix + ".tmp")
        temporary.write_text(json.dumps(document, ensure_ascii=False, indent=2), encoding="utf-8")
        os.replace(temporary, self._path)


__all__ = ["EngineStore", "JsonFileStore", "MemoryStore"]
