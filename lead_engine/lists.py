"""Named lead lists that accumulate records from one or more completed jobs."""
from __future__ import annotations

import logging
import threading
from datetime import datetime
from typing import Callable, List, Optional

from .errors import ListNotFound
from .models import Job, LeadList, LeadRecord, new_id, utc_now
from .storage import EngineStore

LOGGER = logging.getLogger(__name__)


class ListAggregator:
    """Maintains lists by reference to jobs; records are never copied into a list.

    Each list remembers the found count a job had when it attached, so the
    list total does not shrink when old jobs fall out of the bounded history.
    :meth:`retained_total` reports the figure backed by jobs still on hand.
    """

    def __init__(self, store: EngineStore, *, clock: Callable[[], datetime] = utc_now) -> None:
        self._store = store
        self._clock = clock
        self._lock = threading.RLock()

    def attach(self, name: str, job: Job) -> LeadList:
        """Add ``job`` to the list called ``name``, creating the list if needed."""

        with self._lock:
            now = self._clock()
            lead_list = self._store.get_list(name)
            if lead_list is None:
                lead_list = LeadList(id=new_id("list"), name=name, created_at=now, updated_at=now)
                LOGGER.info("Created lead list %r", name)

            if job.id in lead_list.job_ids:
                LOGGER.debug("Job %s is already attached to list %r", job.id, name)
                return lead_list

            lead_list.job_ids.append(job.id)
            lead_list.job_counts[job.id] = job.found_count
            lead_list.updated_at = now
            lead_list.recompute_total()
            self._store.save_list(lead_list)
            LOGGER.info(
                "Attached job %s (%s records) to list %r; total now %s",
                job.id,
                job.found_count,
                name,
                lead_list.total_records,
            )
            return lead_list

    def detach_job(self, job_id: str) -> List[LeadList]:
        """Remove ``job_id`` from every list that references it."""

        updated: List[LeadList] = []
        with self._lock:
            for lead_list in self._store.list_lists():
                if job_id not in lead_list.job_ids:
                    continue
                lead_list.job_ids = [item for item in lead_list.job_ids if item != job_id]
                lead_list.job_counts.pop(job_id, None)
                lead_list.updated_at = self._clock()
                lead_list.recompute_total()
                self._store.save_list(lead_list)
                updated.append(lead_list)
        return updated

    def get(self, name: str) -> Optional[LeadList]:
        return self._store.get_list(name)

    def require(self, name: str) -> LeadList:
        lead_list = self._store.get_list(name)
        if lead_list is None:
            raise ListNotFound(name)
        return lead_list

    def all(self) -> List[LeadList]:
        return self._store.list_lists()

    def delete(self, name: str) -> None:
        with self._lock:
            if not self._store.delete_list(name):
                raise ListNotFound(name)
            LOGGER.info("Deleted lead list %r", name)

    def retained_jobs(self, name: str) -> List[Job]:
        lead_list = self.require(name)
        jobs: List[Job] = []
        for job_id in lead_list.job_ids:
            job = self._store.get_job(job_id)
            if job is None:
                LOGGER.debug("List %r references evicted job %s", name, job_id)
                continue
            jobs.append(job)
        return jobs

    def retained_total(self, name: str) -> int:
        """Sum of found counts over referenced jobs that are still in history."""

        return sum(job.found_count for job in self.retained_jobs(name))

    def resolve_records(self, name: str) -> List[LeadRecord]:
        """Concatenate results of retained jobs in attachment order."""

        records: List[LeadRecord] = []
        for job in self.retained_jobs(name):
            records.extend(job.results)
        return records


__all__ = ["ListAggregator"]
