"""Data models shared by the job engine, list aggregator, query layer and exporters."""

from __future__ import annotations

import enum
import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional
from uuid import uuid4


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def new_id(prefix: str) -> str:
    return f"{prefix}_{uuid4().hex[:12]}"


def _format_timestamp(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def _parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    return datetime.fromisoformat(value)


# --- Enumerations ---

class JobStatus(str, enum.Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in _TERMINAL_STATUSES


_TERMINAL_STATUSES = frozenset({JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.CANCELLED})


class RecordFilter(str, enum.Enum):
    """Categorical filters offered by the results table."""

    ALL = "all"
    WITH_EMAIL = "with_email"
    WITH_PHONE = "with_phone"
    HIGH_RATING = "high_rating"


class SortKey(str, enum.Enum):
    NAME = "name"
    RATING = "rating"
    REVIEWS = "reviews"


class SortDirection(str, enum.Enum):
    ASC = "asc"
    DESC = "desc"


class ExportScope(str, enum.Enum):
    ALL = "all"
    FILTERED = "filtered"
    SELECTED = "selected"


# --- Records ---

@dataclass(frozen=True, slots=True)
class LeadRecord:
    """A single synthetic business contact produced by a job."""

    id: str
    name: str
    phone: str
    email: Optional[str]
    rating: float
    reviews: int
    address: str
    website: Optional[str] = None

    @property
    def has_email(self) -> bool:
        return bool(self.email)

    @property
    def has_phone(self) -> bool:
        return bool(self.phone)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "phone": self.phone,
            "email": self.email,
            "rating": self.rating,
            "reviews": self.reviews,
            "address": self.address,
            "website": self.website,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "LeadRecord":
        return cls(
            id=str(data["id"]),
            name=str(data["name"]),
            phone=str(data.get("phone") or ""),
            email=data.get("email") or None,
            rating=float(data.get("rating", 0.0)),
            reviews=int(data.get("reviews", 0)),
            address=str(data.get("address") or ""),
            website=data.get("website") or None,
        )


@dataclass(frozen=True, slots=True)
class JobAggregates:
    """Summary counters derived from a job's result set."""

    found: int = 0
    with_email: int = 0
    with_phone: int = 0
    avg_rating: float = 0.0

    @classmethod
    def from_records(cls, records: Iterable[LeadRecord]) -> "JobAggregates":
        records = list(records)
        if not records:
            return cls()
        average = sum(record.rating for record in records) / len(records)
        return cls(
            found=len(records),
            with_email=sum(1 for record in records if record.has_email),
            with_phone=sum(1 for record in records if record.has_phone),
            avg_rating=round(average, 1),
        )


@dataclass(frozen=True, slots=True)
class ActivityEvent:
    """Live-feed notification for one generated record. Never persisted."""

    record_id: str
    name: str
    has_email: bool
    timestamp: datetime

    @classmethod
    def for_record(cls, record: LeadRecord, timestamp: datetime) -> "ActivityEvent":
        return cls(record_id=record.id, name=record.name, has_email=record.has_email, timestamp=timestamp)


# --- Jobs ---

@dataclass
class Job:
    """One simulated lead-acquisition run.

    The result set is only ever appended to by the engine that owns the job;
    ``aggregates`` is recomputed from ``results`` after every append.
    """

    id: str
    location: str
    keyword: str
    target_count: int
    list_name: Optional[str] = None
    status: JobStatus = JobStatus.PENDING
    progress: float = 0.0
    results: List[LeadRecord] = field(default_factory=list)
    aggregates: JobAggregates = field(default_factory=JobAggregates)
    created_at: datetime = field(default_factory=utc_now)
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    error: Optional[str] = None
    ticks: int = 0

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    @property
    def found_count(self) -> int:
        return self.aggregates.found

    def append_records(self, records: Iterable[LeadRecord]) -> None:
        self.results.extend(records)
        self.aggregates = JobAggregates.from_records(self.results)

    def estimated_seconds_remaining(self, tick_interval: float, mean_step: float) -> int:
        """Rough time left, assuming ``mean_step`` progress points per tick."""

        if self.is_terminal:
            return 0
        remaining_ticks = math.ceil((100.0 - self.progress) / mean_step)
        return int(math.ceil(remaining_ticks * tick_interval))

    def snapshot(self) -> "Job":
        """Copy that callers on other threads can read without the engine lock."""

        return Job(
            id=self.id,
            location=self.location,
            keyword=self.keyword,
            target_count=self.target_count,
            list_name=self.list_name,
            status=self.status,
            progress=self.progress,
            results=list(self.results),
            aggregates=self.aggregates,
            created_at=self.created_at,
            started_at=self.started_at,
            completed_at=self.completed_at,
            error=self.error,
            ticks=self.ticks,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "location": self.location,
            "keyword": self.keyword,
            "target_count": self.target_count,
            "list_name": self.list_name,
            "status": self.status.value,
            "progress": self.progress,
            "results": [record.to_dict() for record in self.results],
            "created_at": _format_timestamp(self.created_at),
            "started_at": _format_timestamp(self.started_at),
            "completed_at": _format_timestamp(self.completed_at),
            "error": self.error,
            "ticks": self.ticks,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Job":
        results = [LeadRecord.from_dict(item) for item in data.get("results", [])]
        return cls(
            id=str(data["id"]),
            location=str(data.get("location", "")),
            keyword=str(data.get("keyword", "")),
            target_count=int(data.get("target_count", 0)),
            list_name=data.get("list_name") or None,
            status=JobStatus(data.get("status", JobStatus.PENDING.value)),
            progress=float(data.get("progress", 0.0)),
            results=results,
            aggregates=JobAggregates.from_records(results),
            created_at=_parse_timestamp(data.get("created_at")) or utc_now(),
            started_at=_parse_timestamp(data.get("started_at")),
            completed_at=_parse_timestamp(data.get("completed_at")),
            error=data.get("error"),
            ticks=int(data.get("ticks", 0)),
        )


# --- Lists ---

@dataclass
class LeadList:
    """Named aggregation point referencing the jobs that contributed to it."""

    id: str
    name: str
    job_ids: List[str] = field(default_factory=list)
    job_counts: Dict[str, int] = field(default_factory=dict)
    total_records: int = 0
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)

    def recompute_total(self) -> int:
        self.total_records = sum(self.job_counts.get(job_id, 0) for job_id in self.job_ids)
        return self.total_records

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "job_ids": list(self.job_ids),
            "job_counts": dict(self.job_counts),
            "total_records": self.total_records,
            "created_at": _format_timestamp(self.created_at),
            "updated_at": _format_timestamp(self.updated_at),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "LeadList":
        lead_list = cls(
            id=str(data["id"]),
            name=str(data["name"]),
            job_ids=[str(job_id) for job_id in data.get("job_ids", [])],
            job_counts={str(key): int(value) for key, value in data.get("job_counts", {}).items()},
            created_at=_parse_timestamp(data.get("created_at")) or utc_now(),
            updated_at=_parse_timestamp(data.get("updated_at")) or utc_now(),
        )
        lead_list.recompute_total()
        return lead_list


# --- Query results ---

@dataclass
class QueryPage:
    """One page of a filtered, sorted result view."""

    items: List[LeadRecord]
    total_count: int
    total_pages: int
    page: int
    page_size: int

    @property
    def has_next(self) -> bool:
        return self.page < self.total_pages


__all__ = [
    "ActivityEvent",
    "ExportScope",
    "Job",
    "JobAggregates",
    "JobStatus",
    "LeadList",
    "LeadRecord",
    "QueryPage",
    "RecordFilter",
    "SortDirection",
    "SortKey",
    "new_id",
    "utc_now",
]
