"""Top-level package for the lead acquisition job engine."""

from . import models  # noqa: F401
from .config import ConfigurationError, EngineSettings
from .errors import (
    GenerationFailure,
    JobNotFound,
    LeadEngineError,
    ListNotFound,
    RateLimitExceeded,
    ValidationError,
)
from .export import build_export_filename, export_records
from .factory import build_engine
from .generator import RecordGenerator
from .models import (
    ActivityEvent,
    ExportScope,
    Job,
    JobAggregates,
    JobStatus,
    LeadList,
    LeadRecord,
    QueryPage,
    RecordFilter,
    SortDirection,
    SortKey,
)
from .orchestrator import JobEngine, JobRunner
from .rate_limit import SlidingWindowRateLimiter, can_start
from .storage import JsonFileStore, MemoryStore

__all__ = [
    "ActivityEvent",
    "ConfigurationError",
    "EngineSettings",
    "ExportScope",
    "GenerationFailure",
    "Job",
    "JobAggregates",
    "JobEngine",
    "JobNotFound",
    "JobRunner",
    "JobStatus",
    "JsonFileStore",
    "LeadEngineError",
    "LeadList",
    "LeadRecord",
    "ListNotFound",
    "MemoryStore",
    "QueryPage",
    "RateLimitExceeded",
    "RecordFilter",
    "RecordGenerator",
    "SlidingWindowRateLimiter",
    "SortDirection",
    "SortKey",
    "ValidationError",
    "build_engine",
    "build_export_filename",
    "can_start",
    "export_records",
]
