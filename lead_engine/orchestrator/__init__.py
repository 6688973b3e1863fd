"""Job lifecycle management and scheduling."""

from .runner import JobRunner, JobTask
from .service import JobEngine

__all__ = ["JobEngine", "JobRunner", "JobTask"]
