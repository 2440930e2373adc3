"""SQLite-table-backed job scheduler: queue, schedule and cron jobs, no broker."""
from sqljobs.config import SchedulerConfig
from sqljobs.errors import (
    ConfigurationError,
    HandlerError,
    InvalidCronError,
    InvalidDateError,
    ParseError,
    SqlJobsError,
    StorageError,
    UnknownJobError,
)
from sqljobs.models import Job, JobDefinition, JobOptions, JobStatus
from sqljobs.scheduler import Scheduler

__version__ = "0.1.0"

__all__ = [
    "ConfigurationError",
    "HandlerError",
    "InvalidCronError",
    "InvalidDateError",
    "Job",
    "JobDefinition",
    "JobOptions",
    "JobStatus",
    "ParseError",
    "Scheduler",
    "SchedulerConfig",
    "SqlJobsError",
    "StorageError",
    "UnknownJobError",
]
