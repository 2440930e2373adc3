# models.py
import enum
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Optional

from sqljobs.util import jsonify, parse_sqlite_date


class JobStatus(str, enum.Enum):
    PENDING = "pending"
    RUNNING = "running"
    FAILED = "failed"
    COMPLETED = "completed"


@dataclass
class Job:
    id: int
    name: str
    run_at: datetime
    data: Optional[str] = None          # JSON text, opaque to the scheduler
    priority: int = 0
    cron: Optional[str] = None
    attempts: int = 0
    status: JobStatus = JobStatus.PENDING
    updated_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    @property
    def payload(self) -> Any:
        return jsonify(self.data)

    @property
    def is_recurring(self) -> bool:
        return bool(self.cron)

    @classmethod
    def from_row(cls, row) -> "Job":
        return cls(
            id=int(row["id"]),
            name=str(row["name"]),
            run_at=parse_sqlite_date(row["run_at"]),
            data=row["data"],
            priority=int(row["priority"] or 0),
            cron=row["cron"] or None,
            attempts=int(row["attempts"] or 0),
            status=JobStatus(row["status"]),
            updated_at=parse_sqlite_date(row["updated_at"]),
            created_at=parse_sqlite_date(row["created_at"]),
        )

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "data": self.payload,
            "run_at": self.run_at.isoformat() if self.run_at else None,
            "priority": self.priority,
            "cron": self.cron,
            "attempts": self.attempts,
            "status": self.status.value,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


@dataclass(frozen=True)
class JobOptions:
    priority: int = 0


@dataclass(frozen=True)
class JobDefinition:
    """What the registry knows about one job name."""

    name: str
    handler: Callable[[Any], Any]
    options: JobOptions = field(default_factory=JobOptions)
    on_failure: Optional[Callable[[Exception], Any]] = None

    @property
    def priority(self) -> int:
        return self.options.priority
