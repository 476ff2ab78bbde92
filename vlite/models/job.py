# vlite/models/job.py
import uuid
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path


class JobStatus(str, Enum):
    QUEUED = "queued"
    PROCESSING = "processing"
    COMPLETED = "completed"
    ERROR = "error"
    STOPPED = "stopped"  # transient, never left on a job after the orchestrator reacts

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.COMPLETED, JobStatus.ERROR)


@dataclass
class Job:
    source_path: str
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    status: JobStatus = JobStatus.QUEUED
    progress: float = 0.0
    original_size: int = 0
    output_size: int | None = None
    output_path: str | None = None
    error_message: str | None = None

    @property
    def name(self) -> str:
        return Path(self.source_path).name or "Unknown"

    def view(self) -> "JobView":
        return JobView(
            id=self.id,
            name=self.name,
            source_path=self.source_path,
            status=self.status,
            progress=self.progress,
            original_size=self.original_size,
            compressed_size=self.output_size,
            output_path=self.output_path,
            error_message=self.error_message,
        )


@dataclass(frozen=True)
class JobView:
    """Read-only projection handed to the interface layer."""
    id: str
    name: str
    source_path: str
    status: JobStatus
    progress: float
    original_size: int
    compressed_size: int | None = None
    output_path: str | None = None
    error_message: str | None = None
