import threading
from datetime import datetime, timezone
from typing import List, Optional

from pydantic import BaseModel, Field, PositiveInt

POSTGRESQL = "postgresql"
MYSQL = "mysql"
SUPPORTED_ENGINES = (POSTGRESQL, MYSQL)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class DatabaseConfig(BaseModel):
    id: str
    name: str
    engine: str
    host: str
    port: PositiveInt
    username: str
    password: str = Field(repr=False)
    database_name: str

    class Config:
        frozen = True
        from_attributes = True


class DatabaseSummary(BaseModel):
    id: str
    name: str
    engine: str
    host: str
    port: int
    username: str
    database_name: str

    class Config:
        from_attributes = True


class DumpJob(BaseModel):
    config: DatabaseConfig
    started_at: datetime = Field(default_factory=utcnow)
    cancel_event: threading.Event = Field(default_factory=threading.Event, exclude=True, repr=False)

    class Config:
        arbitrary_types_allowed = True


class BackupArtifact(BaseModel):
    name: str
    path: str
    engine: str
    size_bytes: int = 0
    checksum: Optional[str] = None


class JobOutcome(BaseModel):
    database_id: str
    database_name: str
    success: bool
    artifact_name: str = ""
    artifact_path: str = ""
    error_message: Optional[str] = None
    error_kind: Optional[str] = None
    error_summary: Optional[str] = None
    started_at: datetime
    finished_at: datetime = Field(default_factory=utcnow)
    size_bytes: Optional[int] = None
    checksum: Optional[str] = None

    @classmethod
    def from_artifact(cls, job: DumpJob, artifact: BackupArtifact) -> "JobOutcome":
        return cls(
            database_id=job.config.id,
            database_name=job.config.name,
            success=True,
            artifact_name=artifact.name,
            artifact_path=artifact.path,
            started_at=job.started_at,
            size_bytes=artifact.size_bytes,
            checksum=artifact.checksum,
        )

    @classmethod
    def from_error(
        cls, job: DumpJob, message: str, kind: str, summary: Optional[str] = None
    ) -> "JobOutcome":
        return cls(
            database_id=job.config.id,
            database_name=job.config.name,
            success=False,
            error_message=message or kind,
            error_kind=kind,
            error_summary=summary,
            started_at=job.started_at,
        )


class ProbeResult(BaseModel):
    success: bool
    error_kind: Optional[str] = None
    error: Optional[str] = None


class BatchResult(BaseModel):
    outcomes: List[JobOutcome] = Field(default_factory=list)
    recorded: int = 0

    @property
    def total(self) -> int:
        return len(self.outcomes)

    @property
    def succeeded(self) -> int:
        return sum(1 for o in self.outcomes if o.success)

    @property
    def failed(self) -> int:
        return self.total - self.succeeded

    def summary(self) -> str:
        return "\n".join([
            "=== Summary ===",
            f"Succeeded: {self.succeeded}",
            f"Failed: {self.failed}",
            f"Total: {self.total}",
        ])
