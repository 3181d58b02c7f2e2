from typing import Optional
from datetime import datetime
from sqlmodel import Field, SQLModel
import uuid

from .schemas import utcnow


class Database(SQLModel, table=True):
    """A registered database connection; read by SQLConfigRegistry."""
    id: str = Field(default_factory=lambda: f"db_{uuid.uuid4().hex[:6]}", primary_key=True)
    name: str
    engine: str
    host: str
    port: int
    username: str
    password: str
    database_name: str
    created_at: datetime = Field(default_factory=utcnow)


class Backup(SQLModel, table=True):
    """One recorded job outcome. ``error`` is set and ``log`` holds the raw diagnostic on failure."""
    id: str = Field(default_factory=lambda: f"bkp_{uuid.uuid4().hex[:6]}", primary_key=True)
    # No foreign key: outcomes may belong to registrations that live in config.yaml
    database_id: str = Field(index=True)
    name: str = ""
    storage_path: str = ""
    error: bool = Field(default=False, index=True)
    error_kind: Optional[str] = None
    error_summary: Optional[str] = None
    log: Optional[str] = None
    size_bytes: Optional[int] = None
    checksum: Optional[str] = None
    started_at: datetime
    finished_at: datetime
    created_at: datetime = Field(default_factory=utcnow, index=True)
