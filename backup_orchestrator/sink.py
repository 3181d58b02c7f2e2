import abc
from typing import List

from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session

from .errors import PersistenceError
from .logger import get_logger
from .models import Backup
from .schemas import JobOutcome

logger = get_logger(__name__)


class ResultSink(abc.ABC):
    """Durable store for job outcomes. Raises PersistenceError when a write fails."""

    @abc.abstractmethod
    def record(self, outcome: JobOutcome) -> None:
        pass


class SQLResultSink(ResultSink):
    def __init__(self, engine: Engine):
        self.engine = engine

    def record(self, outcome: JobOutcome) -> None:
        backup = Backup(
            database_id=outcome.database_id,
            name=outcome.artifact_name,
            storage_path=outcome.artifact_path,
            error=not outcome.success,
            error_kind=outcome.error_kind,
            error_summary=outcome.error_summary,
            log=outcome.error_message,
            size_bytes=outcome.size_bytes,
            checksum=outcome.checksum,
            started_at=outcome.started_at,
            finished_at=outcome.finished_at,
        )
        try:
            with Session(self.engine) as session:
                session.add(backup)
                session.commit()
                logger.debug(f"Recorded backup {backup.id} for database {outcome.database_id}")
        except SQLAlchemyError as e:
            raise PersistenceError(f"Could not record outcome for {outcome.database_id}: {e}") from e


class MemoryResultSink(ResultSink):
    """Keeps recorded outcomes in a list."""

    def __init__(self):
        self.outcomes: List[JobOutcome] = []

    def record(self, outcome: JobOutcome) -> None:
        self.outcomes.append(outcome)
