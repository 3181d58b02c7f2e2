"""
Batch orchestration of dump jobs.

Every config gets one job. Jobs run on a bounded thread pool, each one
settles to a success or a failure on its own, and outcomes are handed to the
result sink from the calling thread as they complete. The returned
``BatchResult.outcomes`` follows the order of the input configs.
"""

import time
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FuturesTimeoutError, as_completed
from typing import List, Optional, Sequence

from .dump_engine import DumpEngine
from .error_parser import parse_backup_error
from .errors import BackupError, JobTimeout, PersistenceError
from .logger import get_logger
from .metrics import (
    BACKUPS_TOTAL, BACKUP_DURATION_SECONDS, BACKUP_SIZE_BYTES, BACKUP_LAST_STATUS,
    BACKUP_JOBS_IN_FLIGHT, BACKUP_BATCH_RUNS_TOTAL, BACKUP_OUTCOME_RECORD_FAILURES_TOTAL,
)
from .probe import ConnectionProbe
from .schemas import BatchResult, DatabaseConfig, DumpJob, JobOutcome, utcnow
from .sink import ResultSink

logger = get_logger(__name__)

DEFAULT_MAX_WORKERS = 4


class Orchestrator:
    def __init__(
        self,
        dump_engine: DumpEngine,
        sink: ResultSink,
        files_dir: str,
        max_workers: int = DEFAULT_MAX_WORKERS,
        probe: Optional[ConnectionProbe] = None,
        deadline: Optional[float] = None,
    ):
        if max_workers < 1:
            raise ValueError("max_workers must be at least 1")
        self.dump_engine = dump_engine
        self.sink = sink
        self.files_dir = files_dir
        self.max_workers = max_workers
        self.probe = probe
        self.deadline = deadline

    def run_all(self, configs: Sequence[DatabaseConfig]) -> BatchResult:
        if not configs:
            logger.info("No databases to back up.")
            return BatchResult()

        BACKUP_BATCH_RUNS_TOTAL.inc()
        logger.info(f"Starting backup of {len(configs)} database(s) with up to {self.max_workers} in flight.")

        outcomes: List[Optional[JobOutcome]] = [None] * len(configs)
        recorded = 0
        jobs = [DumpJob(config=config) for config in configs]

        executor = ThreadPoolExecutor(max_workers=self.max_workers, thread_name_prefix="dump")
        try:
            futures = {executor.submit(self._run_job, job): index for index, job in enumerate(jobs)}
            try:
                for future in as_completed(futures, timeout=self.deadline):
                    index = futures[future]
                    outcomes[index] = future.result()
                    recorded += self._record(outcomes[index])
            except FuturesTimeoutError:
                logger.error(f"Batch deadline of {self.deadline}s expired, abandoning unfinished jobs.")
                for future, index in futures.items():
                    if outcomes[index] is not None:
                        continue
                    if future.done() and not future.cancelled():
                        outcomes[index] = future.result()
                        recorded += self._record(outcomes[index])
                        continue
                    job = jobs[index]
                    job.cancel_event.set()
                    future.cancel()
                    outcomes[index] = JobOutcome.from_error(
                        job,
                        f"Backup did not finish within the batch deadline of {self.deadline}s",
                        "Timeout",
                        parse_backup_error("", job.config.engine, "Timeout"),
                    )
                    self._observe(outcomes[index])
                    recorded += self._record(outcomes[index])
        finally:
            # Cancelled jobs kill their child process, so this returns promptly
            executor.shutdown(wait=True)

        result = BatchResult(outcomes=outcomes, recorded=recorded)
        logger.info(
            f"Backup batch finished: {result.succeeded} succeeded, {result.failed} failed, "
            f"{result.total} total, {result.recorded} recorded."
        )
        return result

    def _run_job(self, job: DumpJob) -> JobOutcome:
        config = job.config
        job.started_at = utcnow()
        start_time = time.time()
        BACKUP_JOBS_IN_FLIGHT.inc()
        try:
            if self.probe is not None:
                self.probe.check(config)
            if job.cancel_event.is_set():
                raise JobTimeout("Backup cancelled before the dump started")
            artifact = self.dump_engine.dump(
                config, self.files_dir, started_at=job.started_at, cancel_event=job.cancel_event
            )
            outcome = JobOutcome.from_artifact(job, artifact)
            logger.info(f"✓ {config.name} backed up successfully: {artifact.path}")
        except BackupError as e:
            outcome = JobOutcome.from_error(
                job, str(e), e.kind, parse_backup_error(str(e), config.engine, e.kind)
            )
            logger.error(f"✗ Backup of {config.name} failed: {e}")
        except Exception as e:
            logger.error(f"✗ Backup of {config.name} failed unexpectedly: {e}", exc_info=True)
            outcome = JobOutcome.from_error(
                job, str(e) or type(e).__name__, "Other", parse_backup_error(str(e), config.engine)
            )
        finally:
            BACKUP_JOBS_IN_FLIGHT.dec()

        if not job.cancel_event.is_set():
            self._observe(outcome, time.time() - start_time)
        return outcome

    def _record(self, outcome: JobOutcome) -> int:
        try:
            self.sink.record(outcome)
            return 1
        except PersistenceError as e:
            logger.error(f"Failed to record outcome for {outcome.database_name}: {e}")
        except Exception as e:
            logger.error(f"Result sink raised for {outcome.database_name}: {e}", exc_info=True)
        BACKUP_OUTCOME_RECORD_FAILURES_TOTAL.labels(database_name=outcome.database_name).inc()
        return 0

    @staticmethod
    def _observe(outcome: JobOutcome, duration: Optional[float] = None) -> None:
        status = "completed" if outcome.success else "failed"
        BACKUPS_TOTAL.labels(database_name=outcome.database_name, status=status).inc()
        BACKUP_LAST_STATUS.labels(database_name=outcome.database_name).set(1 if outcome.success else 0)
        if duration is not None:
            BACKUP_DURATION_SECONDS.labels(database_name=outcome.database_name).observe(duration)
        if outcome.success and outcome.size_bytes is not None:
            BACKUP_SIZE_BYTES.labels(database_name=outcome.database_name).set(outcome.size_bytes)
