from prometheus_client import Counter, Histogram, Gauge

BACKUPS_TOTAL = Counter(
    "backups_total",
    "Total number of backups.",
    ["database_name", "status"]
)

BACKUP_DURATION_SECONDS = Histogram(
    "backup_duration_seconds",
    "Duration of backup operations in seconds.",
    ["database_name"]
)

BACKUP_SIZE_BYTES = Gauge(
    "backup_size_bytes",
    "Size of the last successful backup in bytes.",
    ["database_name"]
)

BACKUP_LAST_STATUS = Gauge(
    "backup_last_status",
    "Status of the last backup (1 for success, 0 for failure).",
    ["database_name"]
)

BACKUP_JOBS_IN_FLIGHT = Gauge(
    "backup_jobs_in_flight",
    "Number of dump jobs currently running."
)

BACKUP_BATCH_RUNS_TOTAL = Counter(
    "backup_batch_runs_total",
    "Total number of orchestration passes."
)

BACKUP_OUTCOME_RECORD_FAILURES_TOTAL = Counter(
    "backup_outcome_record_failures_total",
    "Total number of job outcomes the result sink failed to record.",
    ["database_name"]
)

PROBES_TOTAL = Counter(
    "probes_total",
    "Total number of connection probes.",
    ["engine", "status"]
)
