from apscheduler.schedulers.blocking import BlockingScheduler
from apscheduler.triggers.cron import CronTrigger
import os
from typing import Callable, Optional

from .errors import ConfigError
from .logger import get_logger

logger = get_logger(__name__)

BATCH_JOB_ID = "backup_batch"


def create_scheduler(run_batch: Callable[[], object], schedule: Optional[str]) -> BlockingScheduler:
    """Build a scheduler that runs the whole batch on a crontab expression."""
    if not schedule:
        raise ConfigError("No schedule configured; set global.schedule in config.yaml")

    try:
        trigger = CronTrigger.from_crontab(schedule, timezone=os.getenv("TZ", "UTC"))
    except ValueError as e:
        raise ConfigError(f"Invalid schedule '{schedule}': {e}") from e

    scheduler = BlockingScheduler()
    scheduler.add_job(
        run_batch,
        trigger=trigger,
        id=BATCH_JOB_ID,
        name="Back up all registered databases",
        max_instances=1,
        coalesce=True,
        replace_existing=True,
    )
    logger.info(f"Scheduled backup batch with schedule: '{schedule}'")
    return scheduler
