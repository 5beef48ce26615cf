import logging
import os

from celery import Celery
from celery.schedules import crontab

import config
from backup import run_backup

logger = logging.getLogger(__name__)

redis_url = config.get_redis_url()
celery = Celery("autobackup", broker=redis_url)
celery.conf.update(broker_url=redis_url, result_backend=redis_url)

celery_beat_schedule = {
    "backup_tables": {
        "task": "tasks.task_backup_tables",
        # Run daily 03:30 UTC, after the nightly batch jobs
        "schedule": crontab(minute="30", hour="3"),
    },
}

celery.conf.update(
    timezone="UTC",
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    beat_schedule=celery_beat_schedule,
)


def is_real_run() -> bool:
    """Scheduled runs only touch tables when BACKUP_REAL_RUN=1."""
    return os.getenv("BACKUP_REAL_RUN") == "1"


def backup_tables():
    settings = config.load_settings(os.getenv("BACKUP_CONFIG_FILE") or None)
    report = run_backup(settings, real_run=is_real_run())
    if report.failed:
        logger.warning(
            "backup_tables: %d drop(s) and %d backup(s) failed",
            len(report.drop_failures),
            len(report.create_failures),
        )
    return report


@celery.task()
def task_backup_tables():
    # The next scheduled run is the retry; don't crash the worker
    try:
        backup_tables()
    except Exception:
        logger.exception("backup_tables failed")
