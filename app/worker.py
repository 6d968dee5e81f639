import logging

from celery import Celery
from celery.schedules import crontab
from celery.signals import task_failure, task_postrun, task_prerun

from app.config import settings

logger = logging.getLogger(__name__)

# Redis is both the broker and the result backend
celery_app = Celery(
    "label_checker_worker",
    broker=settings.REDIS_URL,
    backend=settings.REDIS_URL,
    include=["app.tasks.scan_tasks"]
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    worker_concurrency=settings.SCAN_WORKER_CONCURRENCY,
    # A job is acknowledged only after it finishes so a crashed worker's job is redelivered
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    worker_prefetch_multiplier=1,
    task_track_started=True,
    task_soft_time_limit=300,
    task_time_limit=310,
    result_expires=24 * 3600,
    task_default_queue="label-scans",
    beat_schedule={
        "reset-monthly-scan-usage": {
            "task": "app.tasks.scan_tasks.reset_monthly_scan_usage",
            "schedule": crontab(minute=5, hour=0),
        },
    },
)


@task_prerun.connect
def log_task_start(task_id=None, task=None, args=None, **kwargs):
    logger.info(f"Task {task.name}[{task_id}] started args={args}")


@task_postrun.connect
def log_task_end(task_id=None, task=None, state=None, **kwargs):
    logger.info(f"Task {task.name}[{task_id}] finished state={state}")


@task_failure.connect
def log_task_failure(task_id=None, exception=None, sender=None, **kwargs):
    name = sender.name if sender is not None else "unknown"
    logger.error(f"Task {name}[{task_id}] failed: {exception}")


if __name__ == "__main__":
    celery_app.start()
