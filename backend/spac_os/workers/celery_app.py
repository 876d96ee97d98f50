from celery import Celery
from celery.signals import setup_logging

from spac_os.config import get_settings
from spac_os.log import configure_logging

settings = get_settings()

celery_app = Celery(
    "spac_os",
    broker=settings.redis_url,
    backend=settings.redis_url,
    include=["spac_os.workers.tasks"],
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    task_time_limit=600,  # 10 minutes max per task
    task_soft_time_limit=540,  # Soft limit at 9 minutes
    task_acks_late=True,
    worker_prefetch_multiplier=1,
    task_routes={
        "spac_os.workers.tasks.score_target": {"queue": "ai.scoring"},
        "spac_os.workers.tasks.write_investment_thesis": {"queue": "ai.scoring"},
        "spac_os.workers.tasks.sync_edgar_filings": {"queue": "sec.edgar"},
    },
)


@setup_logging.connect
def _configure_worker_logging(**kwargs):
    configure_logging(settings.log_level)
