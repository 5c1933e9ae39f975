from celery import Celery
from flowcore.config import settings

celery_app = Celery(
    "flowcore",
    broker=settings.CELERY_BROKER_URL,
    backend=settings.CELERY_RESULT_BACKEND,
    include=["celery_app.tasks"],
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    # Each task owns one workflow run; late acks need a prefetch of one
    worker_prefetch_multiplier=1,
    task_reject_on_worker_lost=True,
    task_routes={"execute_workflow_task": {"queue": settings.CELERY_WORKFLOW_QUEUE}},
    result_expires=settings.CELERY_RESULT_EXPIRES,
    task_soft_time_limit=settings.CELERY_TASK_SOFT_TIME_LIMIT,
    task_time_limit=settings.CELERY_TASK_TIME_LIMIT,
)
