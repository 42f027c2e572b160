from celery import Celery
from celery import signals
import time
from prometheus_client import Counter, Histogram
from linkpeek.config import get_settings

settings = get_settings()

celery_app = Celery(
    "linkpeek",
    broker=settings.redis_url,
    backend=settings.redis_url,
    include=[
        "linkpeek.tasks.incidents",
        "linkpeek.tasks.health",
    ],
)

celery_app.conf.update(task_serializer="json", result_serializer="json", accept_content=["json"], timezone="UTC", enable_utc=True)

# Worker-process metrics (default registry, scraped from the worker when exposed)
TASK_SUCCESS = Counter('celery_task_success_total', 'Celery task successes', ['task'])
TASK_FAILURE = Counter('celery_task_failure_total', 'Celery task failures', ['task'])
TASK_DURATION = Histogram('celery_task_duration_seconds', 'Celery task runtime', ['task'], buckets=(0.05,0.1,0.25,0.5,1,2,5,10,30,60))

_task_start_times = {}

@signals.task_prerun.connect
def _task_prerun(sender=None, task_id=None, **kwargs):  # noqa
    _task_start_times[task_id] = time.time()

@signals.task_postrun.connect
def _task_postrun(sender=None, task_id=None, state=None, **kwargs):  # noqa
    start = _task_start_times.pop(task_id, None)
    name = sender.name if sender else 'unknown'
    if start is not None:
        try:
            TASK_DURATION.labels(task=name).observe(time.time() - start)
        except Exception:
            pass
    try:
        if state == 'SUCCESS':
            TASK_SUCCESS.labels(task=name).inc()
        elif state is not None:
            TASK_FAILURE.labels(task=name).inc()
    except Exception:
        pass

# Periodic tasks (beat). Requires worker with -B or separate beat service.
celery_app.conf.beat_schedule = {
    "detect-incidents-5m": {
        "task": "linkpeek.tasks.incidents.detect_incidents",
        "schedule": 300.0,
        # a run that has not started before the next tick is dropped
        "options": {"expires": 240},
    },
    "refresh-link-health-hourly": {
        "task": "linkpeek.tasks.health.refresh_link_health",
        "schedule": 3600.0,
    },
}
