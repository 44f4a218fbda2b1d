from celery import Celery
from .config import settings

def _route_task(name, args, kwargs, options, task=None):
    """
    Route tasks to dedicated queues.

    Call sites fall back to `.delay(...)` when `.apply_async(..., queue=...)`
    fails; this router keeps both paths on the same queue.
    """
    if name == "bestofgoa.tasks.dispatch_extraction_task":
        return {"queue": "extraction"}

    return None

celery_app = Celery(
    "bestofgoa",
    broker=settings.CELERY_BROKER_URL,
    backend=settings.CELERY_RESULT_BACKEND,
    include=["bestofgoa.tasks"]
)

celery_app.conf.update(
    task_track_started=True,
    worker_prefetch_multiplier=1,
    task_acks_late=True,
    broker_transport_options={"visibility_timeout": 3600},
    task_routes=(_route_task,),
)
