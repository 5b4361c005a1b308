from celery import Celery
from .config import settings

def _route_task(name, args, kwargs, options, task=None):
    """
    Route the style transfer function to its dedicated queue.

    The function is submitted by name and executed by a separately deployed worker,
    so routing must not depend on the task being importable here.
    """
    if settings.STYLE_TRANSFER_TASK and name == settings.STYLE_TRANSFER_TASK:
        return {"queue": settings.STYLE_TRANSFER_QUEUE}
    return None

celery_app = Celery(
    "styllio",
    broker=settings.CELERY_BROKER_URL,
    backend=settings.CELERY_RESULT_BACKEND,
)

celery_app.conf.update(
    task_track_started=True,
    task_send_sent_event=True,
    result_extended=True,
    worker_prefetch_multiplier=1,
    task_acks_late=True,
    broker_transport_options={"visibility_timeout": 3600},
    task_routes=(_route_task,),
)
