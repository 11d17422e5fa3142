from celery import Celery

from callsync.core.config import settings

celery_app = Celery(
    "callsync",
    broker=settings.redis_url,
    backend=settings.redis_url,
    include=["callsync.tasks"],
)

celery_app.conf.beat_schedule = {
    "sync-elevenlabs-calls": {
        "task": "callsync.tasks.sync_provider_calls",
        "schedule": float(settings.sync_interval_seconds),
        "args": ("elevenlabs",),
    },
    "sync-voximplant-calls": {
        "task": "callsync.tasks.sync_provider_calls",
        "schedule": float(settings.sync_interval_seconds),
        "args": ("voximplant",),
    },
}
