from celery import Celery
from listingsync.config import get_settings

settings = get_settings()

app = Celery(
    "listingsync",
    broker=settings.redis_url,
    backend=settings.redis_url,
    include=["celery_app.tasks.workers"]
)

# No beat schedule: periodic triggering belongs to whatever scheduler calls these tasks.
app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    task_time_limit=settings.run_lease_seconds,
    worker_prefetch_multiplier=1,
)
