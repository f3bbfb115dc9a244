from taquilla.tasks.celery_app import celery
from taquilla.tasks import worker_jobs

@celery.task(name="taquilla.tasks.jobs.expire_reservations")
def expire_reservations():
    return worker_jobs.expire_reservations()
