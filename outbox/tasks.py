# outbox/tasks.py
"""
Celery beat drives the flush loop on terminals that run a worker.
"""
from celery import shared_task

from .services import flush


@shared_task(bind=True)
def flush_outbox_task(self):
    """
    One outbox sync cycle. Overlapping ticks are no-ops (sync flag).
    """
    return flush().as_dict()
