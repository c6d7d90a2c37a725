# events/tasks.py
from dataclasses import asdict

from celery import shared_task

from core.config import get_config

from .services import sweep_pending_attribution


@shared_task
def retry_pending_attribution():
    """Periodic retry pass; scheduled by celery beat."""
    summary = sweep_pending_attribution(config=get_config())
    return asdict(summary)
