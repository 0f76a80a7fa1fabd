"""Celery tasks for package housekeeping."""

from celery import shared_task
import logging

logger = logging.getLogger(__name__)


@shared_task
def expire_stale_packages_task():
    """
    Periodic sweep: packages still PENDING after their 30-day window
    leave the marketplace as EXPIRED.
    """
    from parcels.services import expire_stale_packages

    try:
        return expire_stale_packages()
    except Exception as e:
        logger.error(f"Error expiring stale packages: {e}")
        return 0
