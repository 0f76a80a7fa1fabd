"""Celery tasks for dispute SLA monitoring."""

from celery import shared_task
import logging

logger = logging.getLogger(__name__)


@shared_task
def flag_overdue_disputes_task():
    """
    Periodic sweep: flag disputes that missed their first-reply (24h) or
    resolution (5 day) deadline.
    """
    from services.disputes import flag_overdue_disputes

    try:
        return flag_overdue_disputes()
    except Exception as e:
        logger.error(f"Error flagging overdue disputes: {e}")
        return 0
