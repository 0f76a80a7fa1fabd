"""Celery tasks for match request housekeeping."""

from celery import shared_task
import logging

logger = logging.getLogger(__name__)


@shared_task
def expire_stale_match_requests_task():
    """
    Periodic sweep: pending match requests not answered within 24 hours
    become expired and both parties are notified.
    """
    from services.match_management import expire_stale_match_requests

    try:
        expired = expire_stale_match_requests()
        logger.info(f"Match request sweep expired {expired} request(s)")
        return expired
    except Exception as e:
        logger.error(f"Error expiring stale match requests: {e}")
        return 0


@shared_task
def expire_match_request_task(request_id: int):
    """
    Expire a single match request once its window has passed.

    Scheduled with an ETA when the request is created; a no-op if the
    request was answered in the meantime.
    """
    from services.match_management import expire_match_request

    try:
        if expire_match_request(request_id):
            logger.info(f"Expired match request {request_id}")
        else:
            logger.info(f"Match request {request_id} already answered or not yet due")
    except Exception as e:
        logger.error(f"Error expiring match request {request_id}: {e}")
