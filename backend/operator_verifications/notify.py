import logging

logger = logging.getLogger(__name__)


def queue_notification(task, booking, *args) -> None:
    """Queue a guest notification; a broker failure never fails the action."""
    try:
        task.delay(booking.id, *args)
    except Exception:
        logger.info(
            "notifications: could not queue %s",
            getattr(task, "name", task),
            exc_info=True,
            extra={"booking_id": booking.id},
        )
