"""Background housekeeping jobs."""
import logging
from datetime import UTC, datetime, timedelta

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger
from sqlmodel import Session, select

from eventdesk.core.config import settings
from eventdesk.core.database import engine
from eventdesk.models import Notification

logger = logging.getLogger(__name__)

scheduler = AsyncIOScheduler()


def purge_expired_notifications(session: Session, now: datetime | None = None) -> int:
    """Delete temporary notifications older than the configured TTL. Returns the count."""
    now = now or datetime.now(UTC)
    cutoff = now - timedelta(seconds=settings.notification_ttl_seconds)
    statement = (
        select(Notification)
        .where(Notification.is_temporary == True)  # noqa: E712
        .where(Notification.created_at < cutoff)
    )
    expired = session.exec(statement).all()
    for notification in expired:
        session.delete(notification)
    session.commit()
    return len(expired)


def housekeeping_job():
    """Background housekeeping job."""
    try:
        with Session(engine) as session:
            purged = purge_expired_notifications(session)
            if purged:
                logger.info(f"Housekeeping purged {purged} expired notifications")
    except Exception as e:
        logger.error(f"Housekeeping failed: {e}")


def start_scheduler():
    """Start the background scheduler."""
    scheduler.add_job(
        housekeeping_job,
        trigger=IntervalTrigger(minutes=settings.housekeeping_interval_minutes),
        id="housekeeping",
        replace_existing=True,
    )
    scheduler.start()
    logger.info(
        f"Scheduler started, housekeeping every {settings.housekeeping_interval_minutes} minutes"
    )


def shutdown_scheduler():
    """Graceful shutdown."""
    scheduler.shutdown(wait=False)
    logger.info("Scheduler shut down")
