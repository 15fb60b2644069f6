from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.jobstores.sqlalchemy import SQLAlchemyJobStore
import logging

from boxoffice.config import get_settings
from boxoffice.database import SessionLocal
from boxoffice.services.sweeper import ExpirationSweeper

settings = get_settings()
logger = logging.getLogger(__name__)

SWEEP_JOB_ID = "expiration_sweep"

scheduler = BackgroundScheduler()

jobstores = {
    'default': SQLAlchemyJobStore(url=settings.database_url)
}


def run_sweep():
    """Scheduled entry point for the expiration sweeper."""
    try:
        result = ExpirationSweeper.run(SessionLocal)
        if result.errors:
            logger.warning(f"Sweep completed with {len(result.errors)} errors")
    except Exception as e:
        logger.error(f"Error running expiration sweep: {e}")


def init_scheduler():
    """Initialize the scheduler and register the periodic sweep."""
    scheduler.configure(jobstores=jobstores)
    scheduler.start()
    schedule_sweep(settings.sweep_interval_minutes)
    logger.info("Scheduler started")


def shutdown_scheduler():
    """Shutdown the scheduler."""
    if scheduler.running:
        scheduler.shutdown()
        logger.info("Scheduler shutdown")


def schedule_sweep(interval_minutes: int):
    """(Re)register the sweep job at a fixed interval."""
    scheduler.add_job(
        run_sweep,
        'interval',
        minutes=interval_minutes,
        id=SWEEP_JOB_ID,
        replace_existing=True,
        max_instances=1,
        coalesce=True
    )
    logger.info(f"Scheduled expiration sweep every {interval_minutes} minutes")


def cancel_scheduled_sweep():
    """Stop the periodic sweep; the HTTP trigger keeps working."""
    job = scheduler.get_job(SWEEP_JOB_ID)
    if job:
        scheduler.remove_job(SWEEP_JOB_ID)
        logger.info("Cancelled scheduled expiration sweep")
