"""
Background scheduler for automated tasks.

Handles:
- Points expiration (daily at POINTS_EXPIRY_HOUR UTC)
"""
import os
import atexit
import logging

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger

logger = logging.getLogger(__name__)

_scheduler = None
_flask_app = None


def init_scheduler(app):
    """
    Initialize the background scheduler.

    Only runs when ENABLE_SCHEDULER is on, never under testing, and only once
    per host (gunicorn workers share the SCHEDULER_RUNNING flag).
    """
    global _scheduler, _flask_app

    _flask_app = app

    if app.config.get('TESTING'):
        logger.debug('[Scheduler] Disabled in testing mode')
        return None

    if not app.config.get('ENABLE_SCHEDULER'):
        logger.info('[Scheduler] Disabled (set ENABLE_SCHEDULER=true)')
        return None

    if os.getenv('SCHEDULER_RUNNING') == 'true':
        logger.info('[Scheduler] Already running in another process')
        return None

    _scheduler = BackgroundScheduler(
        timezone='UTC',
        job_defaults={
            'coalesce': True,
            'max_instances': 1,
            'misfire_grace_time': 3600,
        }
    )

    hour = app.config.get('POINTS_EXPIRY_HOUR', 3)
    _scheduler.add_job(
        run_points_expiration,
        trigger=CronTrigger(hour=hour, minute=0),
        id='points_expiration',
        name='Expire loyalty points past the store expiry period',
        replace_existing=True
    )

    _scheduler.start()
    os.environ['SCHEDULER_RUNNING'] = 'true'
    logger.info(f'[Scheduler] Started: points expiration daily at {hour:02d}:00 UTC')

    atexit.register(shutdown_scheduler)
    return _scheduler


def shutdown_scheduler():
    """Gracefully shutdown the scheduler."""
    global _scheduler
    if _scheduler and _scheduler.running:
        _scheduler.shutdown(wait=False)
        logger.info('[Scheduler] Shutdown complete')


def run_points_expiration():
    """
    Expire points for every store with an expiry period configured.
    One store failing does not stop the others.
    """
    if not _flask_app:
        logger.error('[Scheduler] Flask app not initialized')
        return

    logger.info('[Scheduler] Processing points expiration...')

    with _flask_app.app_context():
        from ..extensions import db
        from ..models import LoyaltySettings
        from ..services.loyalty_engine import LoyaltyEngine

        store_ids = [
            row.store_id for row in
            LoyaltySettings.query.filter(LoyaltySettings.points_expiry_months.isnot(None)).all()
        ]

        total_points = 0
        for store_id in store_ids:
            try:
                summary = LoyaltyEngine(store_id).expire_store()
                total_points += summary['points_expired']
            except Exception as e:
                db.session.rollback()
                logger.error(f'[Scheduler] Points expiration failed for store {store_id}: {e}')

        logger.info(
            f'[Scheduler] Points expiration complete: {len(store_ids)} stores, '
            f'{total_points} points expired'
        )
