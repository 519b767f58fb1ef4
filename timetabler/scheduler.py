import atexit
import logging

from apscheduler.schedulers.background import BackgroundScheduler

logger = logging.getLogger(__name__)

# Keep APScheduler's own chatter down
logging.getLogger('apscheduler').setLevel(logging.WARNING)

_scheduler = None


def run_daily_generation(app):
    from timetabler.sessions import daily_session_generation
    with app.app_context():
        try:
            daily_session_generation()
        except Exception:
            logger.exception("Daily session generation failed")


def start_scheduler(app):
    """Run session generation for the upcoming days once a day.

    Overlapping runs are safe: generation is idempotent per (template, date).
    """
    global _scheduler
    if _scheduler is not None:
        return _scheduler
    _scheduler = BackgroundScheduler()
    _scheduler.add_job(
        func=run_daily_generation,
        args=[app],
        trigger='cron',
        hour=int(app.config.get('SCHEDULER_HOUR', 0)),
        minute=int(app.config.get('SCHEDULER_MINUTE', 0)),
        id='daily_session_generation',
        name='Generate attendance sessions for the upcoming week',
        replace_existing=True,
    )
    _scheduler.start()
    atexit.register(lambda: _scheduler.shutdown(wait=False))
    logger.info("Session generation scheduler active (daily at %02d:%02d)",
                int(app.config.get('SCHEDULER_HOUR', 0)), int(app.config.get('SCHEDULER_MINUTE', 0)))
    return _scheduler
