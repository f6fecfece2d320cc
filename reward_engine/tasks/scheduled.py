import logging
import threading
import schedule
from reward_engine.utils.conversions import utc_now

logger = logging.getLogger(__name__)


def sweep_expired_state(engine):
    """Evict expired rate-limit windows and stale device fingerprints"""
    now = utc_now()
    try:
        removed = engine.rate_limiter.sweep(now)
        removed += engine.trust_scorer.registry.sweep(now)
        logger.info(f"Maintenance sweep at {now.isoformat()} removed {removed} entries")
        return removed
    except Exception as e:
        logger.exception(f"Maintenance sweep failed: {str(e)}")
        return 0


def schedule_maintenance(engine, interval_minutes=5, scheduler=None):
    scheduler = scheduler or schedule.Scheduler()
    scheduler.every(interval_minutes).minutes.do(sweep_expired_state, engine)
    return scheduler


def run_scheduler(scheduler, stop_event=None, poll_seconds=30):
    stop_event = stop_event or threading.Event()
    while not stop_event.is_set():
        scheduler.run_pending()
        stop_event.wait(poll_seconds)


def start_maintenance_thread(engine, interval_minutes=5):
    """Run the maintenance scheduler in a daemon thread; returns its stop event"""
    scheduler = schedule_maintenance(engine, interval_minutes)
    stop_event = threading.Event()
    thread = threading.Thread(
        target=run_scheduler,
        args=(scheduler, stop_event),
        name="reward-engine-maintenance",
        daemon=True
    )
    thread.start()
    logger.info(f"Maintenance scheduler started (every {interval_minutes} min)")
    return stop_event
