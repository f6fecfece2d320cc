from datetime import datetime, time, timedelta, timezone
from reward_engine.utils.conversions import to_datetime, to_millis


def should_reset(now, last_reset):
    """True when ``now`` falls on a later UTC calendar day than the last reset"""
    last_reset = to_datetime(last_reset)
    if last_reset is None:
        return False
    return to_datetime(now).date() != last_reset.date()


def next_reset_time(now):
    """Epoch ms of the next UTC midnight"""
    tomorrow = to_datetime(now).date() + timedelta(days=1)
    return to_millis(datetime.combine(tomorrow, time.min, tzinfo=timezone.utc))
