from datetime import datetime, timedelta, timezone

from reward_engine.database.models import ActivitySnapshot
from reward_engine.utils.conversions import to_millis

NOW = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)


def ms_ago(**delta):
    return to_millis(NOW - timedelta(**delta))


def make_profile(**overrides):
    data = {
        'userId': 'user-123',
        'totalSessionTimeSeconds': 3600,
        'lastDailyResetTimestamp': to_millis(NOW.replace(hour=0, minute=5)),
    }
    data.update(overrides)
    return data


def make_snapshot(**overrides):
    return ActivitySnapshot(make_profile(**overrides))


def apply_patch(profile, patch):
    """The stored profile after the owner persists a decision's patch"""
    updated = dict(profile)
    updated.update({field: value for field, value in patch.items() if field != 'creditsDelta'})
    return updated
