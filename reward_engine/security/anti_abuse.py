import logging
from datetime import timedelta
from reward_engine.database.models import Severity, TrustProfile
from reward_engine.database.store import DEVICE_FINGERPRINTS
from reward_engine.features.streaks import days_inactive
from reward_engine.utils.conversions import to_millis, MS_PER_HOUR
from reward_engine.utils.security import mask_identifier

logger = logging.getLogger(__name__)

SPEED_ABUSE_SECONDS = 3
SPEED_ABUSE_MIN_QUESTIONS = 5
LOW_ENGAGEMENT_SECONDS = 8
QUALITY_WINDOW = (15, 120)
BOT_VOLUME_PER_HOUR = 150
STREAK_ANOMALY_DAYS = 2
SESSION_EPSILON_HOURS = 1e-6

SPEED_MULTIPLIER = 0.2
LOW_ENGAGEMENT_MULTIPLIER = 0.6
QUALITY_MULTIPLIER = 1.2
BOT_VOLUME_MULTIPLIER = 0.1
MAX_TRUST_MULTIPLIER = 1.2

RECOMMENDATIONS = {
    'suspicious_speed': 'Take time to read each question carefully',
    'low_engagement': 'Focus on understanding rather than speed',
    'bot_volume': 'Consider taking breaks between study sessions',
    'multi_account_device': 'Use one account per device for best experience',
    'streak_anomaly': 'Maintain consistent daily activity',
    'suspicious_ip': 'Contact support if you believe this is a mistake'
}


class DeviceFingerprintRegistry:
    """Which user ids have claimed from each device fingerprint"""

    def __init__(self, store, ttl_hours=24):
        self.store = store
        self.ttl = timedelta(hours=ttl_hours)

    def register(self, fingerprint, user_id, now):
        if not fingerprint or not user_id:
            return None
        record = self.store.add_member(
            DEVICE_FINGERPRINTS, fingerprint, 'user_ids', user_id,
            {'last_seen': to_millis(now)}
        )
        record['distinct_user_count'] = len(record.get('user_ids', []))
        return record

    def distinct_users(self, fingerprint, now):
        """Distinct accounts seen on the device within the registry TTL"""
        if not fingerprint:
            return 0
        record = self.store.get(DEVICE_FINGERPRINTS, fingerprint)
        if not record:
            return 0
        if to_millis(now) - record.get('last_seen', 0) > self.ttl.total_seconds() * 1000:
            return 0
        return len(record.get('user_ids', []))

    def sweep(self, now):
        cutoff = to_millis(now - self.ttl)
        removed = self.store.sweep(DEVICE_FINGERPRINTS, 'last_seen', cutoff)
        if removed:
            logger.info(f"Evicted {removed} stale device fingerprints")
        return removed


class TrustScorer:
    """Turns an activity snapshot into a TrustProfile.

    Rules run in a fixed order; severity only ever rises. Rules whose inputs
    are missing are skipped rather than treated as suspicious.
    """

    def __init__(self, registry, max_accounts_per_device=3, suspicious_ips=None):
        self.registry = registry
        self.max_accounts_per_device = max_accounts_per_device
        self.suspicious_ips = set(suspicious_ips or [])

    def register_device(self, snapshot, now):
        return self.registry.register(snapshot.device_fingerprint, snapshot.user_id, now)

    def score(self, snapshot, now):
        flags = []
        severity = Severity.LOW
        multiplier = 1.0

        def flag(name, level):
            nonlocal severity
            if name not in flags:
                flags.append(name)
            severity = severity.raise_to(level)

        # Pacing
        avg = pacing_seconds(snapshot)
        if avg is not None:
            if avg < SPEED_ABUSE_SECONDS and snapshot.questions_answered > SPEED_ABUSE_MIN_QUESTIONS:
                flag('suspicious_speed', Severity.HIGH)
                multiplier = SPEED_MULTIPLIER
            elif avg < LOW_ENGAGEMENT_SECONDS:
                flag('low_engagement', Severity.MEDIUM)
                multiplier = min(multiplier, LOW_ENGAGEMENT_MULTIPLIER)
            elif QUALITY_WINDOW[0] <= avg <= QUALITY_WINDOW[1]:
                multiplier = max(multiplier, QUALITY_MULTIPLIER)

        # Volume
        qph = questions_per_hour(snapshot)
        if qph is not None and qph > BOT_VOLUME_PER_HOUR:
            flag('bot_volume', Severity.HIGH)
            multiplier = min(multiplier, BOT_VOLUME_MULTIPLIER)

        # Shared devices
        if snapshot.device_fingerprint:
            accounts = self.registry.distinct_users(snapshot.device_fingerprint, now)
            if accounts > self.max_accounts_per_device:
                flag('multi_account_device', Severity.HIGH)

        # Stale streak
        if snapshot.last_active is not None and snapshot.streak_count > 0:
            if days_inactive(snapshot.last_active, now) > STREAK_ANOMALY_DAYS:
                flag('streak_anomaly', Severity.MEDIUM)

        if snapshot.ip_address in self.suspicious_ips:
            flag('suspicious_ip', Severity.HIGH)

        multiplier = min(max(multiplier, 0.0), MAX_TRUST_MULTIPLIER)
        should_block = severity is Severity.HIGH and len(flags) >= 2

        if flags:
            logger.warning(
                f"Abuse signals for {mask_identifier(snapshot.user_id)}: "
                f"{', '.join(flags)} (severity={severity.value}, block={should_block})"
            )

        return TrustProfile(
            severity=severity,
            flags=flags,
            trust_multiplier=multiplier,
            should_block=should_block,
            recommendations=[RECOMMENDATIONS[name] for name in flags],
            questions_per_hour=round(qph, 2) if qph is not None else None
        )


def pacing_seconds(snapshot):
    """Average answer time, only meaningful once something was answered"""
    if snapshot.questions_answered <= 0:
        return None
    return snapshot.average_question_time_seconds


def questions_per_hour(snapshot):
    """Answer rate over the session; a missing session time counts as an instant one"""
    if snapshot.questions_answered <= 0:
        return None
    hours = snapshot.total_session_time_seconds * 1000 / MS_PER_HOUR
    return snapshot.questions_answered / max(hours, SESSION_EPSILON_HOURS)


def calculate_quality_score(snapshot):
    """Informational engagement/consistency/learning scores, each 0-100"""
    avg = pacing_seconds(snapshot)
    session = snapshot.total_session_time_seconds
    qph = questions_per_hour(snapshot)

    # Engagement
    engagement = 0
    if avg is not None and 10 <= avg <= 120:
        engagement += 40
    elif avg is not None and 5 <= avg <= 180:
        engagement += 25
    else:
        engagement += 10

    if 1800 <= session <= 5400:
        engagement += 30
    elif 900 <= session <= 7200:
        engagement += 20
    else:
        engagement += 10

    if qph is not None and 10 <= qph <= 30:
        engagement += 30
    elif qph is not None and 5 <= qph <= 50:
        engagement += 20
    else:
        engagement += 5

    # Consistency
    consistency = 50
    if avg is not None and 10 <= avg <= 120:
        consistency += 30
    if qph is not None and qph <= 40:
        consistency += 20

    # Learning
    learning = 50
    if avg is not None and 15 <= avg <= 90:
        learning += 30
    if 1200 <= session <= 3600:
        learning += 20

    engagement = min(engagement, 100)
    consistency = min(consistency, 100)
    learning = min(learning, 100)

    return {
        'engagementScore': engagement,
        'consistencyScore': consistency,
        'learningScore': learning,
        'overallQuality': round((engagement + consistency + learning) / 3, 2)
    }
