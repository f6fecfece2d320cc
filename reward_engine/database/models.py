from enum import Enum
from typing import Optional
from reward_engine.utils.conversions import (
    to_bool, to_datetime, to_non_negative_int, to_optional_seconds
)


class Tier(Enum):
    BRONZE = "Bronze"
    SILVER = "Silver"
    GOLD = "Gold"
    PLATINUM = "Platinum"

    @classmethod
    def lookup(cls, value) -> "Tier":
        """Resolve a tier name; unknown values fall back to Bronze"""
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            for tier in cls:
                if tier.value.lower() == value.strip().lower():
                    return tier
        return cls.BRONZE


class Severity(Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

    @property
    def rank(self):
        return _SEVERITY_ORDER.index(self)

    def raise_to(self, other: "Severity") -> "Severity":
        return other if other.rank > self.rank else self


_SEVERITY_ORDER = [Severity.LOW, Severity.MEDIUM, Severity.HIGH]


class StreakAction(Enum):
    NONE = "none"
    MAINTAINED = "maintained"
    RECOVERED = "recovered"
    LOST = "lost"


class StreakState(Enum):
    ACTIVE = "active"
    AT_RISK = "at_risk"
    RECOVERABLE = "recoverable"
    LOST = "lost"


DAILY_TASKS = ('login', 'questions', 'mock', 'mistakes')

CLAIM_FLAG_FIELDS = {
    'login': 'taskLoginClaimed',
    'questions': 'taskQuestionsClaimed',
    'mock': 'taskMockClaimed',
    'mistakes': 'taskMistakesClaimed'
}


def _first(data, *keys):
    for key in keys:
        if data.get(key) is not None:
            return data.get(key)
    return None


class ActivitySnapshot:
    """One claim's view of the user's profile and today's activity.

    Built from the request JSON (camelCase keys, legacy aliases accepted).
    Counters are clamped so a malformed report can only lower the reward.
    """

    def __init__(self, data):
        user_id = data.get('userId')
        self.user_id = str(user_id).strip() if user_id is not None else ''
        self.questions_answered = to_non_negative_int(
            _first(data, 'questionsAnswered', 'dailyQuestionsAnswered'))
        self.tests_finished = to_non_negative_int(
            _first(data, 'testsFinished', 'dailyTestsFinished'))
        self.mistakes_reviewed = to_non_negative_int(data.get('mistakesReviewed'))
        self.streak_count = to_non_negative_int(data.get('streakCount'))
        self.daily_credit_earned = to_non_negative_int(data.get('dailyCreditEarned'))
        self.ad_views_today = to_non_negative_int(data.get('adViewsToday'))
        self.total_session_time_seconds = to_non_negative_int(
            _first(data, 'totalSessionTimeSeconds', 'totalSessionTime'))
        self.average_question_time_seconds = to_optional_seconds(
            _first(data, 'averageQuestionTimeSeconds', 'averageQuestionTime'))
        self.claimed = {
            task: to_bool(data.get(field, False))
            for task, field in CLAIM_FLAG_FIELDS.items()
        }
        self.last_active = to_datetime(_first(data, 'lastActiveTimestamp', 'lastActiveDate'))
        self.last_daily_reset = to_datetime(_first(data, 'lastDailyResetTimestamp', 'lastTaskReset'))
        self.last_claim = to_datetime(_first(data, 'lastClaimTimestamp', 'lastClaimTime'))
        self.is_pro = to_bool(data.get('isPro', False))
        self.tier = Tier.lookup(data.get('userTier'))
        fingerprint = data.get('deviceFingerprint')
        self.device_fingerprint = str(fingerprint).strip() if fingerprint else None
        self.ip_address = str(data.get('ipAddress') or 'unknown')
        self.recovery_requested = to_bool(data.get('isStreakRecoveryRequested', False))

    def with_daily_counters_reset(self) -> "ActivitySnapshot":
        """Copy of this snapshot with every per-day counter and claim flag zeroed"""
        copy = ActivitySnapshot.__new__(ActivitySnapshot)
        copy.__dict__.update(self.__dict__)
        copy.questions_answered = 0
        copy.tests_finished = 0
        copy.mistakes_reviewed = 0
        copy.daily_credit_earned = 0
        copy.ad_views_today = 0
        copy.claimed = {task: False for task in DAILY_TASKS}
        return copy


class TrustProfile:
    def __init__(self, severity=Severity.LOW, flags=None, trust_multiplier=1.0,
                 should_block=False, recommendations=None, questions_per_hour=None):
        self.severity = severity
        self.flags = list(flags or [])
        self.trust_multiplier = trust_multiplier
        self.should_block = should_block
        self.recommendations = list(recommendations or [])
        self.questions_per_hour = questions_per_hour

    def to_dict(self):
        return {
            'severity': self.severity.value,
            'flags': self.flags,
            'trustMultiplier': self.trust_multiplier,
            'shouldBlock': self.should_block,
            'recommendations': self.recommendations,
            'questionsPerHour': self.questions_per_hour
        }


class StreakEvaluation:
    def __init__(self, state, action, days_inactive=None, recovery_cost=0):
        self.state = state
        self.action = action
        self.days_inactive = days_inactive
        self.recovery_cost = recovery_cost

    def to_dict(self):
        return {
            'state': self.state.value,
            'action': self.action.value,
            'daysInactive': self.days_inactive,
            'recoveryCost': self.recovery_cost
        }


class RewardDecision:
    def __init__(self, data):
        self.reward = data.get('reward', 0)
        self.breakdown = data.get('breakdown', {})
        self.adjustments = data.get('adjustments', {})
        self.tasks_completed = data.get('tasks_completed', [])
        self.claimed_flags = data.get('claimed_flags', {})
        self.streak_action = data.get('streak_action', StreakAction.NONE)
        self.streak_state = data.get('streak_state', StreakState.ACTIVE)
        self.recovery_cost = data.get('recovery_cost', 0)
        self.should_reset_daily = data.get('should_reset_daily', False)
        self.next_reset_time = data.get('next_reset_time')
        self.trust: Optional[TrustProfile] = data.get('trust')
        self.blocked = data.get('blocked', False)
        self.warnings = data.get('warnings', [])
        self.recommended_actions = data.get('recommended_actions', [])
        self.quality_score = data.get('quality_score', {})
        self.profile_patch = data.get('profile_patch', {})

    def to_dict(self):
        trust = self.trust or TrustProfile()
        return {
            'reward': self.reward,
            'breakdown': self.breakdown,
            'adjustments': self.adjustments,
            'tasksCompleted': self.tasks_completed,
            'claimedFlags': {
                CLAIM_FLAG_FIELDS[task]: claimed for task, claimed in self.claimed_flags.items()
            },
            'streakAction': self.streak_action.value,
            'streakState': self.streak_state.value,
            'recoveryCost': self.recovery_cost or None,
            'shouldResetDaily': self.should_reset_daily,
            'nextResetTime': self.next_reset_time,
            'trustMultiplier': trust.trust_multiplier,
            'severity': trust.severity.value,
            'abuseFlags': trust.flags or None,
            'blocked': self.blocked,
            'warning': ' '.join(self.warnings) or None,
            'recommendedActions': self.recommended_actions,
            'qualityScore': self.quality_score,
            'profilePatch': self.profile_patch
        }
