from datetime import timedelta
from unittest.mock import MagicMock

import pytest

from reward_engine.database.models import (
    ActivitySnapshot, StreakAction, StreakEvaluation, StreakState, Tier, TrustProfile, Severity
)
from reward_engine.utils.conversions import to_millis
from reward_engine.utils.security import (
    AuthenticationRequired, InternalComputationError, RateLimited
)
from helpers import NOW, apply_patch, make_profile, make_snapshot, ms_ago

NO_STREAK = StreakEvaluation(StreakState.ACTIVE, StreakAction.NONE)


def test_bronze_questions_goal_with_login(engine):
    decision = engine.claim(make_snapshot(questionsAnswered=25, userTier='Bronze'), NOW)

    assert decision.breakdown == {'login': 5, 'questions': 10}
    assert decision.reward == 15
    assert decision.tasks_completed == ['login', 'questions']
    assert decision.trust.trust_multiplier == 1.0


def test_progressive_cap_limits_reward(engine):
    decision = engine.claim(make_snapshot(
        testsFinished=1, mistakesReviewed=10, dailyCreditEarned=75
    ), NOW)

    assert sum(decision.breakdown.values()) == 30
    assert decision.reward == 5
    assert decision.adjustments['cap'] == -25
    assert 'Daily limit reached. 25 credits capped.' in decision.warnings
    assert decision.profile_patch['dailyCreditEarned'] == 80


def test_second_claim_with_claimed_flags_grants_nothing(engine):
    first = engine.claim(make_snapshot(questionsAnswered=25, testsFinished=1), NOW)
    assert first.reward == 30

    flags = first.to_dict()['claimedFlags']
    second = engine.claim(make_snapshot(
        questionsAnswered=30, testsFinished=2,
        dailyCreditEarned=first.profile_patch['dailyCreditEarned'], **flags
    ), NOW)

    assert second.reward == 0
    assert second.breakdown == {}
    assert all(second.claimed_flags[task] for task in ('login', 'questions', 'mock'))


@pytest.mark.parametrize("is_pro, earned", [
    (False, 0), (False, 60), (False, 80), (False, 200),
    (True, 0), (True, 150), (True, 199), (True, 200),
])
def test_cap_invariant(policy, engine, is_pro, earned):
    snapshot = make_snapshot(
        questionsAnswered=40, testsFinished=3, mistakesReviewed=20,
        averageQuestionTimeSeconds=30, isPro=is_pro, dailyCreditEarned=earned
    )
    trust = engine.trust_scorer.score(snapshot, NOW)
    decision = engine.evaluate(snapshot, trust, NO_STREAK, NOW)

    max_daily = policy.max_daily(is_pro)
    assert decision.reward >= 0
    assert decision.reward <= max(0, max_daily - earned)


def test_blocked_claim_pays_nothing_and_keeps_flags(engine):
    blocked = TrustProfile(Severity.HIGH, ['suspicious_speed', 'bot_volume'], 0.1, True)
    decision = engine.evaluate(
        make_snapshot(questionsAnswered=25, isPro=True), blocked, NO_STREAK, NOW)

    assert decision.reward == 0
    assert decision.blocked is True
    assert decision.claimed_flags == {
        'login': False, 'questions': False, 'mock': False, 'mistakes': False
    }
    assert decision.to_dict()['abuseFlags'] == ['suspicious_speed', 'bot_volume']


def test_bot_claim_end_to_end_is_blocked(engine):
    decision = engine.claim(make_snapshot(
        questionsAnswered=100, averageQuestionTimeSeconds=1, totalSessionTimeSeconds=600
    ), NOW)

    assert decision.blocked is True
    assert decision.reward == 0
    assert decision.to_dict()['severity'] == 'high'
    assert 'lastActiveTimestamp' not in decision.profile_patch


def test_trust_and_pro_multipliers_compose(engine):
    snapshot = make_snapshot(
        questionsAnswered=25, testsFinished=1, mistakesReviewed=10,
        averageQuestionTimeSeconds=30, isPro=True
    )
    decision = engine.claim(snapshot, NOW)

    # 40 raw -> 48 with careful pacing -> 72 with Pro
    assert decision.adjustments == {'trust': 8, 'pro': 24, 'cap': 0, 'block': 0}
    assert decision.reward == 72


def test_low_trust_rounds_down(engine):
    decision = engine.claim(make_snapshot(
        questionsAnswered=25, averageQuestionTimeSeconds=5
    ), NOW)
    # 15 * 0.6 = 9
    assert decision.reward == 9


@pytest.mark.parametrize("tier, answered, earns_questions", [
    ('Silver', 24, False), ('Silver', 25, True),
    ('Gold', 29, False), ('Platinum', 35, True),
    ('Diamond', 20, True), (None, 19, False),
])
def test_tier_goals(engine, tier, answered, earns_questions):
    decision = engine.claim(make_snapshot(questionsAnswered=answered, userTier=tier), NOW)
    assert ('questions' in decision.breakdown) is earns_questions


def test_unknown_tier_falls_back_to_bronze(policy):
    assert policy.goals('Diamond') == policy.goals(Tier.BRONZE)
    assert policy.goals('gold') == {'questions': 30, 'tests': 2, 'mistakes': 15}


def test_negative_counts_are_clamped(engine):
    decision = engine.claim(make_snapshot(
        questionsAnswered=-50, testsFinished='lots', dailyCreditEarned=-100
    ), NOW)
    assert decision.breakdown == {'login': 5}
    assert decision.reward == 5


def test_new_day_zeroes_counters_before_evaluation(engine):
    decision = engine.claim(make_snapshot(
        questionsAnswered=25, taskLoginClaimed=True, taskQuestionsClaimed=True,
        dailyCreditEarned=80, lastDailyResetTimestamp=ms_ago(days=1)
    ), NOW)

    assert decision.should_reset_daily is True
    assert decision.breakdown == {'login': 5}
    assert decision.reward == 5
    patch = decision.profile_patch
    assert patch['questionsAnswered'] == 0
    assert patch['adViewsToday'] == 0
    assert patch['taskQuestionsClaimed'] is False
    assert patch['dailyCreditEarned'] == 5
    assert patch['lastDailyResetTimestamp'] == to_millis(NOW)


def test_streak_recovery_is_charged(engine):
    decision = engine.claim(make_snapshot(
        streakCount=9, lastActiveTimestamp=ms_ago(days=2, hours=2),
        isStreakRecoveryRequested=True
    ), NOW)

    assert decision.streak_action is StreakAction.RECOVERED
    assert decision.recovery_cost == 50
    assert decision.reward == 5
    assert decision.profile_patch['creditsDelta'] == -45
    assert 'Streak saved!' in decision.recommended_actions


def test_lost_streak_resets_count_in_patch(engine):
    decision = engine.claim(make_snapshot(streakCount=10, lastActiveTimestamp=ms_ago(days=3)), NOW)

    assert decision.streak_action is StreakAction.LOST
    assert decision.profile_patch['streakCount'] == 0
    assert 'streak_anomaly' in decision.trust.flags
    assert decision.to_dict()['recoveryCost'] is None


def test_skipping_recovery_lets_the_streak_lapse(engine):
    profile = make_profile(streakCount=10, lastActiveTimestamp=ms_ago(days=2, hours=3))
    first = engine.claim(ActivitySnapshot(profile), NOW)

    assert first.streak_action is StreakAction.NONE
    assert first.streak_state is StreakState.RECOVERABLE
    assert first.reward == 5
    assert first.profile_patch['creditsDelta'] == 5
    assert 'lastActiveTimestamp' not in first.profile_patch

    profile = apply_patch(profile, first.profile_patch)
    second = engine.claim(ActivitySnapshot(profile), NOW + timedelta(days=1))

    assert second.streak_action is StreakAction.LOST
    assert second.profile_patch['streakCount'] == 0


def test_recovered_streak_carries_into_next_day(engine):
    profile = make_profile(
        streakCount=10, lastActiveTimestamp=ms_ago(days=2, hours=3),
        isStreakRecoveryRequested=True
    )
    first = engine.claim(ActivitySnapshot(profile), NOW)

    assert first.streak_action is StreakAction.RECOVERED
    assert first.profile_patch['lastActiveTimestamp'] == to_millis(NOW)

    profile = apply_patch(profile, first.profile_patch)
    profile['isStreakRecoveryRequested'] = False
    second = engine.claim(ActivitySnapshot(profile), NOW + timedelta(days=1))

    assert second.streak_action is StreakAction.MAINTAINED
    assert second.streak_state is StreakState.AT_RISK
    assert second.recovery_cost == 0
    assert second.profile_patch['creditsDelta'] == 5


def test_blocked_claim_cannot_recover_streak(engine):
    decision = engine.claim(make_snapshot(
        questionsAnswered=100, averageQuestionTimeSeconds=1, totalSessionTimeSeconds=600,
        streakCount=9, lastActiveTimestamp=ms_ago(days=2, hours=2),
        isStreakRecoveryRequested=True
    ), NOW)

    assert decision.blocked is True
    assert decision.streak_action is StreakAction.NONE
    assert decision.streak_state is StreakState.RECOVERABLE
    assert decision.recovery_cost == 0
    assert decision.profile_patch['creditsDelta'] == 0
    assert decision.profile_patch['taskLoginClaimed'] is False
    assert 'lastActiveTimestamp' not in decision.profile_patch
    assert 'Streak saved!' not in decision.recommended_actions


def test_next_reset_time_reported(engine):
    decision = engine.claim(make_snapshot(), NOW)
    assert decision.next_reset_time == to_millis(NOW.replace(hour=0) + timedelta(days=1))


def test_missing_user_requires_authentication(engine):
    with pytest.raises(AuthenticationRequired):
        engine.claim(make_snapshot(userId=''), NOW)


def test_cooldown_rejects_before_consuming_limit(engine, store):
    with pytest.raises(RateLimited) as excinfo:
        engine.claim(make_snapshot(lastClaimTimestamp=ms_ago(minutes=1)), NOW)

    assert excinfo.value.cooldown is True
    assert excinfo.value.retry_after == 240
    assert len(store) == 0


def test_rate_limit_applies_per_user_and_device(engine):
    snapshot = make_snapshot(deviceFingerprint='fp-1')
    for _ in range(12):
        engine.claim(snapshot, NOW)

    with pytest.raises(RateLimited) as excinfo:
        engine.claim(snapshot, NOW + timedelta(minutes=10))
    assert excinfo.value.retry_after == 3000

    # another device still has its own window
    engine.claim(make_snapshot(deviceFingerprint='fp-2'), NOW)


def test_unexpected_failure_surfaces_as_internal_error(engine):
    engine.trust_scorer = MagicMock()
    engine.trust_scorer.score.side_effect = ZeroDivisionError

    with pytest.raises(InternalComputationError):
        engine.claim(make_snapshot(), NOW)


def test_decision_serializes_to_json_shape(engine):
    payload = engine.claim(make_snapshot(questionsAnswered=25), NOW).to_dict()

    assert payload['claimedFlags'] == {
        'taskLoginClaimed': True,
        'taskQuestionsClaimed': True,
        'taskMockClaimed': False,
        'taskMistakesClaimed': False
    }
    assert payload['streakAction'] == 'none'
    assert payload['shouldResetDaily'] is False
    assert payload['abuseFlags'] is None
    assert payload['warning'] is None
