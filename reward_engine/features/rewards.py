import logging
import math
from reward_engine.database.models import (
    CLAIM_FLAG_FIELDS, DAILY_TASKS, RewardDecision, StreakAction, StreakEvaluation,
    StreakState, Tier
)
from reward_engine.features.daily_reset import next_reset_time, should_reset
from reward_engine.features.streaks import evaluate_streak
from reward_engine.security.anti_abuse import calculate_quality_score
from reward_engine.security.rate_limiter import build_rate_limit_key, check_cooldown
from reward_engine.utils.conversions import to_millis, utc_now
from reward_engine.utils.security import (
    AuthenticationRequired, InternalComputationError, RateLimited, mask_identifier
)

logger = logging.getLogger(__name__)

# Guards floor() against float noise such as 10 * 0.6 == 5.999...
ROUNDING_EPSILON = 1e-9


def floor_credits(value):
    return int(math.floor(value + ROUNDING_EPSILON))


class RewardPolicy:
    """The canonical daily task table: rewards, tier goals, caps and multipliers"""

    def __init__(self, task_rewards, tier_goals, max_daily_credits, pro_multiplier,
                 recovery_cost):
        self.task_rewards = dict(task_rewards)
        self.tier_goals = {Tier.lookup(name): dict(goals) for name, goals in tier_goals.items()}
        self.max_daily_credits = dict(max_daily_credits)
        self.pro_multiplier = pro_multiplier
        self.recovery_cost = recovery_cost

    @classmethod
    def from_config(cls, config):
        return cls(
            task_rewards=config.TASK_REWARDS,
            tier_goals=config.TIER_GOALS,
            max_daily_credits=config.MAX_DAILY_CREDITS,
            pro_multiplier=config.PRO_MULTIPLIER,
            recovery_cost=config.STREAK_RECOVERY_COST
        )

    def goals(self, tier):
        return self.tier_goals.get(Tier.lookup(tier), self.tier_goals[Tier.BRONZE])

    def max_daily(self, is_pro):
        return self.max_daily_credits['pro' if is_pro else 'standard']

    def eligible_tasks(self, snapshot):
        """Rewards for every task completed today and not yet claimed"""
        goals = self.goals(snapshot.tier)
        progress = {
            'login': True,
            'questions': snapshot.questions_answered >= goals['questions'],
            'mock': snapshot.tests_finished >= goals['tests'],
            'mistakes': snapshot.mistakes_reviewed >= goals['mistakes']
        }
        return {
            task: self.task_rewards[task]
            for task in DAILY_TASKS
            if progress[task] and not snapshot.claimed[task]
        }


class RewardPolicyEngine:
    """Runs a claim end to end.

    ``claim`` applies the throttles, the daily reset, the streak machine and
    the trust scorer before handing everything to ``evaluate``, which is pure.
    """

    def __init__(self, trust_scorer, rate_limiter, policy, rate_limit=12,
                 rate_window_ms=3600000, cooldown_seconds=300):
        self.trust_scorer = trust_scorer
        self.rate_limiter = rate_limiter
        self.policy = policy
        self.rate_limit = rate_limit
        self.rate_window_ms = rate_window_ms
        self.cooldown_seconds = cooldown_seconds

    def claim(self, snapshot, now=None):
        now = now or utc_now()
        if not snapshot.user_id:
            raise AuthenticationRequired('Authorization required')

        cooldown = check_cooldown(snapshot.last_claim, now, self.cooldown_seconds)
        if not cooldown:
            raise RateLimited(cooldown.reason, cooldown.retry_after, cooldown=True)

        key = build_rate_limit_key(snapshot.user_id, snapshot.device_fingerprint)
        limit = self.rate_limiter.check_and_consume(key, self.rate_limit, self.rate_window_ms, now)
        if not limit:
            raise RateLimited(limit.reason, limit.retry_after)

        try:
            reset = should_reset(now, snapshot.last_daily_reset)
            if reset:
                snapshot = snapshot.with_daily_counters_reset()

            streak = evaluate_streak(
                snapshot.last_active, now,
                recovery_requested=snapshot.recovery_requested,
                login_claimed=snapshot.claimed['login'],
                recovery_cost=self.policy.recovery_cost
            )

            self.trust_scorer.register_device(snapshot, now)
            trust = self.trust_scorer.score(snapshot, now)

            decision = self.evaluate(snapshot, trust, streak, now, should_reset_daily=reset)
        except Exception as e:
            logger.exception(f"Reward evaluation failed for {mask_identifier(snapshot.user_id)}")
            raise InternalComputationError('Calibration sync failed') from e

        logger.info(
            f"Claim for {mask_identifier(snapshot.user_id)}: reward={decision.reward} "
            f"tasks={decision.tasks_completed} streak={decision.streak_action.value} "
            f"trust={trust.trust_multiplier} blocked={decision.blocked}"
        )
        return decision

    def evaluate(self, snapshot, trust, streak, now, should_reset_daily=False):
        """Compute the reward for an already normalized snapshot"""
        if trust.should_block and streak.action is StreakAction.RECOVERED:
            # a withheld claim cannot buy back the streak
            streak = StreakEvaluation(
                StreakState.RECOVERABLE, StreakAction.NONE, streak.days_inactive)

        breakdown = self.policy.eligible_tasks(snapshot)
        raw = sum(breakdown.values())

        trusted = floor_credits(raw * trust.trust_multiplier)
        boosted = floor_credits(trusted * self.policy.pro_multiplier) if snapshot.is_pro else trusted

        max_daily = self.policy.max_daily(snapshot.is_pro)
        capped = max(0, min(boosted, max_daily - snapshot.daily_credit_earned))
        reward = 0 if trust.should_block else capped

        adjustments = {
            'trust': trusted - raw,
            'pro': boosted - trusted,
            'cap': capped - boosted,
            'block': reward - capped
        }

        warnings = []
        recommended = []
        if capped < boosted:
            warnings.append(f"Daily limit reached. {boosted - capped} credits capped.")
        if trust.should_block:
            warnings.append("Reward withheld: unusual activity detected.")

        if streak.action is StreakAction.RECOVERED:
            recommended.append('Streak saved!')
        elif streak.action is StreakAction.LOST:
            warnings.append('Inactivity: Streak reset.')
        elif streak.state is StreakState.RECOVERABLE:
            recommended.append('Request a streak recovery before claiming your login reward.')
        recommended.extend(trust.recommendations)

        if trust.should_block:
            claimed_flags = dict(snapshot.claimed)
            tasks_completed = []
        else:
            claimed_flags = {
                task: snapshot.claimed[task] or task in breakdown for task in DAILY_TASKS
            }
            tasks_completed = list(breakdown)

        return RewardDecision({
            'reward': reward,
            'breakdown': breakdown,
            'adjustments': adjustments,
            'tasks_completed': tasks_completed,
            'claimed_flags': claimed_flags,
            'streak_action': streak.action,
            'streak_state': streak.state,
            'recovery_cost': streak.recovery_cost,
            'should_reset_daily': should_reset_daily,
            'next_reset_time': next_reset_time(now),
            'trust': trust,
            'blocked': trust.should_block,
            'warnings': warnings,
            'recommended_actions': recommended,
            'quality_score': calculate_quality_score(snapshot),
            'profile_patch': self.build_profile_patch(
                snapshot, claimed_flags, reward, streak, now, should_reset_daily,
                blocked=trust.should_block)
        })

    def build_profile_patch(self, snapshot, claimed_flags, reward, streak, now,
                            should_reset_daily, blocked=False):
        """Fields the profile owner persists after this claim"""
        now_ms = to_millis(now)
        patch = {}
        if should_reset_daily or snapshot.last_daily_reset is None:
            patch['lastDailyResetTimestamp'] = now_ms
        if should_reset_daily:
            patch.update({
                'questionsAnswered': 0,
                'testsFinished': 0,
                'mistakesReviewed': 0,
                'adViewsToday': 0
            })
        for task, field in CLAIM_FLAG_FIELDS.items():
            patch[field] = claimed_flags[task]
        patch['dailyCreditEarned'] = snapshot.daily_credit_earned + reward
        if streak.action is StreakAction.LOST:
            patch['streakCount'] = 0
        patch['creditsDelta'] = reward - streak.recovery_cost
        patch['lastClaimTimestamp'] = now_ms
        # activity only counts once the streak is settled and the claim was paid
        if not blocked and streak.state is not StreakState.RECOVERABLE:
            patch['lastActiveTimestamp'] = now_ms
        return patch
