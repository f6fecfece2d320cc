from reward_engine.database.models import StreakAction, StreakEvaluation, StreakState
from reward_engine.utils.conversions import to_millis, MS_PER_DAY


def days_inactive(last_active, now):
    """Whole days since the last activity; future timestamps count as 0"""
    elapsed = to_millis(now) - to_millis(last_active)
    return max(0, elapsed // MS_PER_DAY)


def evaluate_streak(last_active, now, recovery_requested=False, login_claimed=False,
                    recovery_cost=50):
    """Decide what happens to the user's streak on this claim.

    - up to 1 idle day: the streak is maintained (at risk after a full day)
    - exactly 2 idle days: recoverable; a recovery request made before today's
      login is claimed saves it for ``recovery_cost`` credits
    - more than 2 idle days: lost, the profile owner resets the count
    """
    if last_active is None:
        return StreakEvaluation(StreakState.ACTIVE, StreakAction.NONE)

    days = days_inactive(last_active, now)

    if days <= 1:
        state = StreakState.AT_RISK if days == 1 else StreakState.ACTIVE
        return StreakEvaluation(state, StreakAction.MAINTAINED, days)

    if days <= 2:
        if recovery_requested and not login_claimed:
            return StreakEvaluation(
                StreakState.ACTIVE, StreakAction.RECOVERED, days, recovery_cost)
        return StreakEvaluation(StreakState.RECOVERABLE, StreakAction.NONE, days)

    return StreakEvaluation(StreakState.LOST, StreakAction.LOST, days)
