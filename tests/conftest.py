import pytest

from reward_engine.database.store import MemoryStore
from reward_engine.features.rewards import RewardPolicy, RewardPolicyEngine
from reward_engine.security.anti_abuse import DeviceFingerprintRegistry, TrustScorer
from reward_engine.security.rate_limiter import RateLimiter
import config as config_module


@pytest.fixture()
def store():
    return MemoryStore()


@pytest.fixture()
def registry(store):
    return DeviceFingerprintRegistry(store, ttl_hours=24)


@pytest.fixture()
def scorer(registry):
    return TrustScorer(registry, max_accounts_per_device=3, suspicious_ips={'203.0.113.9'})


@pytest.fixture()
def policy():
    return RewardPolicy(
        task_rewards=config_module.TASK_REWARDS,
        tier_goals=config_module.TIER_GOALS,
        max_daily_credits=config_module.MAX_DAILY_CREDITS,
        pro_multiplier=config_module.PRO_MULTIPLIER,
        recovery_cost=config_module.STREAK_RECOVERY_COST
    )


@pytest.fixture()
def engine(scorer, store, policy):
    return RewardPolicyEngine(
        trust_scorer=scorer,
        rate_limiter=RateLimiter(store),
        policy=policy,
        rate_limit=12,
        rate_window_ms=3600000,
        cooldown_seconds=300
    )
