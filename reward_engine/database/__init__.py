from .models import (
    ActivitySnapshot,
    RewardDecision,
    TrustProfile,
    StreakEvaluation,
    Tier,
    Severity,
    StreakAction,
    StreakState
)
from .store import KeyValueStore, MemoryStore, MongoStore
