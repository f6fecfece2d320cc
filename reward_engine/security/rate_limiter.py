import logging
import math
import threading
from collections import defaultdict
from reward_engine.database.store import RATE_LIMITS
from reward_engine.utils.conversions import to_millis, MS_PER_SECOND
from reward_engine.utils.security import mask_identifier

logger = logging.getLogger(__name__)


class RateLimitResult:
    def __init__(self, allowed, reason=None, retry_after=0, remaining=0):
        self.allowed = allowed
        self.reason = reason
        self.retry_after = retry_after
        self.remaining = remaining

    def __bool__(self):
        return self.allowed

    def __repr__(self):
        if self.allowed:
            return f"RateLimitResult(allowed, remaining={self.remaining})"
        return f"RateLimitResult(denied, retry_after={self.retry_after})"


class KeyedLocks:
    """One lock per key, created on demand and dropped when idle"""

    def __init__(self):
        self._guard = threading.Lock()
        self._locks = {}
        self._users = defaultdict(int)

    def acquire(self, key):
        with self._guard:
            lock = self._locks.setdefault(key, threading.Lock())
            self._users[key] += 1
        lock.acquire()
        return lock

    def release(self, key, lock):
        lock.release()
        with self._guard:
            self._users[key] -= 1
            if self._users[key] <= 0:
                del self._users[key]
                self._locks.pop(key, None)


def build_rate_limit_key(user_id, device_fingerprint=None):
    """Claims are throttled per user, or per user and device when a fingerprint is known"""
    user_id = '' if user_id is None else str(user_id)
    if device_fingerprint:
        return f"{user_id}:{device_fingerprint}"
    return user_id


def seconds_until(reset_at_ms, now_ms):
    return max(1, math.ceil((reset_at_ms - now_ms) / MS_PER_SECOND))


class RateLimiter:
    """Fixed-window claim counter.

    Each key holds ``{count, window_reset_at}`` (epoch ms). A stale window is
    replaced on the next access, so correctness never depends on ``sweep``.
    """

    def __init__(self, store):
        self.store = store
        self._locks = KeyedLocks()

    def check_and_consume(self, key, limit, window_ms, now):
        """Count one claim against ``key``; never raises"""
        key = key if isinstance(key, str) else str(key)
        now_ms = to_millis(now)
        lock = self._locks.acquire(key)
        try:
            entry = self.store.get(RATE_LIMITS, key)
            if not entry or now_ms > entry.get('window_reset_at', 0):
                self.store.set(RATE_LIMITS, key, {
                    'count': 1,
                    'window_reset_at': now_ms + window_ms
                })
                return RateLimitResult(True, remaining=max(0, limit - 1))

            if entry.get('count', 0) >= limit:
                retry_after = seconds_until(entry['window_reset_at'], now_ms)
                logger.warning(
                    f"Claim limit reached for {mask_identifier(key)}; retry in {retry_after}s")
                return RateLimitResult(
                    False,
                    reason=f"Calibration limit reached. Try again in {retry_after} seconds.",
                    retry_after=retry_after
                )

            entry = self.store.increment(RATE_LIMITS, key, 'count') or entry
            return RateLimitResult(True, remaining=max(0, limit - entry.get('count', limit)))
        except Exception as e:
            logger.error(f"Rate limiter store failure for {mask_identifier(key)}: {str(e)}")
            return RateLimitResult(True, remaining=0)
        finally:
            self._locks.release(key, lock)

    def reset(self, key):
        self.store.delete(RATE_LIMITS, key)

    def sweep(self, now):
        """Evict entries whose window has passed"""
        removed = self.store.sweep(RATE_LIMITS, 'window_reset_at', to_millis(now))
        if removed:
            logger.info(f"Evicted {removed} expired rate limit entries")
        return removed


def check_cooldown(last_claim, now, cooldown_seconds):
    """Minimum spacing between two claims of the same profile"""
    if not cooldown_seconds or last_claim is None:
        return RateLimitResult(True)

    elapsed_ms = to_millis(now) - to_millis(last_claim)
    cooldown_ms = cooldown_seconds * MS_PER_SECOND
    if elapsed_ms < 0 or elapsed_ms >= cooldown_ms:
        return RateLimitResult(True)

    retry_after = seconds_until(cooldown_ms, elapsed_ms)
    minutes = math.ceil(retry_after / 60)
    return RateLimitResult(
        False,
        reason=f"Please wait {minutes} minute(s) before claiming again.",
        retry_after=retry_after
    )
