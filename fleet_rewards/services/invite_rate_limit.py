"""
Per-inviter rate limit on referral issuing, backed by Redis counters.
"""
import logging

import redis

from fleet_rewards.core.config import settings

logger = logging.getLogger("referral")


class InviteRateLimiter:
    def __init__(self, client: redis.Redis) -> None:
        self.client = client
        self.limit = settings.referral_daily_invite_limit
        self.window_seconds = settings.referral_invite_limit_window_seconds

    def allow(self, inviter_id: str) -> bool:
        """
        Check if another invite is allowed. Returns True if allowed, False if rate limited.
        Increments counter on each call.
        """
        try:
            key = f"invite_attempts:{inviter_id}"
            current = self.client.incr(key)
            if current == 1:
                self.client.expire(key, self.window_seconds)
            if current > self.limit:
                logger.warning(
                    "invite_rate_limited",
                    extra={"inviter_id": inviter_id, "count": current},
                )
                return False
            return True
        except redis.RedisError as e:
            logger.warning("invite_rate_limit_redis_error", extra={"error": str(e)})
            return True  # Fail open - allow invite if Redis is down
